"""
Conditional writes for documents carrying a `version` field.

A write only lands if the stored version still equals the version that was read;
otherwise the caller gets a 409 and must re-read before retrying.
"""
import asyncio
import logging

from fastapi import HTTPException, status

from app.core.models.common import utc_now

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


class VersionConflict(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


async def save_versioned(doc) -> None:
    """
    Persist every field of `doc` if nobody else wrote it since it was read.

    The document must already exist (use `insert()` for new ones).
    On success `doc.version` is incremented in place.
    """
    current_version = doc.version
    doc.updated_at = utc_now()

    payload = _plain(doc.model_dump(by_alias=True, exclude={"id", "revision_id"}))
    payload["version"] = current_version + 1

    collection = type(doc).get_motor_collection()
    result = await collection.update_one(
        filter={"_id": doc.id, "version": current_version},
        update={"$set": payload},
    )

    if result.matched_count == 0:
        logger.warning(
            f"⚠️  VERSION CONFLICT: {type(doc).__name__} {doc.id} (expected version {current_version})"
        )
        raise VersionConflict(
            f"{type(doc).__name__} was modified by another request. Please try again."
        )

    doc.version = current_version + 1


async def backoff(attempt: int) -> None:
    """0.1s, 0.2s, 0.4s"""
    await asyncio.sleep(0.1 * (2 ** attempt))


def _plain(value):
    """Frozen snapshots dump tuples; store them as arrays."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
