from datetime import datetime
from typing import Annotated

from bson import ObjectId
from pydantic import BeforeValidator

from app.shared.timezone import get_utc_now

# References between documents are stored as plain ObjectId strings
PyObjectId = Annotated[str, BeforeValidator(str)]


def new_object_id() -> str:
    return str(ObjectId())


def utc_now() -> datetime:
    return get_utc_now()
