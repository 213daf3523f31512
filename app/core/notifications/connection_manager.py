"""
Live client refresh signals.

The engine only ever calls `notify`; connections are registered by the WebSocket
route and the manager's lifecycle is owned by the application lifespan.
Delivery is best-effort: no confirmation, no retry.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.core.monitoring.prometheus_middleware import track_notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def register(self, user_id: str, connection: Any) -> None: ...

    def unregister(self, user_id: str, connection: Any) -> None: ...

    async def notify(self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None: ...


class ConnectionManager:
    """WebSocket connections keyed by user id (one user, many devices)."""

    def __init__(self, prune_interval_seconds: int = 300):
        self._connections: Dict[str, Set[WebSocket]] = {}
        self._prune_interval = prune_interval_seconds
        self._prune_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._prune_task is None:
            self._prune_task = asyncio.create_task(self._prune_loop())
            logger.info("Notification manager started")

    async def stop(self) -> None:
        if self._prune_task is not None:
            self._prune_task.cancel()
            try:
                await self._prune_task
            except asyncio.CancelledError:
                pass
            self._prune_task = None

        for user_id, sockets in list(self._connections.items()):
            for ws in list(sockets):
                try:
                    await ws.close()
                except Exception as e:
                    logger.debug(f"Closing socket for user {user_id} failed: {e}")
        self._connections.clear()
        logger.info("Notification manager stopped")

    def register(self, user_id: str, connection: WebSocket) -> None:
        self._connections.setdefault(str(user_id), set()).add(connection)

    def unregister(self, user_id: str, connection: WebSocket) -> None:
        sockets = self._connections.get(str(user_id))
        if not sockets:
            return
        sockets.discard(connection)
        if not sockets:
            del self._connections[str(user_id)]

    def connection_count(self, user_id: str) -> int:
        return len(self._connections.get(str(user_id), ()))

    async def notify(self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        sockets = self._connections.get(str(user_id))
        if not sockets:
            return

        message = {"type": event, **(payload or {})}
        for ws in list(sockets):
            if ws.client_state != WebSocketState.CONNECTED:
                self.unregister(user_id, ws)
                continue
            try:
                await ws.send_json(message)
                track_notification(sent=True)
            except Exception as e:
                track_notification(sent=False)
                logger.warning(f"Push '{event}' to user {user_id} failed, dropping connection: {e}")
                self.unregister(user_id, ws)

    def prune(self) -> int:
        """Drop sockets that are no longer open. Returns how many were removed."""
        removed = 0
        for user_id, sockets in list(self._connections.items()):
            for ws in list(sockets):
                if ws.client_state != WebSocketState.CONNECTED:
                    self.unregister(user_id, ws)
                    removed += 1
        return removed

    async def _prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self._prune_interval)
            removed = self.prune()
            if removed:
                logger.info(f"Pruned {removed} closed notification connections")


async def notify_safely(
    notifier: Optional[NotificationSink],
    user_id: str,
    event: str,
    payload: Optional[Dict[str, Any]] = None
) -> None:
    """Fire a refresh signal; a failing sink never fails the calling operation."""
    if notifier is None:
        return
    try:
        await notifier.notify(str(user_id), event, payload)
    except Exception as e:
        logger.warning(f"Notification '{event}' for user {user_id} failed: {e}")
