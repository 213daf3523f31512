import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from app.core.auth.deps import resolve_user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str = Query(...)):
    """
    Live refresh signals for the authenticated supplier.
    Messages are `{"type": <event>, ...}`; the client is expected to re-fetch.
    """
    user = await resolve_user_from_token(token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    notifier = websocket.app.state.notifier
    await websocket.accept()
    notifier.register(user.id, websocket)
    logger.info(f"🔌 Notification socket connected for user {user.id}")

    try:
        while True:
            # Incoming messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Notification socket disconnected for user {user.id}")
    finally:
        notifier.unregister(user.id, websocket)
