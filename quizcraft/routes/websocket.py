from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from quizcraft.core.security import AuthContext, get_user_from_token
from quizcraft.core.sessions import registry
from quizcraft.core.errors import QuizCraftError
from quizcraft.db.session import get_db
from quizcraft.engine.session import SessionState
from quizcraft.websocket.handlers import error_message, handle_message, session_message
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.websocket("/ws/sessions/{attempt_id}")
async def session_socket(websocket: WebSocket, attempt_id: int, db: AsyncSession = Depends(get_db)):
    """Drive a live quiz session over a WebSocket.

    Same operations as the REST endpoints: each client message is
    ``{"type": <state|unlock|fields|answer|next|prev|finish>, ...}`` and each
    reply carries the full session view.
    """
    token = websocket.query_params.get("token")
    logger.debug(f"Received WebSocket connection request for attempt {attempt_id}")

    # Accept the connection first to avoid connection timeout
    await websocket.accept()

    if not token:
        logger.error("No token provided")
        await websocket.close(code=4001, reason="No authentication token provided")
        return

    user = await get_user_from_token(db, token)
    if user is None:
        logger.error(f"Token validation failed for attempt {attempt_id}")
        await websocket.close(code=4004, reason="Token validation failed")
        return
    auth = AuthContext.from_user(user)

    try:
        session = registry.get(attempt_id, auth)
    except QuizCraftError as e:
        logger.error(f"Session {attempt_id} unavailable for user {auth.user_id}: {e.message}")
        await websocket.close(code=4003, reason=e.message)
        return

    await websocket.send_json(session_message(session))

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError):
                logger.warning(f"Unreadable message from {auth.email} on attempt {attempt_id}")
                await websocket.send_json(error_message(session, "Messages must be valid JSON text"))
                continue
            logger.debug(f"Received message from {auth.email}: {data}")
            reply = await handle_message(db, session, data)
            if session.state is SessionState.COMPLETE:
                registry.discard(attempt_id)
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {auth.email}")
