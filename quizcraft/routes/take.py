import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from quizcraft.core.security import AuthContext, get_auth_context
from quizcraft.core.sessions import registry
from quizcraft.db.session import get_db
from quizcraft.engine.loader import save_custom_fields, start_session
from quizcraft.engine.submission import submit_attempt
from quizcraft.schemas.attempt import AnswerIn, FieldsIn, NavigateIn, PasswordIn, SessionResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _response(session, confirmation=None) -> dict:
    return {
        "session": session.view(),
        "confirmation": asdict(confirmation) if confirmation else None,
    }


@router.post("/quizzes/{quiz_id}/sessions", response_model=SessionResponse)
async def begin_quiz(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Start taking a published quiz. Creates the attempt record."""
    session = await start_session(db, quiz_id, auth)
    registry.add(session)
    return _response(session)


@router.get("/sessions/{attempt_id}", response_model=SessionResponse)
async def get_session(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    return _response(registry.get(attempt_id, auth))


@router.post("/sessions/{attempt_id}/password", response_model=SessionResponse)
async def unlock_session(
    attempt_id: int,
    body: PasswordIn,
    auth: AuthContext = Depends(get_auth_context)
):
    session = registry.get(attempt_id, auth)
    session.unlock(body.password)
    return _response(session)


@router.post("/sessions/{attempt_id}/fields", response_model=SessionResponse)
async def submit_fields(
    attempt_id: int,
    body: FieldsIn,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    session = registry.get(attempt_id, auth)
    await save_custom_fields(db, session, body.values)
    return _response(session)


@router.put("/sessions/{attempt_id}/answer", response_model=SessionResponse)
async def set_answer(
    attempt_id: int,
    body: AnswerIn,
    auth: AuthContext = Depends(get_auth_context)
):
    session = registry.get(attempt_id, auth)
    session.set_answer(body.value)
    return _response(session)


@router.post("/sessions/{attempt_id}/next", response_model=SessionResponse)
async def next_question(
    attempt_id: int,
    body: NavigateIn = NavigateIn(),
    auth: AuthContext = Depends(get_auth_context)
):
    session = registry.get(attempt_id, auth)
    return _response(session, session.next(confirmed=body.confirmed))


@router.post("/sessions/{attempt_id}/prev", response_model=SessionResponse)
async def previous_question(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    session = registry.get(attempt_id, auth)
    session.prev()
    return _response(session)


@router.post("/sessions/{attempt_id}/finish", response_model=SessionResponse)
async def finish_quiz(
    attempt_id: int,
    body: NavigateIn = NavigateIn(),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Finish the quiz. Returns a confirmation prompt instead when answers are missing."""
    session = registry.get(attempt_id, auth)
    confirmation = session.finish(confirmed=body.confirmed)
    if confirmation is None:
        await submit_attempt(db, session)
        # the result is returned once; afterwards it is read from /api/attempts
        response = _response(session)
        registry.discard(attempt_id)
        return response
    return _response(session, confirmation)


@router.delete("/sessions/{attempt_id}", status_code=204)
async def abandon_session(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    """Drop the live session. The attempt stays in the database without a completion time."""
    registry.get(attempt_id, auth)
    registry.discard(attempt_id)
    logger.info(f"Attempt {attempt_id} abandoned")
