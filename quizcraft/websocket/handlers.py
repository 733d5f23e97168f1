from dataclasses import asdict
from sqlalchemy.ext.asyncio import AsyncSession
from quizcraft.core.errors import QuizCraftError
from quizcraft.engine.loader import save_custom_fields
from quizcraft.engine.session import QuizSession
from quizcraft.engine.submission import submit_attempt


def session_message(session: QuizSession, confirmation=None) -> dict:
    return {
        "type": "session",
        "session": session.view(),
        "confirmation": asdict(confirmation) if confirmation else None,
    }


async def handle_unlock(db: AsyncSession, session: QuizSession, data: dict):
    session.unlock(str(data.get("password", "")))


async def handle_fields(db: AsyncSession, session: QuizSession, data: dict):
    await save_custom_fields(db, session, data.get("values") or {})


async def handle_answer(db: AsyncSession, session: QuizSession, data: dict):
    session.set_answer(data.get("value"))


async def handle_next(db: AsyncSession, session: QuizSession, data: dict):
    return session.next(confirmed=bool(data.get("confirmed", False)))


async def handle_prev(db: AsyncSession, session: QuizSession, data: dict):
    session.prev()


async def handle_finish(db: AsyncSession, session: QuizSession, data: dict):
    confirmation = session.finish(confirmed=bool(data.get("confirmed", False)))
    if confirmation is None:
        await submit_attempt(db, session)
    return confirmation


async def handle_state(db: AsyncSession, session: QuizSession, data: dict):
    return None


def error_message(session: QuizSession, message: str) -> dict:
    return {
        "type": "error",
        "error": "ValidationError",
        "message": message,
        "session": session.view(),
    }


HANDLERS = {
    "state": handle_state,
    "unlock": handle_unlock,
    "fields": handle_fields,
    "answer": handle_answer,
    "next": handle_next,
    "prev": handle_prev,
    "finish": handle_finish,
}


async def handle_message(db: AsyncSession, session: QuizSession, data: dict) -> dict:
    """Apply one client message to the session and build the reply.

    Domain errors become an "error" message; the session stays usable.
    """
    if not isinstance(data, dict):
        return error_message(session, "Messages must be JSON objects")
    handler = HANDLERS.get(data.get("type"))
    if handler is None:
        return error_message(session, f"Unknown message type: {data.get('type')}")
    try:
        confirmation = await handler(db, session, data)
    except QuizCraftError as e:
        detail = e.to_detail()
        return {
            "type": "error",
            "error": detail["error"],
            "message": detail["message"],
            "details": detail["details"],
            "session": session.view(),
        }
    return session_message(session, confirmation)
