"""Opening a quiz for a respondent: the ``loading`` state and intake persistence."""

from __future__ import annotations

import logging
import random

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizcraft.core.errors import NotFoundError, PersistenceError
from quizcraft.core.security import AuthContext
from quizcraft.engine.session import QuizSession, QuizSnapshot
from quizcraft.models.attempt import QuizAttempt, QuizAttemptField
from quizcraft.models.quiz import Quiz

logger = logging.getLogger(__name__)


async def get_published_quiz(db: AsyncSession, quiz_id: int) -> Quiz:
    result = await db.execute(
        select(Quiz).where(Quiz.id == quiz_id, Quiz.is_published == True)  # noqa: E712
    )
    quiz = result.scalar_one_or_none()
    if quiz is None:
        raise NotFoundError("Quiz not found or not published", field="quiz_id")
    return quiz


async def start_session(
    db: AsyncSession,
    quiz_id: int,
    respondent: AuthContext,
    rng: random.Random | None = None,
) -> QuizSession:
    """Load a published quiz, build the served question list and create the attempt row."""
    quiz = await get_published_quiz(db, quiz_id)
    session = QuizSession(QuizSnapshot.from_model(quiz), attempt_id=0, respondent=respondent, rng=rng)
    session.begin()

    attempt = QuizAttempt(
        quiz_id=quiz.id,
        user_id=respondent.user_id,
        started_at=session.started_at,
        score=0,
        max_score=session.max_score,
        is_graded=False,
    )
    try:
        db.add(attempt)
        await db.commit()
        await db.refresh(attempt)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Creating attempt for quiz {quiz_id} failed: {str(e)}")
        raise PersistenceError("Failed to start the quiz") from e

    session.attempt_id = attempt.id
    logger.info(
        f"User {respondent.user_id} started quiz {quiz_id} as attempt {attempt.id} "
        f"with {len(session.questions)} question(s)"
    )
    return session


async def save_custom_fields(db: AsyncSession, session: QuizSession, values: dict) -> dict[str, str]:
    """Validate intake values on the session, then store the non-blank ones."""
    cleaned = session.submit_fields(values)
    try:
        for name, value in cleaned.items():
            db.add(QuizAttemptField(attempt_id=session.attempt_id, field_name=name, field_value=value))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Saving custom fields for attempt {session.attempt_id} failed: {str(e)}")
        raise PersistenceError("Failed to save your details") from e
    return cleaned
