"""Scores a finished session and writes its answers and attempt result."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizcraft.core.errors import NotFoundError, PersistenceError
from quizcraft.engine.evaluator import Evaluation, evaluate
from quizcraft.engine.session import QuizSession, ServedQuestion, SessionState
from quizcraft.models.attempt import Answer, QuizAttempt

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubmissionItem:
    question: ServedQuestion
    submitted: Any
    evaluation: Evaluation


@dataclass(slots=True)
class SubmissionResult:
    score: float
    max_score: float
    is_graded: bool
    items: list[SubmissionItem] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        if not self.max_score:
            return 0
        return round(self.score / self.max_score * 100)


async def submit_attempt(db: AsyncSession, session: QuizSession) -> SubmissionResult:
    """Evaluate every served question and persist the outcome.

    Answers are written one at a time and committed individually. When a write
    fails the answers already written stay, the attempt is left unfinalized and
    the session stays in ``submitting``.
    """
    if session.state is not SessionState.SUBMITTING:
        session.finish(confirmed=True)

    encoded = session.encoded_answers()
    total = 0.0
    pending = False
    items: list[SubmissionItem] = []

    try:
        for question in session.questions:
            submitted = encoded[question.id]
            evaluation = evaluate(question.spec, question.points, submitted)
            db.add(Answer(
                attempt_id=session.attempt_id,
                question_id=question.id,
                user_answer=submitted,
                is_correct=evaluation.correct,
                points_awarded=evaluation.points_awarded,
            ))
            await db.commit()

            if evaluation.decided:
                total += evaluation.points_awarded
            else:
                pending = True
            items.append(SubmissionItem(question, submitted, evaluation))

        attempt = await db.get(QuizAttempt, session.attempt_id)
        if attempt is None:
            raise NotFoundError(f"Attempt {session.attempt_id} does not exist", field="attempt_id")
        attempt.completed_at = datetime.now(timezone.utc)
        attempt.score = total
        attempt.max_score = session.max_score
        attempt.is_graded = not pending
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            f"Submitting attempt {session.attempt_id} failed after {len(items)} of "
            f"{len(session.questions)} answers: {str(e)}"
        )
        raise PersistenceError("Failed to submit your answers") from e

    result = SubmissionResult(score=total, max_score=session.max_score, is_graded=not pending, items=items)
    session.complete(result)
    logger.info(
        f"Attempt {session.attempt_id} submitted: score {total}/{session.max_score}, graded={not pending}"
    )
    return result
