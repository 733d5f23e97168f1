"""Manual grading of free-text answers, one pending answer at a time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizcraft.core.errors import NotFoundError, PersistenceError, ValidationError
from quizcraft.core.security import AuthContext
from quizcraft.engine.codec import GradingMethod
from quizcraft.models.attempt import Answer, QuizAttempt
from quizcraft.models.quiz import Question

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingAnswer:
    answer_id: int
    question_id: int
    question_text: str
    user_answer: Any
    expected_answer: str
    points: float
    is_graded: bool = False
    is_correct: bool | None = None
    points_awarded: float | None = None
    feedback: str | None = None


async def finalize_attempt(db: AsyncSession, attempt_id: int) -> QuizAttempt:
    """Recompute the attempt score from every answer and mark it graded.

    Auto-graded answers count their question's points when correct; manually
    graded answers count the points a grader awarded. Running it again without
    new grades gives the same score.
    """
    attempt = await db.get(QuizAttempt, attempt_id)
    if attempt is None:
        raise NotFoundError(f"Attempt {attempt_id} does not exist", field="attempt_id")

    answers = (await db.execute(select(Answer).where(Answer.attempt_id == attempt_id))).scalars().all()
    question_ids = {a.question_id for a in answers}
    questions = {}
    if question_ids:
        result = await db.execute(select(Question).where(Question.id.in_(question_ids)))
        questions = {q.id: q for q in result.scalars().all()}

    total = 0.0
    for answer in answers:
        question = questions.get(answer.question_id)
        manual = (
            question is None
            or question.grading_method == GradingMethod.MANUAL.value
            or answer.graded_at is not None
        )
        if manual:
            total += answer.points_awarded or 0
        elif answer.is_correct:
            total += question.points

    try:
        attempt.score = total
        attempt.is_graded = True
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Finalizing attempt {attempt_id} failed: {str(e)}")
        raise PersistenceError("Failed to finish grading") from e

    logger.info(f"Attempt {attempt_id} graded with score {total}")
    return attempt


class GradingWorkflow:
    """Cursor over one attempt's ungraded answers."""

    def __init__(self, attempt_id: int, items: list[PendingAnswer], grader: AuthContext) -> None:
        self.attempt_id = attempt_id
        self.items = items
        self.grader = grader
        self.cursor = 0
        self.finalized = False

    @classmethod
    async def load(cls, db: AsyncSession, attempt_id: int, grader: AuthContext) -> "GradingWorkflow":
        result = await db.execute(
            select(Answer)
            .where(Answer.attempt_id == attempt_id, Answer.is_correct.is_(None))
            .order_by(Answer.id)
        )
        items = []
        for answer in result.scalars().all():
            question = await db.get(Question, answer.question_id)
            if question is None:
                logger.warning(f"Answer {answer.id} references missing question {answer.question_id}")
                continue
            expected = question.correct_answers[0] if question.correct_answers else ""
            items.append(PendingAnswer(
                answer_id=answer.id,
                question_id=question.id,
                question_text=question.content,
                user_answer=answer.user_answer,
                expected_answer="" if expected is None else str(expected),
                points=question.points or 1,
                feedback=answer.feedback,
            ))
        return cls(attempt_id, items, grader)

    @property
    def current(self) -> PendingAnswer | None:
        return self.items[self.cursor] if self.items else None

    @property
    def remaining(self) -> int:
        return sum(1 for item in self.items if not item.is_graded)

    def next(self) -> None:
        if self.cursor < len(self.items) - 1:
            self.cursor += 1

    def prev(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1

    async def record_grade(
        self,
        db: AsyncSession,
        index: int,
        is_correct: bool,
        points_awarded: float,
        feedback: str | None = None,
    ) -> bool:
        """Store one decision. Returns True when it was the last one and the attempt got finalized."""
        if not 0 <= index < len(self.items):
            raise ValidationError(f"No pending answer at index {index}", field="index")
        item = self.items[index]
        if points_awarded < 0 or points_awarded > item.points:
            raise ValidationError(f"Points must be between 0 and {item.points}", field="points_awarded")

        graded_at = datetime.now(timezone.utc)
        try:
            answer = await db.get(Answer, item.answer_id)
            if answer is None:
                raise NotFoundError(f"Answer {item.answer_id} does not exist", field="answer_id")
            answer.is_correct = is_correct
            answer.points_awarded = points_awarded
            answer.feedback = feedback
            answer.graded_at = graded_at
            answer.graded_by_id = self.grader.user_id
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Saving grade for answer {item.answer_id} failed: {str(e)}")
            raise PersistenceError("Failed to save the grade") from e

        item.is_graded = True
        item.is_correct = is_correct
        item.points_awarded = points_awarded
        item.feedback = feedback
        self.next()

        if self.remaining == 0:
            await self.finalize(db)
            return True
        return False

    async def finalize(self, db: AsyncSession) -> QuizAttempt:
        attempt = await finalize_attempt(db, self.attempt_id)
        self.finalized = True
        return attempt

    def view(self) -> dict:
        return {
            "attempt_id": self.attempt_id,
            "cursor": self.cursor,
            "remaining": self.remaining,
            "finalized": self.finalized,
            "items": [
                {
                    "index": i,
                    "answer_id": item.answer_id,
                    "question_id": item.question_id,
                    "question_text": item.question_text,
                    "user_answer": item.user_answer,
                    "expected_answer": item.expected_answer,
                    "points": item.points,
                    "is_graded": item.is_graded,
                    "is_correct": item.is_correct,
                    "points_awarded": item.points_awarded,
                    "feedback": item.feedback,
                }
                for i, item in enumerate(self.items)
            ],
        }
