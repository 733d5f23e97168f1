import logging
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from quizcraft.core.errors import AuthorizationError, NotFoundError
from quizcraft.core.security import AuthContext, get_auth_context
from quizcraft.core.sessions import registry
from quizcraft.db.session import get_db
from quizcraft.engine.analytics import summarize
from quizcraft.engine.grading import GradingWorkflow, finalize_attempt
from quizcraft.models.attempt import QuizAttempt
from quizcraft.models.quiz import Quiz
from quizcraft.routes.quiz import get_owned_quiz
from quizcraft.schemas.attempt import Attempt as AttemptSchema, GradeIn, QuizStats

router = APIRouter()
logger = logging.getLogger(__name__)


def serialize_attempt(attempt: QuizAttempt, with_answers: bool = False) -> dict:
    data = {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "user_id": attempt.user_id,
        "email": attempt.user.email if attempt.user else None,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "score": attempt.score or 0,
        "max_score": attempt.max_score or 0,
        "is_graded": attempt.is_graded,
        "fields": [{"field_name": f.field_name, "field_value": f.field_value} for f in attempt.fields],
        "answers": [],
    }
    if with_answers:
        data["answers"] = [
            {
                "id": a.id,
                "question_id": a.question_id,
                "user_answer": a.user_answer,
                "is_correct": a.is_correct,
                "points_awarded": a.points_awarded,
                "feedback": a.feedback,
                "graded_at": a.graded_at,
            }
            for a in sorted(attempt.answers, key=lambda a: a.id)
        ]
    return data


async def get_attempt(db: AsyncSession, attempt_id: int) -> QuizAttempt:
    result = await db.execute(
        select(QuizAttempt).where(QuizAttempt.id == attempt_id).execution_options(populate_existing=True)
    )
    attempt = result.scalar_one_or_none()
    if attempt is None:
        raise NotFoundError(f"Attempt with ID {attempt_id} does not exist", field="attempt_id")
    return attempt


async def get_attempt_for_author(db: AsyncSession, attempt_id: int, auth: AuthContext) -> QuizAttempt:
    attempt = await get_attempt(db, attempt_id)
    await get_owned_quiz(db, attempt.quiz_id, auth)
    return attempt


@router.get("/quizzes/{quiz_id}/stats", response_model=QuizStats)
async def quiz_stats(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Attempts and aggregate results of a quiz, for its owner."""
    quiz = await get_owned_quiz(db, quiz_id, auth)
    result = await db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.quiz_id == quiz.id)
        .order_by(QuizAttempt.started_at.desc(), QuizAttempt.id.desc())
    )
    attempts = result.scalars().all()
    return {
        "quiz_id": quiz.id,
        "title": quiz.title,
        "attempts": [serialize_attempt(a) for a in attempts],
        "analytics": summarize(attempts),
    }


@router.get("/attempts/{attempt_id}", response_model=AttemptSchema)
async def get_attempt_details(
    attempt_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """One attempt with its answers; visible to its respondent and to the quiz owner."""
    attempt = await get_attempt(db, attempt_id)
    if attempt.user_id != auth.user_id:
        quiz = await db.get(Quiz, attempt.quiz_id)
        if quiz is None or quiz.created_by_id != auth.user_id:
            raise AuthorizationError("You cannot view this attempt", field="attempt_id")
    return serialize_attempt(attempt, with_answers=True)


# --- manual grading -----------------------------------------------------------

def _workflow_for(attempt_id: int, auth: AuthContext) -> GradingWorkflow:
    workflow = registry.get_grading(attempt_id)
    if workflow.grader.user_id != auth.user_id:
        raise AuthorizationError("Grading was opened by another user", field="attempt_id")
    return workflow


@router.post("/attempts/{attempt_id}/grading")
async def open_grading(
    attempt_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Load the attempt's ungraded free-text answers and start grading them."""
    await get_attempt_for_author(db, attempt_id, auth)
    workflow = registry.open_grading(await GradingWorkflow.load(db, attempt_id, auth))
    logger.info(f"User {auth.user_id} grading attempt {attempt_id}: {len(workflow.items)} pending answer(s)")
    return workflow.view()


@router.get("/attempts/{attempt_id}/grading")
async def grading_state(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    workflow = _workflow_for(attempt_id, auth)
    return workflow.view()


@router.post("/attempts/{attempt_id}/grading/grades")
async def record_grade(
    attempt_id: int,
    body: GradeIn,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    workflow = _workflow_for(attempt_id, auth)
    await workflow.record_grade(db, body.index, body.is_correct, body.points_awarded, body.feedback)
    view = workflow.view()
    if workflow.finalized:
        registry.close_grading(attempt_id)
        attempt = await get_attempt(db, attempt_id)
        view["attempt"] = {"score": attempt.score, "max_score": attempt.max_score, "is_graded": attempt.is_graded}
    return view


@router.post("/attempts/{attempt_id}/grading/next")
async def grading_next(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    workflow = _workflow_for(attempt_id, auth)
    workflow.next()
    return workflow.view()


@router.post("/attempts/{attempt_id}/grading/prev")
async def grading_prev(attempt_id: int, auth: AuthContext = Depends(get_auth_context)):
    workflow = _workflow_for(attempt_id, auth)
    workflow.prev()
    return workflow.view()


@router.post("/attempts/{attempt_id}/grading/finalize", response_model=AttemptSchema)
async def finalize_grading(
    attempt_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Recompute the attempt score from all answers and mark it graded."""
    await get_attempt_for_author(db, attempt_id, auth)
    await finalize_attempt(db, attempt_id)
    registry.close_grading(attempt_id)
    return serialize_attempt(await get_attempt(db, attempt_id), with_answers=True)
