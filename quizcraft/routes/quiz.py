import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from quizcraft.core.config import settings
from quizcraft.core.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from quizcraft.core.security import AuthContext, get_auth_context
from quizcraft.db.session import commit, get_db
from quizcraft.engine import codec
from quizcraft.models.attempt import Answer, QuizAttempt, QuizAttemptField
from quizcraft.models.quiz import Question, Quiz, QuizCustomField
from quizcraft.schemas.quiz import (
    CustomField as CustomFieldSchema,
    CustomFieldsUpdate,
    Question as QuestionSchema,
    QuestionCreate,
    QuestionUpdate,
    Quiz as QuizSchema,
    QuizCreate,
    QuizSettings,
    QuizSummary,
    QuizUpdate,
)
from quizcraft.storage import ALLOWED_IMAGE_TYPES, BlobStorage, get_storage

router = APIRouter()
logger = logging.getLogger(__name__)

SETTING_FIELDS = tuple(QuizSettings.model_fields)


def serialize_question(q: Question) -> dict:
    return {
        "id": q.id,
        "quiz_id": q.quiz_id,
        "position": q.position,
        "content": q.content,
        "image_url": q.image_url,
        "points": q.points,
        "question_type": q.question_type,
        "grading_method": q.grading_method,
        "options": q.options,
        "correct_answers": q.correct_answers,
    }


def serialize_quiz(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "is_public": quiz.is_public,
        "is_published": quiz.is_published,
        "created_by_id": quiz.created_by_id,
        "createdAt": quiz.created_at,
        "updatedAt": quiz.updated_at,
        "settings": {name: getattr(quiz, name) for name in SETTING_FIELDS},
        "question_count": len(quiz.questions),
        "questions": [serialize_question(q) for q in sorted(quiz.questions, key=lambda x: x.position)],
        "custom_fields": [
            {
                "id": f.id,
                "field_name": f.field_name,
                "field_label": f.field_label,
                "is_required": f.is_required,
                "position": f.position,
            }
            for f in quiz.custom_fields
        ],
    }


def summarize_quiz(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "is_public": quiz.is_public,
        "is_published": quiz.is_published,
        "has_password": bool(quiz.password),
        "question_count": len(quiz.questions),
        "createdAt": quiz.created_at,
    }


async def get_owned_quiz(db: AsyncSession, quiz_id: int, auth: AuthContext) -> Quiz:
    """Fetch a quiz that the caller owns."""
    quiz = await db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFoundError(f"Quiz with ID {quiz_id} does not exist", field="quiz_id")
    if quiz.created_by_id != auth.user_id:
        raise AuthorizationError("You do not own this quiz", field="quiz_id")
    return quiz


async def reload_quiz(db: AsyncSession, quiz_id: int) -> Quiz:
    # populate_existing refreshes the selectin relationships after writes
    result = await db.execute(
        select(Quiz).where(Quiz.id == quiz_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_owned_question(db: AsyncSession, question_id: int, auth: AuthContext) -> Question:
    question = await db.get(Question, question_id)
    if question is None:
        raise NotFoundError(f"Question with ID {question_id} does not exist", field="question_id")
    await get_owned_quiz(db, question.quiz_id, auth)
    return question


def _apply_payload(question: Question, question_type, options, correct_answers) -> None:
    spec = codec.validate_payload(question_type, options, correct_answers)
    question.question_type = spec.tag.value
    question.grading_method = codec.grading_method_for(spec.tag).value
    question.options, question.correct_answers = codec.dump(spec)


# --- quizzes ------------------------------------------------------------------

@router.post("/quizzes", response_model=QuizSchema)
async def create_quiz(
    quiz_data: QuizCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Create a new, unpublished quiz."""
    if not quiz_data.title.strip():
        raise ValidationError("Quiz title cannot be empty", field="title")

    quiz = Quiz(
        title=quiz_data.title.strip(),
        description=quiz_data.description,
        is_public=quiz_data.is_public,
        is_published=False,
        created_by_id=auth.user_id,
        **quiz_data.settings.model_dump(),
    )
    db.add(quiz)
    await commit(db, "Failed to create the quiz")
    logger.info(f"User {auth.user_id} created quiz {quiz.id}")

    return serialize_quiz(await reload_quiz(db, quiz.id))


@router.get("/quizzes", response_model=List[QuizSummary])
async def list_my_quizzes(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Quizzes owned by the caller, newest first."""
    result = await db.execute(
        select(Quiz).where(Quiz.created_by_id == auth.user_id).order_by(Quiz.created_at.desc(), Quiz.id.desc())
    )
    return [summarize_quiz(q) for q in result.scalars().all()]


@router.get("/quizzes/public", response_model=List[QuizSummary])
async def browse_quizzes(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """Public, published quizzes, optionally filtered by title or description."""
    stmt = select(Quiz).where(Quiz.is_public == True, Quiz.is_published == True)  # noqa: E712
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Quiz.title.ilike(pattern), Quiz.description.ilike(pattern)))
    result = await db.execute(stmt.order_by(Quiz.created_at.desc(), Quiz.id.desc()))
    return [summarize_quiz(q) for q in result.scalars().all()]


@router.get("/quizzes/{quiz_id}", response_model=QuizSchema)
async def get_quiz(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Get full quiz details, including answers, for its owner."""
    quiz = await get_owned_quiz(db, quiz_id, auth)
    return serialize_quiz(quiz)


@router.patch("/quizzes/{quiz_id}", response_model=QuizSchema)
async def update_quiz(
    quiz_id: int,
    quiz_data: QuizUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    changes = quiz_data.model_dump(exclude_unset=True)
    if "title" in changes:
        if not (changes["title"] or "").strip():
            raise ValidationError("Quiz title cannot be empty", field="title")
        changes["title"] = changes["title"].strip()
    for name, value in changes.items():
        setattr(quiz, name, value)
    await commit(db, "Failed to update the quiz")
    return serialize_quiz(await reload_quiz(db, quiz_id))


@router.put("/quizzes/{quiz_id}/settings", response_model=QuizSchema)
async def update_settings(
    quiz_id: int,
    settings_data: QuizSettings,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    for name, value in settings_data.model_dump().items():
        setattr(quiz, name, value)
    if not quiz.password:
        quiz.password = None
    await commit(db, "Failed to update quiz settings")
    logger.debug(f"Updated settings of quiz {quiz_id}")
    return serialize_quiz(await reload_quiz(db, quiz_id))


@router.post("/quizzes/{quiz_id}/publish", response_model=QuizSchema)
async def publish_quiz(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    if not quiz.questions:
        raise ValidationError("Add at least one question before publishing", field="questions")
    quiz.is_published = True
    await commit(db, "Failed to publish the quiz")
    logger.info(f"Quiz {quiz_id} published")
    return serialize_quiz(await reload_quiz(db, quiz_id))


@router.post("/quizzes/{quiz_id}/unpublish", response_model=QuizSchema)
async def unpublish_quiz(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    quiz.is_published = False
    await commit(db, "Failed to unpublish the quiz")
    return serialize_quiz(await reload_quiz(db, quiz_id))


@router.delete("/quizzes/{quiz_id}", status_code=204)
async def delete_quiz(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Delete a quiz with its questions, custom fields, attempts and their answers."""
    quiz = await get_owned_quiz(db, quiz_id, auth)
    attempt_ids = select(QuizAttempt.id).where(QuizAttempt.quiz_id == quiz_id)
    try:
        await db.execute(delete(Answer).where(Answer.attempt_id.in_(attempt_ids)))
        await db.execute(delete(QuizAttemptField).where(QuizAttemptField.attempt_id.in_(attempt_ids)))
        await db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz_id))
        await db.delete(quiz)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Deleting quiz {quiz_id} failed: {str(e)}")
        raise PersistenceError("Failed to delete the quiz") from e
    logger.info(f"Quiz {quiz_id} deleted by user {auth.user_id}")


# --- questions ----------------------------------------------------------------

@router.post("/quizzes/{quiz_id}/questions", response_model=QuestionSchema)
async def add_question(
    quiz_id: int,
    question_data: QuestionCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    if not question_data.content.strip():
        raise ValidationError("Question text cannot be empty", field="content")

    position = question_data.position
    if position is None:
        position = max((q.position for q in quiz.questions), default=-1) + 1

    question = Question(
        quiz_id=quiz.id,
        position=position,
        content=question_data.content.strip(),
        image_url=question_data.image_url,
        points=question_data.points,
    )
    _apply_payload(question, question_data.question_type, question_data.options, question_data.correct_answers)
    db.add(question)
    await commit(db, "Failed to add the question")
    await db.refresh(question)
    return serialize_question(question)


@router.patch("/questions/{question_id}", response_model=QuestionSchema)
async def update_question(
    question_id: int,
    question_data: QuestionUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    question = await get_owned_question(db, question_id, auth)
    changes = question_data.model_dump(exclude_unset=True)

    if "content" in changes:
        if not (changes["content"] or "").strip():
            raise ValidationError("Question text cannot be empty", field="content")
        question.content = changes["content"].strip()
    for name in ("points", "image_url", "position"):
        if name in changes and changes[name] is not None:
            setattr(question, name, changes[name])
    if changes.keys() & {"question_type", "options", "correct_answers"}:
        _apply_payload(
            question,
            changes.get("question_type") or question.question_type,
            changes["options"] if "options" in changes else question.options,
            changes["correct_answers"] if "correct_answers" in changes else question.correct_answers,
        )
    await commit(db, "Failed to update the question")
    await db.refresh(question)
    return serialize_question(question)


@router.delete("/questions/{question_id}", status_code=204)
async def delete_question(
    question_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    question = await get_owned_question(db, question_id, auth)
    await db.delete(question)
    await commit(db, "Failed to delete the question")


@router.post("/questions/{question_id}/image", response_model=QuestionSchema)
async def upload_question_image(
    question_id: int,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    question = await get_owned_question(db, question_id, auth)
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"{file.content_type} is not an allowed image type", field="file")
    data = await file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(f"Images may be at most {settings.MAX_UPLOAD_BYTES} bytes", field="file")
    key = await run_in_threadpool(storage.upload, data, file.content_type, prefix=f"questions/{question.id}")
    question.image_url = storage.public_url(key)
    await commit(db, "Failed to save the question image")
    await db.refresh(question)
    return serialize_question(question)


# --- custom intake fields -----------------------------------------------------

@router.get("/quizzes/{quiz_id}/custom-fields", response_model=List[CustomFieldSchema])
async def get_custom_fields(
    quiz_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    quiz = await get_owned_quiz(db, quiz_id, auth)
    return quiz.custom_fields


@router.put("/quizzes/{quiz_id}/custom-fields", response_model=List[CustomFieldSchema])
async def replace_custom_fields(
    quiz_id: int,
    fields_data: CustomFieldsUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
):
    """Replace the quiz's whole set of intake fields; list order becomes position."""
    await get_owned_quiz(db, quiz_id, auth)

    invalid = [
        {"field": f"fields[{i}]", "message": "Field name and label are required"}
        for i, f in enumerate(fields_data.fields)
        if not f.field_name.strip() or not f.field_label.strip()
    ]
    if invalid:
        raise ValidationError("Fill in names and labels for all fields", details=invalid)
    names = [f.field_name.strip() for f in fields_data.fields]
    if len(set(names)) != len(names):
        raise ValidationError("Field names must be unique", field="fields")

    await db.execute(delete(QuizCustomField).where(QuizCustomField.quiz_id == quiz_id))
    for position, f in enumerate(fields_data.fields):
        db.add(QuizCustomField(
            quiz_id=quiz_id,
            field_name=f.field_name.strip(),
            field_label=f.field_label.strip(),
            is_required=f.is_required,
            position=position,
        ))
    await commit(db, "Failed to save custom fields")

    quiz = await reload_quiz(db, quiz_id)
    return quiz.custom_fields
