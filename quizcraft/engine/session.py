"""In-progress quiz attempt: one respondent stepping through the served questions.

The session moves through::

    loading -> password_gate? -> custom_fields? -> answering -> submitting -> complete

It owns the served question list, the current position and the answers typed
so far. It does no I/O; :mod:`quizcraft.engine.loader` builds it and
:mod:`quizcraft.engine.submission` persists what it collected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
import random
from typing import TYPE_CHECKING, Any, Callable

from quizcraft.core.errors import AnswerValidationError, AuthorizationError, ValidationError
from quizcraft.engine import codec
from quizcraft.engine.codec import AnswerSpec, FreeText, QuestionType

if TYPE_CHECKING:
    from quizcraft.core.security import AuthContext
    from quizcraft.engine.submission import SubmissionResult

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    PASSWORD_GATE = "password_gate"
    CUSTOM_FIELDS = "custom_fields"
    ANSWERING = "answering"
    SUBMITTING = "submitting"
    COMPLETE = "complete"


@dataclass(slots=True)
class ServedQuestion:
    id: int
    position: int
    content: str
    points: float
    spec: AnswerSpec
    image_url: str | None = None

    @property
    def question_type(self) -> QuestionType:
        return self.spec.tag

    @property
    def is_manual(self) -> bool:
        return isinstance(self.spec, FreeText)

    @classmethod
    def from_model(cls, question) -> "ServedQuestion":
        return cls(
            id=question.id,
            position=question.position,
            content=question.content,
            points=question.points,
            spec=codec.decode(question.question_type, question.options, question.correct_answers),
            image_url=question.image_url,
        )


@dataclass(slots=True)
class CustomFieldDef:
    name: str
    label: str
    required: bool = False
    position: int = 0


@dataclass(slots=True)
class QuizSnapshot:
    """Everything a session needs to know about a quiz, detached from the database."""

    id: int
    title: str
    description: str | None = None
    questions: list[ServedQuestion] = field(default_factory=list)
    custom_fields: list[CustomFieldDef] = field(default_factory=list)
    time_limit: int | None = None
    password: str | None = None
    randomize_questions: bool = False
    randomize_answers: bool = False
    show_correct_answers: bool = False
    show_question_numbers: bool = False
    show_progress_bar: bool = False
    question_limit: int | None = None
    show_elapsed_time: bool = False
    prevent_copy: bool = False
    prevent_back_navigation: bool = False
    confirm_last_next: bool = False
    confirm_finish: bool = False

    @classmethod
    def from_model(cls, quiz) -> "QuizSnapshot":
        return cls(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            questions=[ServedQuestion.from_model(q) for q in quiz.questions],
            custom_fields=[
                CustomFieldDef(f.field_name, f.field_label, bool(f.is_required), f.position)
                for f in quiz.custom_fields
            ],
            time_limit=quiz.time_limit,
            password=quiz.password or None,
            randomize_questions=bool(quiz.randomize_questions),
            randomize_answers=bool(quiz.randomize_answers),
            show_correct_answers=bool(quiz.show_correct_answers),
            show_question_numbers=bool(quiz.show_question_numbers),
            show_progress_bar=bool(quiz.show_progress_bar),
            question_limit=quiz.question_limit,
            show_elapsed_time=bool(quiz.show_elapsed_time),
            prevent_copy=bool(quiz.prevent_copy),
            prevent_back_navigation=bool(quiz.prevent_back_navigation),
            confirm_last_next=bool(quiz.confirm_last_next),
            confirm_finish=bool(quiz.confirm_finish),
        )


@dataclass(frozen=True, slots=True)
class Confirmation:
    """Returned instead of acting when the respondent must confirm first."""

    kind: str
    message: str
    unanswered: int = 0


def build_served_questions(
    questions: list[ServedQuestion],
    randomize_questions: bool = False,
    randomize_answers: bool = False,
    question_limit: int | None = None,
    rng: random.Random | None = None,
) -> list[ServedQuestion]:
    """Order, shuffle and truncate a quiz's questions for one respondent."""
    rng = rng or random.Random()
    served = sorted(questions, key=lambda q: q.position)
    if randomize_questions:
        rng.shuffle(served)
    if randomize_answers:
        served = [
            ServedQuestion(q.id, q.position, q.content, q.points, codec.shuffled(q.spec, rng), q.image_url)
            for q in served
        ]
    if question_limit is not None and 0 < question_limit < len(served):
        served = served[:question_limit]
    return served


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizSession:
    """State machine for one respondent taking one quiz."""

    def __init__(
        self,
        quiz: QuizSnapshot,
        attempt_id: int,
        respondent: "AuthContext",
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.quiz = quiz
        self.attempt_id = attempt_id
        self.respondent = respondent
        self._rng = rng or random.Random()
        self._clock = clock

        self.state = SessionState.LOADING
        self.questions: list[ServedQuestion] = []
        self.index = 0
        self.answers: dict[int, Any] = {}
        self.field_values: dict[str, str] = {}
        self.started_at: datetime | None = None
        self.last_error: str | None = None
        self.result: "SubmissionResult | None" = None
        self._unlocked = False
        self._fields_captured = False

    # --- lifecycle ------------------------------------------------------------

    def begin(self) -> None:
        """Leave ``loading``: build the served list and enter the first gate."""
        self._require(SessionState.LOADING)
        self.questions = build_served_questions(
            self.quiz.questions,
            randomize_questions=self.quiz.randomize_questions,
            randomize_answers=self.quiz.randomize_answers,
            question_limit=self.quiz.question_limit,
            rng=self._rng,
        )
        self.started_at = self._clock()
        self._advance_gates()

    @property
    def max_score(self) -> float:
        return sum(q.points for q in self.questions)

    @property
    def has_pending_questions(self) -> bool:
        return any(q.is_manual for q in self.questions)

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise ValidationError(
                f"Not allowed while the session is {self.state.value}", field="state"
            )

    def _advance_gates(self) -> None:
        if self.quiz.password and not self._unlocked:
            self.state = SessionState.PASSWORD_GATE
        elif self.quiz.custom_fields and not self._fields_captured:
            self.state = SessionState.CUSTOM_FIELDS
        else:
            self.state = SessionState.ANSWERING
        logger.debug(f"Attempt {self.attempt_id} entered {self.state.value}")

    # --- gates ----------------------------------------------------------------

    def unlock(self, candidate: str) -> None:
        self._require(SessionState.PASSWORD_GATE)
        if candidate != self.quiz.password:
            self.last_error = "Incorrect password"
            raise AuthorizationError("Incorrect password", field="password")
        self.last_error = None
        self._unlocked = True
        self._advance_gates()

    def submit_fields(self, values: dict[str, Any]) -> dict[str, str]:
        """Accept intake values; returns the non-blank ones that should be stored."""
        self._require(SessionState.CUSTOM_FIELDS)
        known = {f.name for f in self.quiz.custom_fields}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValidationError(
                "Unknown fields",
                details=[{"field": name, "message": "Unknown field"} for name in unknown],
            )

        cleaned = {
            name: str(value).strip()
            for name, value in values.items()
            if value is not None and str(value).strip()
        }
        missing = [f for f in self.quiz.custom_fields if f.required and f.name not in cleaned]
        if missing:
            self.last_error = "Fill in all required fields"
            raise ValidationError(
                "Fill in all required fields",
                details=[{"field": f.name, "message": f"{f.label} is required"} for f in missing],
            )

        self.last_error = None
        self.field_values = cleaned
        self._fields_captured = True
        self._advance_gates()
        return cleaned

    # --- answering ------------------------------------------------------------

    @property
    def current(self) -> ServedQuestion:
        return self.questions[self.index]

    @property
    def is_last(self) -> bool:
        return self.index >= len(self.questions) - 1

    def set_answer(self, value: Any) -> None:
        """Store the in-progress value for the current question; it may be incomplete."""
        self._require(SessionState.ANSWERING)
        if not self.questions:
            raise ValidationError("This quiz has no questions", field="question")
        if value is None:
            self.answers.pop(self.current.id, None)
        else:
            self.answers[self.current.id] = value

    def is_answered(self, question: ServedQuestion) -> bool:
        return codec.is_complete(question.spec, self.answers.get(question.id))

    @property
    def can_advance(self) -> bool:
        return (
            self.state is SessionState.ANSWERING
            and bool(self.questions)
            and not self.is_last
            and self.is_answered(self.current)
        )

    @property
    def can_go_back(self) -> bool:
        return (
            self.state is SessionState.ANSWERING
            and self.index > 0
            and not self.quiz.prevent_back_navigation
        )

    def next(self, confirmed: bool = False) -> Confirmation | None:
        self._require(SessionState.ANSWERING)
        if self.is_last:
            raise ValidationError("This is the last question, finish the quiz instead", field="index")
        if not self.is_answered(self.current):
            raise AnswerValidationError("Answer the current question before continuing", field="value")
        if self.quiz.confirm_last_next and self.index + 1 == len(self.questions) - 1 and not confirmed:
            return Confirmation("confirm_last_next", "The next question is the last one. Continue?")
        self.index += 1
        return None

    def prev(self) -> None:
        self._require(SessionState.ANSWERING)
        if self.quiz.prevent_back_navigation:
            raise ValidationError("Going back is disabled for this quiz", field="index")
        if self.index == 0:
            raise ValidationError("Already at the first question", field="index")
        self.index -= 1

    def unanswered_count(self) -> int:
        return sum(1 for q in self.questions if not self.is_answered(q))

    def finish(self, confirmed: bool = False) -> Confirmation | None:
        """Move to ``submitting``, or ask first when answers are missing."""
        self._require(SessionState.ANSWERING)
        unanswered = self.unanswered_count()
        if not confirmed and (unanswered or self.quiz.confirm_finish):
            if unanswered:
                message = f"You did not answer {unanswered} question(s). Finish anyway?"
            else:
                message = "Finish the quiz?"
            return Confirmation("confirm_finish", message, unanswered)
        self.state = SessionState.SUBMITTING
        logger.info(f"Attempt {self.attempt_id} submitting with {unanswered} unanswered question(s)")
        return None

    def encoded_answers(self) -> dict[int, Any]:
        """Persistable value per served question; ``None`` for unanswered ones."""
        encoded = {}
        for question in self.questions:
            try:
                encoded[question.id] = codec.encode(question.spec, self.answers.get(question.id))
            except AnswerValidationError:
                encoded[question.id] = None
        return encoded

    def complete(self, result: "SubmissionResult") -> None:
        self._require(SessionState.SUBMITTING)
        self.result = result
        self.state = SessionState.COMPLETE

    # --- presentation -----------------------------------------------------------

    def elapsed_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return max(0, int((self._clock() - self.started_at).total_seconds()))

    def remaining_seconds(self) -> int | None:
        if not self.quiz.time_limit:
            return None
        return max(0, self.quiz.time_limit * 60 - self.elapsed_seconds())

    def _question_view(self) -> dict:
        question = self.current
        view = {
            "id": question.id,
            "content": question.content,
            "image_url": question.image_url,
            "points": question.points,
            **codec.public_view(question.spec),
            "answer": self.answers.get(question.id),
        }
        if self.quiz.show_question_numbers:
            view["number"] = self.index + 1
        return view

    def _result_view(self) -> dict:
        result = self.result
        view: dict = {
            "score": result.score,
            "max_score": result.max_score,
            "is_graded": result.is_graded,
        }
        if result.is_graded:
            view["percentage"] = result.percentage
        else:
            view["message"] = "Your answers are awaiting manual grading"
        if self.quiz.show_correct_answers:
            view["review"] = [
                {
                    "question_id": item.question.id,
                    "content": item.question.content,
                    "answer": item.submitted,
                    "correct_answer": codec.correct_answers_of(item.question.spec),
                    "is_correct": item.evaluation.correct,
                    "points_awarded": item.evaluation.points_awarded,
                }
                for item in result.items
            ]
        return view

    def view(self) -> dict:
        view: dict = {
            "attempt_id": self.attempt_id,
            "quiz_id": self.quiz.id,
            "title": self.quiz.title,
            "description": self.quiz.description,
            "state": self.state.value,
            "error": self.last_error,
            "prevent_copy": self.quiz.prevent_copy,
            "time_limit": self.quiz.time_limit,
            "remaining_seconds": self.remaining_seconds(),
        }
        if self.quiz.show_elapsed_time:
            view["elapsed_seconds"] = self.elapsed_seconds()

        if self.state is SessionState.CUSTOM_FIELDS:
            view["custom_fields"] = [
                {"name": f.name, "label": f.label, "required": f.required}
                for f in sorted(self.quiz.custom_fields, key=lambda f: f.position)
            ]
        elif self.state is SessionState.ANSWERING and self.questions:
            view.update({
                "index": self.index,
                "total": len(self.questions),
                "question": self._question_view(),
                "can_advance": self.can_advance,
                "can_go_back": self.can_go_back,
                "is_last": self.is_last,
            })
            if self.quiz.show_progress_bar:
                view["progress"] = round((self.index + 1) / len(self.questions) * 100)
        elif self.state is SessionState.COMPLETE and self.result is not None:
            view["result"] = self._result_view()
        return view
