"""Translation between stored question payloads and typed answer options.

Questions are stored with two type-erased JSON columns, ``options`` and
``correct_answers``, whose shape depends on ``question_type``:

================  ====================================  ==============================
type              options                               correct_answers
================  ====================================  ==============================
single_choice     ``[{"id", "text"}, ...]``             ``[id]``
multiple_choice   ``[{"id", "text"}, ...]``             ``[id, ...]``
true_false        ``[{"0": "True"}, {"1": "False"}]``   ``["0"]`` or ``["1"]``
text              ``None``                              ``[reference string]``
number            ``None``                              ``[number]``
matching          ``[{"id", "text", "matchingText"}]``  every option id
================  ====================================  ==============================

:func:`decode` turns a stored payload into one of the variant dataclasses below,
:func:`encode` turns a respondent's in-progress value into the shape that gets
persisted, and :func:`validate_payload` checks an author's payload before it is
written.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import math
import random
from typing import Any, ClassVar, Union

from quizcraft.core.errors import AnswerValidationError, ValidationError

MIN_CHOICE_OPTIONS = 2
MAX_CHOICE_OPTIONS = 8


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    TEXT = "text"
    NUMBER = "number"
    MATCHING = "matching"


class GradingMethod(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


def grading_method_for(question_type: QuestionType) -> GradingMethod:
    """Free text is always graded by a person; everything else automatically."""
    if question_type is QuestionType.TEXT:
        return GradingMethod.MANUAL
    return GradingMethod.AUTOMATIC


@dataclass(frozen=True, slots=True)
class Option:
    id: str
    text: str
    matching_text: str | None = None


TRUE_FALSE_OPTIONS: tuple[Option, ...] = (Option("0", "True"), Option("1", "False"))


@dataclass(frozen=True, slots=True)
class SingleChoice:
    tag: ClassVar[QuestionType] = QuestionType.SINGLE_CHOICE

    options: tuple[Option, ...]
    correct_id: str | None = None


@dataclass(frozen=True, slots=True)
class MultipleChoice:
    tag: ClassVar[QuestionType] = QuestionType.MULTIPLE_CHOICE

    options: tuple[Option, ...]
    correct_ids: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class TrueFalse:
    tag: ClassVar[QuestionType] = QuestionType.TRUE_FALSE

    correct_id: str | None = None
    options: tuple[Option, ...] = TRUE_FALSE_OPTIONS


@dataclass(frozen=True, slots=True)
class FreeText:
    tag: ClassVar[QuestionType] = QuestionType.TEXT

    reference: str = ""

    @property
    def options(self) -> tuple[Option, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class Numeric:
    tag: ClassVar[QuestionType] = QuestionType.NUMBER

    correct_value: float | int | None = None

    @property
    def options(self) -> tuple[Option, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class Matching:
    """Left items are ``options``; the right column is their ``matching_text``.

    ``right_order`` holds the option ids in the order the right column is shown,
    which differs from the left order once answers are randomized.
    """

    tag: ClassVar[QuestionType] = QuestionType.MATCHING

    options: tuple[Option, ...]
    right_order: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.right_order:
            object.__setattr__(self, "right_order", tuple(o.id for o in self.options))

    def option(self, option_id: str) -> Option | None:
        return next((o for o in self.options if o.id == option_id), None)


AnswerSpec = Union[SingleChoice, MultipleChoice, TrueFalse, FreeText, Numeric, Matching]


# --- decoding -----------------------------------------------------------------

def _as_list(raw: Any) -> list:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


def _decode_options(raw: Any) -> tuple[Option, ...]:
    options = []
    for item in _as_list(raw):
        if not isinstance(item, dict):
            continue
        matching = item.get("matchingText")
        options.append(Option(
            id=str(item.get("id")),
            text=str(item.get("text") or ""),
            matching_text=None if matching is None else str(matching),
        ))
    return tuple(options)


def _first(raw: Any) -> Any:
    values = _as_list(raw)
    return values[0] if values else None


def decode(question_type: QuestionType | str, options: Any, correct_answers: Any) -> AnswerSpec:
    """Build the typed variant for a stored question payload."""
    question_type = QuestionType(question_type)

    if question_type is QuestionType.SINGLE_CHOICE:
        correct = _first(correct_answers)
        return SingleChoice(_decode_options(options), None if correct is None else str(correct))
    if question_type is QuestionType.MULTIPLE_CHOICE:
        return MultipleChoice(_decode_options(options), frozenset(str(c) for c in _as_list(correct_answers)))
    if question_type is QuestionType.TRUE_FALSE:
        correct = _first(correct_answers)
        return TrueFalse(None if correct is None else str(correct))
    if question_type is QuestionType.TEXT:
        reference = _first(correct_answers)
        return FreeText("" if reference is None else str(reference))
    if question_type is QuestionType.NUMBER:
        return Numeric(_parse_number(_first(correct_answers)))
    return Matching(_decode_options(options))


def dump(spec: AnswerSpec) -> tuple[list | None, list]:
    """Inverse of :func:`decode`: the ``(options, correct_answers)`` to store."""
    if isinstance(spec, TrueFalse):
        return [{o.id: o.text} for o in TRUE_FALSE_OPTIONS], [spec.correct_id] if spec.correct_id else []
    if isinstance(spec, FreeText):
        return None, [spec.reference]
    if isinstance(spec, Numeric):
        return None, [] if spec.correct_value is None else [spec.correct_value]
    if isinstance(spec, Matching):
        options = [{"id": o.id, "text": o.text, "matchingText": o.matching_text} for o in spec.options]
        return options, [o.id for o in spec.options]

    options = [{"id": o.id, "text": o.text} for o in spec.options]
    if isinstance(spec, SingleChoice):
        return options, [spec.correct_id] if spec.correct_id else []
    return options, [o.id for o in spec.options if o.id in spec.correct_ids]


def correct_answers_of(spec: AnswerSpec) -> Any:
    """Correct answer in the same shape a respondent would submit it."""
    if isinstance(spec, (SingleChoice, TrueFalse)):
        return spec.correct_id
    if isinstance(spec, MultipleChoice):
        return sorted(spec.correct_ids)
    if isinstance(spec, FreeText):
        return spec.reference
    if isinstance(spec, Numeric):
        return spec.correct_value
    return {o.id: o.id for o in spec.options}


def public_view(spec: AnswerSpec) -> dict:
    """What an input widget needs to render the question. Never includes correct answers."""
    view: dict = {
        "question_type": spec.tag.value,
        "options": [{"id": o.id, "text": o.text} for o in spec.options],
    }
    if isinstance(spec, Matching):
        view["right_items"] = [
            {"id": option_id, "text": spec.option(option_id).matching_text}
            for option_id in spec.right_order
        ]
    return view


def shuffled(spec: AnswerSpec, rng: random.Random) -> AnswerSpec:
    """Same question with its option order (and matching right column) randomized."""
    if isinstance(spec, (FreeText, Numeric)):
        return spec
    options = list(spec.options)
    rng.shuffle(options)
    if isinstance(spec, Matching):
        right_order = list(spec.right_order)
        rng.shuffle(right_order)
        return replace(spec, options=tuple(options), right_order=tuple(right_order))
    return replace(spec, options=tuple(options))


# --- encoding -----------------------------------------------------------------

def _parse_number(value: Any) -> float | int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if not (isinstance(value, float) and math.isnan(value)) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number


def _option_ids(spec: AnswerSpec) -> set[str]:
    return {o.id for o in spec.options}


def encode(spec: AnswerSpec, value: Any) -> Any:
    """Validate a respondent's value and return the shape persisted in ``answers.user_answer``."""
    if isinstance(spec, (SingleChoice, TrueFalse)):
        if value is None or isinstance(value, (list, dict)) or str(value).strip() == "":
            raise AnswerValidationError("Select an answer", field="value")
        choice = str(value)
        if choice not in _option_ids(spec):
            raise AnswerValidationError(f"Unknown option {choice!r}", field="value")
        return choice

    if isinstance(spec, MultipleChoice):
        selections = [str(v) for v in _as_list(value) if v is not None and str(v) != ""]
        if not selections:
            raise AnswerValidationError("Select at least one answer", field="value")
        unknown = [s for s in selections if s not in _option_ids(spec)]
        if unknown:
            raise AnswerValidationError(f"Unknown options {unknown!r}", field="value")
        return list(dict.fromkeys(selections))

    if isinstance(spec, FreeText):
        if not isinstance(value, str) or not value.strip():
            raise AnswerValidationError("Enter an answer", field="value")
        return value

    if isinstance(spec, Numeric):
        number = _parse_number(value)
        if number is None:
            raise AnswerValidationError("Enter a number", field="value")
        return number

    if not isinstance(value, dict):
        raise AnswerValidationError("Pair every item", field="value")
    pairs = {str(k): str(v) for k, v in value.items() if v is not None and str(v) != ""}
    known = _option_ids(spec)
    missing = [o.id for o in spec.options if o.id not in pairs]
    if missing:
        raise AnswerValidationError(f"Items {missing!r} are not paired", field="value")
    unknown = [v for k, v in pairs.items() if k not in known or v not in known]
    if unknown:
        raise AnswerValidationError(f"Unknown items {unknown!r}", field="value")
    return {o.id: pairs[o.id] for o in spec.options}


def is_complete(spec: AnswerSpec, value: Any) -> bool:
    """True when ``value`` satisfies the completeness rule of its question type."""
    try:
        encode(spec, value)
    except AnswerValidationError:
        return False
    return True


# --- authoring ----------------------------------------------------------------

def validate_payload(question_type: QuestionType | str, options: Any, correct_answers: Any) -> AnswerSpec:
    """Check an author's payload and return the normalized variant to store.

    Raises :class:`ValidationError` describing the first problem found.
    """
    try:
        question_type = QuestionType(question_type)
    except ValueError:
        raise ValidationError(f"Unknown question type {question_type!r}", field="question_type") from None

    if question_type is QuestionType.TRUE_FALSE:
        correct = [str(c) for c in _as_list(correct_answers)]
        if len(correct) != 1 or correct[0] not in ("0", "1"):
            raise ValidationError('True/false needs exactly one correct answer, "0" or "1"', field="correct_answers")
        return TrueFalse(correct[0])

    if question_type is QuestionType.TEXT:
        reference = _as_list(correct_answers)
        if len(reference) != 1 or not isinstance(reference[0], str):
            raise ValidationError("Free text needs one reference answer", field="correct_answers")
        return FreeText(reference[0])

    if question_type is QuestionType.NUMBER:
        values = _as_list(correct_answers)
        number = _parse_number(values[0]) if len(values) == 1 else None
        if number is None:
            raise ValidationError("Numeric questions need one numeric correct answer", field="correct_answers")
        return Numeric(number)

    parsed = _decode_options(options)
    if len(parsed) != len(_as_list(options)):
        raise ValidationError("Options must be objects with an id and text", field="options")
    if not MIN_CHOICE_OPTIONS <= len(parsed) <= MAX_CHOICE_OPTIONS:
        raise ValidationError(
            f"Provide between {MIN_CHOICE_OPTIONS} and {MAX_CHOICE_OPTIONS} options", field="options"
        )
    if any(not o.text.strip() for o in parsed):
        raise ValidationError("Option text cannot be empty", field="options")
    ids = [o.id for o in parsed]
    if len(set(ids)) != len(ids):
        raise ValidationError("Option ids must be unique", field="options")

    if question_type is QuestionType.MATCHING:
        if any(o.matching_text is None or not o.matching_text.strip() for o in parsed):
            raise ValidationError("Every matching item needs matchingText", field="options")
        return Matching(parsed)

    correct = [str(c) for c in _as_list(correct_answers)]
    if any(c not in ids for c in correct):
        raise ValidationError("Correct answers must reference option ids", field="correct_answers")
    if question_type is QuestionType.SINGLE_CHOICE:
        if len(correct) != 1:
            raise ValidationError("Single choice needs exactly one correct answer", field="correct_answers")
        return SingleChoice(parsed, correct[0])
    if not correct:
        raise ValidationError("Mark at least one correct answer", field="correct_answers")
    return MultipleChoice(parsed, frozenset(correct))
