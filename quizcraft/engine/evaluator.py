"""Correctness and points for one submitted answer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from quizcraft.engine.codec import (
    AnswerSpec,
    FreeText,
    Matching,
    MultipleChoice,
    Numeric,
    SingleChoice,
    TrueFalse,
)


@dataclass(frozen=True, slots=True)
class Evaluation:
    decided: bool
    correct: bool | None
    points_awarded: float | None


PENDING = Evaluation(decided=False, correct=None, points_awarded=None)


def _is_correct(spec: AnswerSpec, submitted: Any) -> bool:
    if isinstance(spec, (SingleChoice, TrueFalse)):
        return spec.correct_id is not None and submitted == spec.correct_id

    if isinstance(spec, MultipleChoice):
        return set(submitted) == set(spec.correct_ids)

    if isinstance(spec, Numeric):
        return spec.correct_value is not None and submitted == spec.correct_value

    if isinstance(spec, Matching):
        # Labels are compared pairwise. Ids are positional and mean nothing
        # across the two columns, so two left items sharing a label are interchangeable.
        for left in spec.options:
            right = spec.option(submitted.get(left.id, ""))
            if right is None or right.matching_text != left.matching_text:
                return False
        return True

    return False


def evaluate(spec: AnswerSpec, points: float, submitted: Any) -> Evaluation:
    """Decide ``submitted`` (already encoded, or ``None`` when unanswered).

    Free text is never decided here; it waits for a person.
    """
    if isinstance(spec, FreeText):
        return PENDING
    if submitted is None:
        return Evaluation(decided=True, correct=False, points_awarded=0)
    if _is_correct(spec, submitted):
        return Evaluation(decided=True, correct=True, points_awarded=points)
    return Evaluation(decided=True, correct=False, points_awarded=0)
