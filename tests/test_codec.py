import random

import pytest

from quizcraft.core.errors import AnswerValidationError, ValidationError
from quizcraft.engine import codec
from quizcraft.engine.codec import (
    FreeText,
    GradingMethod,
    Matching,
    MultipleChoice,
    Numeric,
    Option,
    QuestionType,
    SingleChoice,
    TrueFalse,
)

CHOICES = [{"id": "A", "text": "Paris"}, {"id": "B", "text": "Rome"}, {"id": "C", "text": "Oslo"}]
PAIRS = [
    {"id": "1", "text": "France", "matchingText": "Paris"},
    {"id": "2", "text": "Italy", "matchingText": "Rome"},
    {"id": "3", "text": "Norway", "matchingText": "Oslo"},
]


def test_decode_single_choice():
    spec = codec.decode("single_choice", CHOICES, ["B"])
    assert isinstance(spec, SingleChoice)
    assert spec.correct_id == "B"
    assert [o.text for o in spec.options] == ["Paris", "Rome", "Oslo"]


def test_decode_multiple_choice_collects_all_correct_ids():
    spec = codec.decode(QuestionType.MULTIPLE_CHOICE, CHOICES, ["A", "C"])
    assert isinstance(spec, MultipleChoice)
    assert spec.correct_ids == frozenset({"A", "C"})


def test_true_false_is_stored_with_fixed_options():
    options, correct = codec.dump(TrueFalse("0"))
    assert options == [{"0": "True"}, {"1": "False"}]
    assert correct == ["0"]
    assert codec.decode("true_false", options, correct) == TrueFalse("0")


def test_numeric_and_text_have_no_options():
    assert codec.decode("number", None, [42]).options == ()
    assert codec.decode("text", None, ["ref"]).options == ()


def test_matching_survives_dump_and_decode():
    spec = codec.validate_payload("matching", PAIRS, None)
    options, correct = codec.dump(spec)
    assert correct == ["1", "2", "3"]
    assert codec.decode("matching", options, correct) == spec


def test_grading_method_follows_question_type():
    assert codec.grading_method_for(QuestionType.TEXT) is GradingMethod.MANUAL
    for question_type in QuestionType:
        if question_type is not QuestionType.TEXT:
            assert codec.grading_method_for(question_type) is GradingMethod.AUTOMATIC


def test_public_view_never_carries_correct_answers():
    spec = codec.decode("single_choice", CHOICES, ["A"])
    view = codec.public_view(spec)
    assert view == {"question_type": "single_choice", "options": [{"id": o["id"], "text": o["text"]} for o in CHOICES]}


def test_public_view_of_matching_lists_right_column():
    spec = codec.decode("matching", PAIRS, None)
    view = codec.public_view(spec)
    assert [item["text"] for item in view["right_items"]] == ["Paris", "Rome", "Oslo"]
    assert all("matchingText" not in o for o in view["options"])


def test_shuffled_keeps_the_same_options():
    spec = codec.decode("matching", PAIRS, None)
    mixed = codec.shuffled(spec, random.Random(7))
    assert {o.id for o in mixed.options} == {"1", "2", "3"}
    assert set(mixed.right_order) == {"1", "2", "3"}
    assert codec.shuffled(FreeText("x"), random.Random(7)) == FreeText("x")


# --- encode -------------------------------------------------------------------

def test_encode_single_choice():
    spec = codec.decode("single_choice", CHOICES, ["A"])
    assert codec.encode(spec, "B") == "B"
    with pytest.raises(AnswerValidationError):
        codec.encode(spec, None)
    with pytest.raises(AnswerValidationError):
        codec.encode(spec, "Z")


def test_encode_multiple_choice_requires_a_selection_and_deduplicates():
    spec = codec.decode("multiple_choice", CHOICES, ["A"])
    assert codec.encode(spec, ["C", "A", "C"]) == ["C", "A"]
    with pytest.raises(AnswerValidationError):
        codec.encode(spec, [])


def test_encode_free_text_rejects_blank():
    spec = FreeText("reference")
    assert codec.encode(spec, "  my answer ") == "  my answer "
    with pytest.raises(AnswerValidationError):
        codec.encode(spec, "   ")


@pytest.mark.parametrize("value, expected", [(42, 42), ("42", 42), ("3.5", 3.5), (" -2 ", -2)])
def test_encode_number_parses(value, expected):
    assert codec.encode(Numeric(1), value) == expected


@pytest.mark.parametrize("value", [None, "", "abc", "nan", True])
def test_encode_number_rejects(value):
    with pytest.raises(AnswerValidationError):
        codec.encode(Numeric(1), value)


def test_encode_matching_requires_every_pair():
    spec = codec.decode("matching", PAIRS, None)
    assert codec.encode(spec, {"1": "1", "2": "3", "3": "2"}) == {"1": "1", "2": "3", "3": "2"}
    with pytest.raises(AnswerValidationError):
        codec.encode(spec, {"1": "1", "2": "2"})
    assert not codec.is_complete(spec, {"1": "1"})


# --- validate_payload ---------------------------------------------------------

def test_validate_payload_enforces_option_count():
    with pytest.raises(ValidationError):
        codec.validate_payload("single_choice", CHOICES[:1], ["A"])
    nine = [{"id": str(i), "text": f"option {i}"} for i in range(9)]
    with pytest.raises(ValidationError):
        codec.validate_payload("multiple_choice", nine, ["0"])
    eight = nine[:8]
    assert isinstance(codec.validate_payload("multiple_choice", eight, ["0"]), MultipleChoice)


def test_validate_payload_single_choice_needs_exactly_one_known_answer():
    with pytest.raises(ValidationError):
        codec.validate_payload("single_choice", CHOICES, ["A", "B"])
    with pytest.raises(ValidationError):
        codec.validate_payload("single_choice", CHOICES, ["Z"])


def test_validate_payload_rejects_duplicate_ids_and_unknown_type():
    with pytest.raises(ValidationError):
        codec.validate_payload("single_choice", [{"id": "A", "text": "x"}, {"id": "A", "text": "y"}], ["A"])
    with pytest.raises(ValidationError) as excinfo:
        codec.validate_payload("essay", None, None)
    assert excinfo.value.field == "question_type"


def test_validate_payload_matching_needs_matching_text():
    with pytest.raises(ValidationError):
        codec.validate_payload("matching", [{"id": "1", "text": "France"}, {"id": "2", "text": "Italy"}], None)


def test_validate_payload_true_false_and_number():
    assert codec.validate_payload("true_false", None, ["1"]) == TrueFalse("1")
    with pytest.raises(ValidationError):
        codec.validate_payload("true_false", None, ["2"])
    assert codec.validate_payload("number", None, ["12"]) == Numeric(12)
    with pytest.raises(ValidationError):
        codec.validate_payload("number", None, ["twelve"])


def test_matching_option_lookup():
    spec = Matching((Option("1", "France", "Paris"),))
    assert spec.option("1").matching_text == "Paris"
    assert spec.option("9") is None
