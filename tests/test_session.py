from datetime import datetime, timedelta, timezone
import random

import pytest

from quizcraft.core.errors import AnswerValidationError, AuthorizationError, ValidationError
from quizcraft.core.security import AuthContext
from quizcraft.engine import codec
from quizcraft.engine.session import (
    CustomFieldDef,
    QuizSession,
    QuizSnapshot,
    ServedQuestion,
    SessionState,
    build_served_questions,
)
from quizcraft.engine.submission import SubmissionResult

CHOICES = [{"id": "A", "text": "yes"}, {"id": "B", "text": "no"}]
START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def question(qid, position=None, points=1, question_type="single_choice"):
    if question_type == "text":
        spec = codec.decode("text", None, ["reference"])
    else:
        spec = codec.decode(question_type, CHOICES, ["A"])
    return ServedQuestion(qid, qid if position is None else position, f"Question {qid}", points, spec)


class Clock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now


def make_session(count=2, questions=None, clock=None, **settings):
    snapshot = QuizSnapshot(
        id=1,
        title="Quiz",
        questions=questions if questions is not None else [question(i) for i in range(1, count + 1)],
        **settings,
    )
    session = QuizSession(
        snapshot,
        attempt_id=10,
        respondent=AuthContext(user_id=1, email="taker@example.com"),
        rng=random.Random(3),
        clock=clock or Clock(),
    )
    session.begin()
    return session


def test_begin_goes_straight_to_answering_without_gates():
    session = make_session()
    assert session.state is SessionState.ANSWERING
    assert session.index == 0
    with pytest.raises(ValidationError):
        session.begin()


def test_password_gate():
    session = make_session(password="letmein")
    assert session.state is SessionState.PASSWORD_GATE

    with pytest.raises(AuthorizationError):
        session.unlock("wrong")
    assert session.state is SessionState.PASSWORD_GATE
    assert session.view()["error"] == "Incorrect password"

    session.unlock("letmein")
    assert session.state is SessionState.ANSWERING
    assert session.view()["error"] is None


def test_custom_fields_follow_the_password_gate():
    fields = [CustomFieldDef("team", "Team", False, 1), CustomFieldDef("name", "Full name", True, 0)]
    session = make_session(password="pw", custom_fields=fields)
    session.unlock("pw")
    assert session.state is SessionState.CUSTOM_FIELDS
    assert [f["name"] for f in session.view()["custom_fields"]] == ["name", "team"]

    with pytest.raises(ValidationError) as excinfo:
        session.submit_fields({"name": "   ", "team": "Blue"})
    assert excinfo.value.details == [{"field": "name", "message": "Full name is required"}]
    assert session.state is SessionState.CUSTOM_FIELDS

    with pytest.raises(ValidationError):
        session.submit_fields({"name": "Ann", "shoe_size": "42"})

    cleaned = session.submit_fields({"name": " Ann ", "team": ""})
    assert cleaned == {"name": "Ann"}
    assert session.state is SessionState.ANSWERING


def test_next_requires_a_complete_answer():
    session = make_session()
    assert not session.can_advance
    with pytest.raises(AnswerValidationError):
        session.next()

    session.set_answer("A")
    assert session.can_advance
    assert session.next() is None
    assert session.index == 1


def test_next_on_last_question_is_rejected():
    session = make_session(count=1)
    session.set_answer("A")
    assert session.is_last
    with pytest.raises(ValidationError):
        session.next()


def test_confirmation_before_moving_onto_the_last_question():
    session = make_session(count=3, confirm_last_next=True)
    session.set_answer("A")
    assert session.next() is None

    session.set_answer("B")
    confirmation = session.next()
    assert confirmation.kind == "confirm_last_next"
    assert session.index == 1

    assert session.next(confirmed=True) is None
    assert session.index == 2


def test_prev_keeps_answers():
    session = make_session()
    with pytest.raises(ValidationError):
        session.prev()

    session.set_answer("B")
    session.next()
    assert session.can_go_back
    session.prev()
    assert session.index == 0
    assert session.view()["question"]["answer"] == "B"


def test_prev_is_blocked_when_back_navigation_is_prevented():
    session = make_session(prevent_back_navigation=True)
    session.set_answer("A")
    session.next()
    assert not session.can_go_back
    with pytest.raises(ValidationError):
        session.prev()
    assert session.index == 1


def test_finish_asks_about_unanswered_questions():
    session = make_session(confirm_finish=False)
    session.set_answer("A")

    confirmation = session.finish()
    assert confirmation.kind == "confirm_finish"
    assert confirmation.unanswered == 1
    assert session.state is SessionState.ANSWERING

    assert session.finish(confirmed=True) is None
    assert session.state is SessionState.SUBMITTING
    assert session.encoded_answers() == {1: "A", 2: None}


def test_finish_without_prompt_when_everything_is_answered():
    session = make_session(count=1, confirm_finish=False)
    session.set_answer("A")
    assert session.finish() is None
    assert session.state is SessionState.SUBMITTING


def test_confirm_finish_setting_always_asks():
    session = make_session(count=1, confirm_finish=True)
    session.set_answer("A")
    confirmation = session.finish()
    assert confirmation.kind == "confirm_finish"
    assert confirmation.unanswered == 0


def test_clearing_an_answer():
    session = make_session()
    session.set_answer("A")
    session.set_answer(None)
    assert session.unanswered_count() == 2


@pytest.mark.parametrize("limit, served", [(None, 5), (0, 5), (3, 3), (5, 5), (10, 5), (1, 1)])
def test_question_limit(limit, served):
    questions = [question(i) for i in range(1, 6)]
    result = build_served_questions(questions, question_limit=limit, rng=random.Random(1))
    assert len(result) == served
    assert [q.id for q in result] == list(range(1, served + 1))


def test_questions_are_served_by_position():
    questions = [question(1, position=2), question(2, position=0), question(3, position=1)]
    assert [q.id for q in build_served_questions(questions)] == [2, 3, 1]


def test_randomized_questions_keep_the_same_set():
    questions = [question(i) for i in range(1, 9)]
    everything = build_served_questions(
        questions, randomize_questions=True, randomize_answers=True, rng=random.Random(5)
    )
    served = build_served_questions(
        questions, randomize_questions=True, randomize_answers=True, question_limit=4, rng=random.Random(5)
    )
    assert sorted(q.id for q in everything) == list(range(1, 9))
    assert len(served) == 4
    # the limit keeps the head of the shuffled order
    assert [q.id for q in served] == [q.id for q in everything[:4]]
    assert all({o.id for o in q.spec.options} == {"A", "B"} for q in served)


def test_timer_fields():
    clock = Clock()
    session = make_session(clock=clock, time_limit=10, show_elapsed_time=True)
    assert session.view()["remaining_seconds"] == 600

    clock.now = START + timedelta(seconds=90)
    view = session.view()
    assert view["remaining_seconds"] == 510
    assert view["elapsed_seconds"] == 90

    clock.now = START + timedelta(minutes=20)
    assert session.remaining_seconds() == 0


def test_view_hides_correct_answers_and_shows_progress():
    session = make_session(show_progress_bar=True, show_question_numbers=True)
    view = session.view()
    assert view["state"] == "answering"
    assert view["progress"] == 50
    assert view["question"]["number"] == 1
    assert "correct_answers" not in view["question"]
    assert "elapsed_seconds" not in view


def test_scores_and_pending_questions():
    session = make_session(questions=[question(1, points=2), question(2, points=5, question_type="text")])
    assert session.max_score == 7
    assert session.has_pending_questions


def test_result_view_for_pending_and_graded_results():
    session = make_session(count=1, confirm_finish=False)
    session.set_answer("A")
    session.finish()
    session.complete(SubmissionResult(score=1, max_score=6, is_graded=False))
    result = session.view()["result"]
    assert result["message"] == "Your answers are awaiting manual grading"
    assert "percentage" not in result

    graded = make_session(count=1, confirm_finish=False)
    graded.set_answer("A")
    graded.finish()
    graded.complete(SubmissionResult(score=1, max_score=1, is_graded=True))
    assert graded.view()["result"]["percentage"] == 100
    assert graded.state is SessionState.COMPLETE
