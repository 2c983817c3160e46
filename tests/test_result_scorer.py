import pytest

from exam_session.models import ResultAnswer, ResultsPayload, ResultSummary
from exam_session.services.result_scorer import breakdown_by_subject, grade_for, round_half_up, score, score_payload

from conftest import make_question


def answer(qid: str, subject: str, correct: bool, seconds: int = 10) -> ResultAnswer:
    return ResultAnswer(question=make_question(qid, subject), is_correct=correct, time_spent_seconds=seconds)


def test_seven_of_ten_is_seventy_and_grade_b():
    answers = [answer(f"q{i}", "Mathematics", i <= 7) for i in range(1, 11)]
    result = score(answers)
    assert result.score_percent == 70.0
    assert result.correct_count == 7
    assert result.total_count == 10
    assert result.grade == "B"
    assert result.time_spent_seconds == 100


def test_per_subject_breakdown_keeps_first_seen_order():
    answers = [
        answer("m1", "Mathematics", True),
        answer("e1", "English", True),
        answer("m2", "Mathematics", True),
        answer("e2", "English", True),
        answer("m3", "Mathematics", True),
        answer("e3", "English", True),
        answer("m4", "Mathematics", False),
        answer("e4", "English", True),
        answer("e5", "English", False),
        answer("e6", "English", False),
    ]
    breakdown = breakdown_by_subject(answers)
    assert [(b.subject_name, b.correct, b.total, b.percent) for b in breakdown] == [
        ("Mathematics", 3, 4, 75),
        ("English", 4, 6, 67),
    ]


def test_unanswered_questions_still_count_towards_total():
    questions = [make_question(f"q{i}") for i in range(1, 5)]
    answers = [answer("q1", "Mathematics", True)]
    result = score(answers, questions)
    assert result.total_count == 4
    assert result.score_percent == 25.0
    assert result.grade == "F"


def test_empty_session_scores_zero():
    result = score([])
    assert result.score_percent == 0.0
    assert result.total_count == 0
    assert result.grade == "F"
    assert result.per_subject == []


@pytest.mark.parametrize(
    "percent, grade",
    [(100, "A"), (75, "A"), (74.9, "B"), (65, "B"), (64.99, "C"), (50, "C"), (49, "D"), (40, "D"), (39.9, "F"), (0, "F")],
)
def test_grade_bands(percent, grade):
    assert grade_for(percent) == grade


def test_round_half_up():
    assert round_half_up(66.5) == 67
    assert round_half_up(62.5) == 63
    assert round_half_up(66.49) == 66


def test_score_payload_prefers_session_time():
    answers = [answer("q1", "Mathematics", True, 5), answer("q2", "Mathematics", False, 5)]
    payload = ResultsPayload(session=ResultSummary(id="s", time_spent_seconds=300), answers=answers)
    result = score_payload(payload)
    assert result.time_spent_seconds == 300
    assert result.score_percent == 50.0
