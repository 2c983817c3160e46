from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from ..models import Question, ResultAnswer, ResultSet, ResultsPayload, SubjectBreakdown

GRADE_BANDS = [(75, "A"), (65, "B"), (50, "C"), (40, "D")]


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def grade_for(score_percent: float) -> str:
    for lower, grade in GRADE_BANDS:
        if score_percent >= lower:
            return grade
    return "F"


def _question_order(answers: Sequence[ResultAnswer], questions: Optional[Sequence[Question]]) -> List[Question]:
    # questions without an answer row still count; answers for unknown questions are appended
    ordered: List[Question] = list(questions or [])
    known = {q.id for q in ordered}
    for a in answers:
        if a.question.id not in known:
            ordered.append(a.question)
            known.add(a.question.id)
    return ordered


def _correct_ids(answers: Sequence[ResultAnswer]) -> set[str]:
    return {a.question.id for a in answers if a.is_correct}


def breakdown_by_subject(answers: Sequence[ResultAnswer], questions: Optional[Sequence[Question]] = None) -> List[SubjectBreakdown]:
    correct_ids = _correct_ids(answers)
    groups: Dict[str, List[int]] = {}
    for q in _question_order(answers, questions):
        stats = groups.setdefault(q.subject_name, [0, 0])
        stats[1] += 1
        if q.id in correct_ids:
            stats[0] += 1
    return [
        SubjectBreakdown(subject_name=name, correct=correct, total=total, percent=round_half_up(100 * correct / total))
        for name, (correct, total) in groups.items()
    ]


def score(answers: Sequence[ResultAnswer], questions: Optional[Sequence[Question]] = None, time_spent_seconds: Optional[int] = None) -> ResultSet:
    ordered = _question_order(answers, questions)
    total = len(ordered)
    correct = len(_correct_ids(answers))
    score_percent = 100 * correct / total if total else 0.0
    if time_spent_seconds is None:
        time_spent_seconds = sum(a.time_spent_seconds for a in answers)
    return ResultSet(
        score_percent=score_percent,
        grade=grade_for(score_percent),
        correct_count=correct,
        total_count=total,
        time_spent_seconds=time_spent_seconds,
        per_subject=breakdown_by_subject(answers, ordered),
    )


def score_payload(payload: ResultsPayload, questions: Optional[Sequence[Question]] = None) -> ResultSet:
    return score(payload.answers, questions, payload.session.time_spent_seconds)
