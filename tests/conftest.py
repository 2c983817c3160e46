from typing import Dict, List, Optional

import pytest

from exam_session.errors import ApiError
from exam_session.models import Option, Question, RecordAnswerResult, ResultAnswer, ResultsPayload, ResultSummary, StartedSession
from exam_session.services.submission import SubmissionCoordinator
from exam_session.state import SessionStateMachine


def make_question(qid: str, subject: str = "Mathematics", correct_label: str = "A") -> Question:
    return Question(
        id=qid,
        content=f"Question {qid}?",
        difficulty="MEDIUM",
        subject_name=subject,
        options=[Option(id=f"{qid}-{label}", label=label, content=f"Option {label}") for label in "ABCD"],
    )


def make_questions(count: int, subject: str = "Mathematics") -> List[Question]:
    return [make_question(f"q{i}", subject) for i in range(1, count + 1)]


class FakeClock:
    def __init__(self) -> None:
        self.handler = None
        self.running = False
        self.starts = 0
        self.stops = 0

    def start(self, handler) -> None:
        if self.running:
            return
        self.handler = handler
        self.running = True
        self.starts += 1

    def stop(self) -> None:
        self.running = False
        self.stops += 1

    async def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.running:
                await self.handler()


class FakePracticeApi:
    """In-memory stand-in for the practice backend. Correct option is always label A."""

    def __init__(self, questions: Optional[List[Question]] = None, session_id: str = "sess-1", duration_seconds: Optional[int] = 600) -> None:
        self.session_id = session_id
        self.questions = questions if questions is not None else make_questions(3)
        self.duration_seconds = duration_seconds
        self.recorded: Dict[str, str] = {}
        self.flags: Dict[str, bool] = {}
        self.failing_answers: set[str] = set()
        self.complete_error: Optional[ApiError] = None
        self.results_error: Optional[ApiError] = None
        self.flag_error: Optional[ApiError] = None
        self.pause_error: Optional[ApiError] = None
        self.resume_error: Optional[ApiError] = None
        self.answer_calls = 0
        self.complete_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0
        self.completed_days: List[tuple] = []

    def started(self) -> StartedSession:
        return StartedSession(session_id=self.session_id, duration_seconds=self.duration_seconds, questions=self.questions)

    async def start_session(self, selectors) -> StartedSession:
        return self.started()

    async def get_session(self, session_id: str) -> StartedSession:
        if session_id != self.session_id:
            raise ApiError("not found", status_code=404, detail="Session not found")
        return self.started()

    async def record_answer(self, session_id: str, question_id: str, selected_option_id: str) -> RecordAnswerResult:
        self.answer_calls += 1
        if question_id in self.failing_answers:
            raise ApiError("answer failed", status_code=503, detail="unavailable")
        self.recorded[question_id] = selected_option_id
        return RecordAnswerResult(is_correct=selected_option_id.endswith("-A"), correct_option_id=f"{question_id}-A")

    async def set_flag(self, session_id: str, question_id: str, flagged: bool) -> None:
        if self.flag_error is not None:
            raise self.flag_error
        self.flags[question_id] = flagged

    async def pause(self, session_id: str) -> None:
        self.pause_calls += 1
        if self.pause_error is not None:
            raise self.pause_error

    async def resume(self, session_id: str) -> None:
        self.resume_calls += 1
        if self.resume_error is not None:
            raise self.resume_error

    async def complete(self, session_id: str) -> None:
        self.complete_calls += 1
        if self.complete_error is not None:
            raise self.complete_error

    async def get_results(self, session_id: str) -> ResultsPayload:
        if self.results_error is not None:
            raise self.results_error
        answers = [
            ResultAnswer(
                question=q,
                selected_option_id=self.recorded.get(q.id),
                is_correct=self.recorded.get(q.id, "").endswith("-A"),
                time_spent_seconds=5,
                flagged=self.flags.get(q.id, False),
            )
            for q in self.questions
        ]
        correct = sum(1 for a in answers if a.is_correct)
        summary = ResultSummary(
            id=session_id,
            score=100 * correct / len(answers) if answers else 0,
            total_questions=len(answers),
            correct_answers=correct,
            time_spent_seconds=120,
        )
        return ResultsPayload(session=summary, answers=answers)

    async def start_day(self, exam_id: str, day_number: int) -> StartedSession:
        return StartedSession(session_id=f"{exam_id}-day{day_number}", duration_seconds=self.duration_seconds, questions=self.questions)

    async def complete_day(self, exam_id: str, day_number: int, session_id: str) -> dict:
        self.completed_days.append((exam_id, day_number, session_id))
        return {"dayNumber": day_number, "status": "COMPLETED"}

    async def get_exam_results(self, exam_id: str) -> dict:
        return {"examId": exam_id, "days": len(self.completed_days)}


@pytest.fixture
def api() -> FakePracticeApi:
    return FakePracticeApi()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def machine(api: FakePracticeApi, clock: FakeClock) -> SessionStateMachine:
    m = SessionStateMachine(api.session_id, api, clock=clock, coordinator=SubmissionCoordinator(api, concurrency=2))
    m.activate(api.questions, api.duration_seconds)
    return m
