from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class SessionStatus(str, Enum):
    LOADING = "LOADING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    SUBMITTING = "SUBMITTING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class Option(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    content: str
    is_correct: Optional[bool] = None


class Question(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    difficulty: Difficulty = Difficulty.MEDIUM
    subject_name: str = "General"
    options: List[Option]
    image_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_subject(cls, data: Any) -> Any:
        # catalog payloads nest the subject as {"subject": {"name": ...}}
        if isinstance(data, dict) and "subjectName" not in data and "subject_name" not in data:
            subject = data.get("subject")
            if isinstance(subject, dict) and subject.get("name"):
                data = {**data, "subjectName": subject["name"]}
        return data

    @field_validator("difficulty", mode="before")
    @classmethod
    def _upper_difficulty(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    def option_ids(self) -> List[str]:
        return [o.id for o in self.options]

    def has_option(self, option_id: str) -> bool:
        return any(o.id == option_id for o in self.options)


class AnswerRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    selected_option_id: Optional[str] = None
    time_spent_seconds: int = Field(default=0, ge=0)
    flagged: bool = False

    @property
    def is_answered(self) -> bool:
        return self.selected_option_id is not None


class SessionSelectors(WireModel):
    subject_ids: List[str]
    topic_ids: List[str] = Field(default_factory=list)
    question_count: int = 20
    difficulty: Optional[Difficulty] = None
    duration: Optional[int] = None  # minutes; None means untimed
    category: Optional[str] = None
    name: Optional[str] = None

    @property
    def has_duration(self) -> bool:
        return self.duration is not None


class StartedSession(BaseModel):
    session_id: str
    duration_seconds: Optional[int] = None
    questions: List[Question]


class RecordAnswerResult(WireModel):
    is_correct: Optional[bool] = None
    correct_option_id: Optional[str] = None


class ResultAnswer(WireModel):
    question: Question
    selected_option_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("selectedOptionId", "selectedAnswer", "selected_option_id"))
    is_correct: bool = False
    time_spent_seconds: int = Field(default=0, validation_alias=AliasChoices("timeSpentSeconds", "timeSpent", "time_spent_seconds"))
    flagged: bool = Field(default=False, validation_alias=AliasChoices("flagged", "isFlagged"))


class ResultSummary(WireModel):
    id: str
    score: Optional[float] = None
    total_questions: Optional[int] = None
    correct_answers: Optional[int] = None
    time_spent_seconds: Optional[int] = Field(default=None, validation_alias=AliasChoices("timeSpentSeconds", "timeSpent", "time_spent_seconds"))


class ResultsPayload(WireModel):
    session: ResultSummary
    answers: List[ResultAnswer] = Field(default_factory=list)


class SubjectBreakdown(BaseModel):
    subject_name: str
    correct: int
    total: int
    percent: int


class ResultSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    score_percent: float
    grade: str
    correct_count: int
    total_count: int
    time_spent_seconds: int
    per_subject: List[SubjectBreakdown]


class SubmissionOutcome(BaseModel):
    session_id: str
    failed_answers: int
    payload: ResultsPayload


class NavigationEntry(BaseModel):
    index: int
    question_id: str
    answered: bool
    flagged: bool


class AttemptView(BaseModel):
    session_id: str
    status: SessionStatus
    current_index: int
    total_questions: int
    answered_count: int
    flagged_count: int
    duration_seconds: Optional[int] = None
    time_remaining_seconds: int
    started_at: Optional[datetime] = None
    current_question: Optional[Question] = None
    selected_option_id: Optional[str] = None
    requires_confirmation: bool = False
    last_error: Optional[str] = None
    navigation: List[NavigationEntry] = Field(default_factory=list)


class StartAttemptRequest(BaseModel):
    selectors: SessionSelectors


class SelectAnswerRequest(BaseModel):
    option_id: str


class NavigateRequest(BaseModel):
    index: int


class SubmitRequest(BaseModel):
    confirm: bool = False


class ExitRequest(BaseModel):
    submit: bool = False


class FlagResult(BaseModel):
    question_id: str
    flagged: bool
    synced: bool
