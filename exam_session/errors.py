class EngineError(Exception):
    code = "engine_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidSessionData(EngineError):
    code = "invalid_session_data"


class InvalidState(EngineError):
    code = "invalid_state"


class UnknownQuestion(EngineError):
    code = "unknown_question"


class UnknownOption(EngineError):
    code = "unknown_option"


class IndexOutOfRange(EngineError):
    code = "index_out_of_range"


class TransientSubmissionFailure(EngineError):
    code = "answer_submit_failed"

    def __init__(self, question_id: str, message: str | None = None) -> None:
        super().__init__(message)
        self.question_id = question_id


class FinalizationFailure(EngineError):
    code = "finalization_failed"

    def __init__(self, message: str | None = None, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class PauseSyncFailure(EngineError):
    code = "pause_sync_failed"


class ResumeSyncFailure(EngineError):
    code = "resume_sync_failed"


class ApiError(EngineError):
    """Failure talking to the practice API (transport error or non-2xx reply)."""

    code = "api_error"

    def __init__(self, message: str | None = None, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_session_gone(self) -> bool:
        return self.status_code in (404, 410)
