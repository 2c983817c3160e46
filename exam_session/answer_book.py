from typing import Dict, Iterable, Tuple

from .errors import InvalidSessionData, InvalidState, UnknownQuestion
from .models import AnswerRecord


class AnswerBook:
    """Per-question answer state for one attempt.

    Records are frozen models; every mutation swaps in a new record so a
    snapshot taken earlier never changes underneath its holder.
    """

    def __init__(self) -> None:
        self._records: Dict[str, AnswerRecord] = {}
        self._initialized = False

    def initialize(self, question_ids: Iterable[str]) -> None:
        if self._initialized:
            raise InvalidState("answer_book_already_initialized")
        ids = list(question_ids)
        if len(set(ids)) != len(ids):
            raise InvalidSessionData("duplicate_question_ids")
        # dicts keep insertion order, which is the question order
        self._records = {qid: AnswerRecord(question_id=qid) for qid in ids}
        self._initialized = True

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._records

    def get(self, question_id: str) -> AnswerRecord:
        try:
            return self._records[question_id]
        except KeyError:
            raise UnknownQuestion(question_id) from None

    def _replace(self, question_id: str, **changes) -> AnswerRecord:
        updated = self.get(question_id).model_copy(update=changes)
        self._records[question_id] = updated
        return updated

    def set_selection(self, question_id: str, option_id: str | None) -> AnswerRecord:
        return self._replace(question_id, selected_option_id=option_id)

    def toggle_flag(self, question_id: str) -> bool:
        current = self.get(question_id)
        return self._replace(question_id, flagged=not current.flagged).flagged

    def set_flag(self, question_id: str, flagged: bool) -> AnswerRecord:
        return self._replace(question_id, flagged=flagged)

    def add_time(self, question_id: str, seconds: int = 1) -> AnswerRecord:
        current = self.get(question_id)
        return self._replace(question_id, time_spent_seconds=current.time_spent_seconds + max(seconds, 0))

    def answered_count(self) -> int:
        return sum(1 for r in self._records.values() if r.is_answered)

    def flagged_count(self) -> int:
        return sum(1 for r in self._records.values() if r.flagged)

    def snapshot(self) -> Tuple[AnswerRecord, ...]:
        return tuple(r.model_copy() for r in self._records.values())
