import asyncio
import logging
from time import perf_counter
from typing import List, Optional, Sequence

from ..config import settings
from ..errors import ApiError, FinalizationFailure, TransientSubmissionFailure
from ..models import AnswerRecord, ResultsPayload, SubmissionOutcome
from .practice_api import PracticeApiClient

logger = logging.getLogger("exam_session")


class SubmissionCoordinator:
    """Pushes an answer snapshot to the backend, then completes the session.

    One failed answer never stops the others from being recorded; only the
    complete/results step decides whether the attempt as a whole failed.
    """

    def __init__(self, api: PracticeApiClient, concurrency: int | None = None) -> None:
        self.api = api
        self.concurrency = max(1, concurrency or settings.submit_concurrency)
        self.last_failures: List[TransientSubmissionFailure] = []

    async def _record_one(self, session_id: str, record: AnswerRecord, gate: asyncio.Semaphore) -> Optional[TransientSubmissionFailure]:
        async with gate:
            try:
                await self.api.record_answer(session_id, record.question_id, record.selected_option_id)
                return None
            except ApiError as e:
                failure = TransientSubmissionFailure(record.question_id, str(e))
                logger.warning({
                    "event": "answer_submit_failed",
                    "session_id": session_id,
                    "question_id": failure.question_id,
                    "status_code": e.status_code,
                    "detail": e.detail,
                })
                return failure
            except Exception as e:
                # one broken reply must not abort the rest of the batch
                logger.exception("answer_submit_crashed")
                return TransientSubmissionFailure(record.question_id, str(e) or type(e).__name__)

    async def submit_all(self, session_id: str, snapshot: Sequence[AnswerRecord]) -> int:
        self.last_failures = []
        answered = [r for r in snapshot if r.selected_option_id is not None]
        if not answered:
            logger.debug({"event": "answers_submitted", "session_id": session_id, "count": 0, "failed": 0})
            return 0
        gate = asyncio.Semaphore(self.concurrency)
        t0 = perf_counter()
        results = await asyncio.gather(*(self._record_one(session_id, r, gate) for r in answered))
        self.last_failures = [f for f in results if f is not None]
        failed = len(self.last_failures)
        logger.info({
            "event": "answers_submitted",
            "session_id": session_id,
            "count": len(answered),
            "failed": failed,
            "duration_ms": int((perf_counter() - t0) * 1000),
        })
        return failed

    async def finalize(self, session_id: str) -> ResultsPayload:
        try:
            await self.api.complete(session_id)
            payload = await self.api.get_results(session_id)
        except ApiError as e:
            logger.warning({"event": "finalize_failed", "session_id": session_id, "status_code": e.status_code, "detail": e.detail})
            raise FinalizationFailure(e.detail or str(e), recoverable=not e.is_session_gone) from e
        logger.info({"event": "session_finalized", "session_id": session_id, "answers": len(payload.answers)})
        return payload

    async def submit_and_finalize(self, session_id: str, snapshot: Sequence[AnswerRecord]) -> SubmissionOutcome:
        failed = await self.submit_all(session_id, snapshot)
        payload = await self.finalize(session_id)
        return SubmissionOutcome(session_id=session_id, failed_answers=failed, payload=payload)
