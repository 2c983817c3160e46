import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .answer_book import AnswerBook
from .clock import Clock
from .config import settings
from .errors import ApiError, FinalizationFailure, IndexOutOfRange, InvalidSessionData, InvalidState, PauseSyncFailure, ResumeSyncFailure, UnknownOption
from .models import AnswerRecord, AttemptView, FlagResult, NavigationEntry, Question, ResultsPayload, SessionStatus
from .services.practice_api import PracticeApiClient
from .services.submission import SubmissionCoordinator

logger = logging.getLogger("exam_session")

ACTIVE = SessionStatus.ACTIVE
PAUSED = SessionStatus.PAUSED

def _now() -> datetime:
	return datetime.now(timezone.utc)

class SessionStateMachine:
	"""One attempt, from activation to a finalized result.

	All external mutation goes through the methods here. Every await on the
	backend is a point where ticks and user input may interleave, so each
	transition re-checks ``status`` instead of trusting call order.
	"""

	def __init__(self, session_id: str, api: PracticeApiClient, clock: Clock | None = None, coordinator: SubmissionCoordinator | None = None, default_duration_seconds: int | None = None) -> None:
		self.session_id = session_id
		self.api = api
		self.clock = clock or Clock()
		self.coordinator = coordinator or SubmissionCoordinator(api)
		self.default_duration_seconds = default_duration_seconds or settings.default_duration_seconds
		self.status = SessionStatus.LOADING
		self.questions: List[Question] = []
		self.answer_book = AnswerBook()
		self.current_index = 0
		self.duration_seconds: Optional[int] = None
		self.time_remaining_seconds = 0
		self.started_at: Optional[datetime] = None
		self.paused_at: Optional[datetime] = None
		self.paused_seconds_total = 0
		self.results: Optional[ResultsPayload] = None
		self.failed_answers = 0
		self.last_error: Optional[str] = None
		self.finished = asyncio.Event()
		self._auto_submit_latch = False
		self._error_origin: Optional[SessionStatus] = None
		self._sync_lock = asyncio.Lock()

	# -- read side

	@property
	def current_question(self) -> Question:
		return self.questions[self.current_index]

	@property
	def auto_submit_latched(self) -> bool:
		return self._auto_submit_latch

	@property
	def requires_confirmation(self) -> bool:
		return self.answer_book.answered_count() == 0

	@property
	def elapsed_seconds(self) -> int:
		if self.started_at is None:
			return 0
		allotted = self.duration_seconds if self.duration_seconds is not None else self.default_duration_seconds
		return allotted - self.time_remaining_seconds

	def record_for(self, question_id: str) -> AnswerRecord:
		return self.answer_book.get(question_id)

	def view(self) -> AttemptView:
		question = self.current_question if self.questions else None
		navigation = [
			NavigationEntry(index=i, question_id=r.question_id, answered=r.is_answered, flagged=r.flagged)
			for i, r in enumerate(self.answer_book.snapshot())
		]
		return AttemptView(
			session_id=self.session_id,
			status=self.status,
			current_index=self.current_index,
			total_questions=len(self.questions),
			answered_count=self.answer_book.answered_count(),
			flagged_count=self.answer_book.flagged_count(),
			duration_seconds=self.duration_seconds,
			time_remaining_seconds=self.time_remaining_seconds,
			started_at=self.started_at,
			current_question=question,
			selected_option_id=self.answer_book.get(question.id).selected_option_id if question else None,
			requires_confirmation=self.requires_confirmation if self.questions else False,
			last_error=self.last_error,
			navigation=navigation,
		)

	# -- lifecycle

	def _enter_error(self, origin: SessionStatus, reason: str) -> None:
		self.clock.stop()
		self._error_origin = origin
		self.status = SessionStatus.ERROR
		self.last_error = reason
		self.finished.set()
		logger.warning({"event": "session_error", "session_id": self.session_id, "from": origin.value, "reason": reason})

	def _validate_questions(self, questions: Sequence[Question], duration_seconds: Optional[int]) -> None:
		if not questions:
			raise InvalidSessionData("no_questions")
		for q in questions:
			if not q.options:
				raise InvalidSessionData(f"question_without_options:{q.id}")
			if len(set(q.option_ids())) != len(q.options):
				raise InvalidSessionData(f"duplicate_option_ids:{q.id}")
		if duration_seconds is not None and duration_seconds < 0:
			raise InvalidSessionData("negative_duration")

	def activate(self, questions: Sequence[Question], duration_seconds: Optional[int] = None) -> None:
		if self.status != SessionStatus.LOADING:
			raise InvalidState(f"cannot_activate_from_{self.status.value.lower()}")
		try:
			self._validate_questions(questions, duration_seconds)
			self.answer_book.initialize(q.id for q in questions)
		except InvalidSessionData as e:
			self._enter_error(SessionStatus.LOADING, e.message)
			raise
		self.questions = list(questions)
		self.current_index = 0
		self.duration_seconds = duration_seconds
		self.time_remaining_seconds = duration_seconds if duration_seconds is not None else self.default_duration_seconds
		self.started_at = _now()
		self.status = ACTIVE
		self.clock.start(self.on_tick)
		logger.info({
			"event": "session_activated",
			"session_id": self.session_id,
			"questions": len(self.questions),
			"duration_seconds": duration_seconds,
			"time_remaining_seconds": self.time_remaining_seconds,
		})

	def cancel(self) -> None:
		if self.status in (SessionStatus.COMPLETED, SessionStatus.CANCELLED):
			return
		if self.status == SessionStatus.SUBMITTING:
			raise InvalidState("submission_in_flight")
		self.clock.stop()
		self.status = SessionStatus.CANCELLED
		self.finished.set()
		logger.info({"event": "session_cancelled", "session_id": self.session_id, "answered": self.answer_book.answered_count()})

	async def exit(self, submit: bool = False) -> Optional[ResultsPayload]:
		if submit:
			return await self.submit(is_auto_submit=False)
		self.cancel()
		return None

	def recover(self) -> None:
		if self.status != SessionStatus.ERROR or self._error_origin != SessionStatus.SUBMITTING:
			raise InvalidState("nothing_to_recover")
		self.finished.clear()
		self._error_origin = None
		self.last_error = None
		self.status = ACTIVE
		self.clock.start(self.on_tick)
		logger.info({"event": "session_recovered", "session_id": self.session_id})

	# -- user input

	def select_answer(self, option_id: str) -> Optional[AnswerRecord]:
		if self.status != ACTIVE:
			logger.debug({"event": "input_ignored", "action": "select_answer", "session_id": self.session_id, "status": self.status.value})
			return None
		question = self.current_question
		if not question.has_option(option_id):
			raise UnknownOption(f"{option_id} is not an option of {question.id}")
		return self.answer_book.set_selection(question.id, option_id)

	def navigate(self, index: int) -> Question:
		if self.status not in (ACTIVE, PAUSED):
			raise InvalidState(f"cannot_navigate_while_{self.status.value.lower()}")
		if not 0 <= index < len(self.questions):
			raise IndexOutOfRange(f"{index} not in [0, {len(self.questions)})")
		self.current_index = index
		return self.current_question

	def next_question(self) -> Optional[Question]:
		if self.current_index < len(self.questions) - 1:
			return self.navigate(self.current_index + 1)
		return None

	def previous_question(self) -> Optional[Question]:
		if self.current_index > 0:
			return self.navigate(self.current_index - 1)
		return None

	async def toggle_flag(self) -> Optional[FlagResult]:
		if self.status != ACTIVE:
			logger.debug({"event": "input_ignored", "action": "toggle_flag", "session_id": self.session_id, "status": self.status.value})
			return None
		question_id = self.current_question.id
		flagged = self.answer_book.toggle_flag(question_id)
		try:
			await self.api.set_flag(self.session_id, question_id, flagged)
		except ApiError as e:
			# only undo our own change; a newer toggle made during the await wins
			if self.answer_book.get(question_id).flagged == flagged:
				self.answer_book.set_flag(question_id, not flagged)
			self.last_error = "flag_sync_failed"
			logger.warning({"event": "flag_sync_failed", "session_id": self.session_id, "question_id": question_id, "status_code": e.status_code})
			return FlagResult(question_id=question_id, flagged=self.answer_book.get(question_id).flagged, synced=False)
		return FlagResult(question_id=question_id, flagged=flagged, synced=True)

	async def pause(self) -> None:
		async with self._sync_lock:
			if self.status != ACTIVE:
				raise InvalidState(f"cannot_pause_while_{self.status.value.lower()}")
			self.clock.stop()
			self.paused_at = _now()
			self.status = PAUSED
			try:
				await self.api.pause(self.session_id)
			except ApiError as e:
				self.paused_at = None
				if e.is_session_gone:
					self._enter_error(ACTIVE, PauseSyncFailure.code)
				elif self.status == PAUSED:
					self.status = ACTIVE
					self.clock.start(self.on_tick)
					self.last_error = PauseSyncFailure.code
				logger.warning({"event": "pause_rolled_back", "session_id": self.session_id, "status_code": e.status_code})
				raise PauseSyncFailure(e.detail or str(e)) from e
			logger.info({"event": "session_paused", "session_id": self.session_id, "time_remaining_seconds": self.time_remaining_seconds})

	async def resume(self) -> None:
		async with self._sync_lock:
			if self.status != PAUSED:
				raise InvalidState(f"cannot_resume_while_{self.status.value.lower()}")
			try:
				await self.api.resume(self.session_id)
			except ApiError as e:
				if e.is_session_gone:
					self._enter_error(ACTIVE, ResumeSyncFailure.code)
				else:
					self.last_error = ResumeSyncFailure.code
				logger.warning({"event": "resume_rejected", "session_id": self.session_id, "status_code": e.status_code})
				raise ResumeSyncFailure(e.detail or str(e)) from e
			if self.status != PAUSED:
				return
			if self.paused_at is not None:
				self.paused_seconds_total += int((_now() - self.paused_at).total_seconds())
			self.paused_at = None
			self.status = ACTIVE
			self.last_error = None
			self.clock.start(self.on_tick)
			logger.info({"event": "session_resumed", "session_id": self.session_id, "paused_seconds_total": self.paused_seconds_total})

	# -- time and submission

	async def on_tick(self) -> None:
		if self.status != ACTIVE:
			return
		if self.time_remaining_seconds > 0:
			self.time_remaining_seconds -= 1
			self.answer_book.add_time(self.current_question.id, 1)
		if self.time_remaining_seconds == 0 and not self._auto_submit_latch:
			logger.info({"event": "time_up", "session_id": self.session_id})
			try:
				await self.submit(is_auto_submit=True)
			except FinalizationFailure:
				logger.warning({"event": "auto_submit_failed", "session_id": self.session_id, "error": self.last_error})

	def _submission_failed(self, is_auto_submit: bool, failure: FinalizationFailure) -> None:
		# SUBMITTING is never left behind: back to ACTIVE, or ERROR when the session is gone
		if is_auto_submit:
			self._auto_submit_latch = False
		if failure.recoverable:
			self.status = ACTIVE
			self.last_error = failure.code
			self.clock.start(self.on_tick)
		else:
			self._enter_error(SessionStatus.SUBMITTING, failure.code)

	async def submit(self, is_auto_submit: bool = False) -> Optional[ResultsPayload]:
		if is_auto_submit and self._auto_submit_latch:
			return self.results
		if self.status != ACTIVE:
			raise InvalidState(f"cannot_submit_while_{self.status.value.lower()}")
		if is_auto_submit:
			self._auto_submit_latch = True
		self.status = SessionStatus.SUBMITTING
		self.clock.stop()
		self.last_error = None
		snapshot = self.answer_book.snapshot()
		logger.info({
			"event": "submission_started",
			"session_id": self.session_id,
			"auto": is_auto_submit,
			"answered": sum(1 for r in snapshot if r.is_answered),
			"total": len(snapshot),
		})
		try:
			outcome = await self.coordinator.submit_and_finalize(self.session_id, snapshot)
		except FinalizationFailure as e:
			self._submission_failed(is_auto_submit, e)
			raise
		except asyncio.CancelledError:
			self._submission_failed(is_auto_submit, FinalizationFailure("submission_cancelled"))
			raise
		except Exception as e:
			logger.exception("submission_crashed")
			failure = FinalizationFailure(str(e) or type(e).__name__)
			self._submission_failed(is_auto_submit, failure)
			raise failure from e
		self.failed_answers = outcome.failed_answers
		self.results = outcome.payload
		self.status = SessionStatus.COMPLETED
		self.finished.set()
		logger.info({"event": "session_completed", "session_id": self.session_id, "failed_answers": outcome.failed_answers})
		return outcome.payload

class AttemptRegistry:
	def __init__(self) -> None:
		self.attempts: Dict[str, SessionStateMachine] = {}

	def add(self, machine: SessionStateMachine) -> None:
		previous = self.attempts.get(machine.session_id)
		if previous is not None and previous is not machine and previous.status != SessionStatus.SUBMITTING:
			previous.cancel()
		self.attempts[machine.session_id] = machine

	def has_attempt(self, session_id: str) -> bool:
		return session_id in self.attempts

	def get(self, session_id: str) -> SessionStateMachine:
		return self.attempts[session_id]

	def discard(self, session_id: str) -> None:
		machine = self.attempts.pop(session_id, None)
		if machine is not None and machine.status not in (SessionStatus.COMPLETED, SessionStatus.SUBMITTING):
			machine.cancel()

attempt_registry = AttemptRegistry()
