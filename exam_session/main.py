from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
from time import perf_counter
from datetime import datetime, timezone
from .state import SessionStateMachine, attempt_registry
from .models import AttemptView, ExitRequest, FlagResult, NavigateRequest, ResultSet, SelectAnswerRequest, SessionStatus, StartAttemptRequest, StartedSession, SubmitRequest
from .errors import ApiError, EngineError, FinalizationFailure, IndexOutOfRange, InvalidSessionData, InvalidState, PauseSyncFailure, ResumeSyncFailure, UnknownOption, UnknownQuestion
from .services.attempt_cache import AttemptCache
from .services.practice_api import PracticeApiClient
from .services.result_scorer import score_payload
from .config import settings

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("exam_session")

app = FastAPI(default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

ERROR_STATUS = {
	InvalidSessionData: 422,
	InvalidState: 409,
	UnknownQuestion: 400,
	UnknownOption: 400,
	IndexOutOfRange: 400,
	PauseSyncFailure: 502,
	ResumeSyncFailure: 502,
	FinalizationFailure: 502,
	ApiError: 502,
}

@app.on_event("startup")
def on_startup() -> None:
	# tests install fakes on app.state before startup runs
	if getattr(app.state, "practice_api", None) is None:
		app.state.practice_api = PracticeApiClient()
	if getattr(app.state, "attempt_cache", None) is None:
		app.state.attempt_cache = AttemptCache()
	logger.info({
		"event": "api_startup",
		"utc_time": datetime.now(timezone.utc).isoformat(),
		"practice_api_url": settings.practice_api_url,
		"default_duration_seconds": settings.default_duration_seconds,
		"tick_interval_seconds": settings.tick_interval_seconds,
	})

@app.on_event("shutdown")
async def on_shutdown() -> None:
	for session_id in list(attempt_registry.attempts):
		attempt_registry.discard(session_id)
	api = getattr(app.state, "practice_api", None)
	if isinstance(api, PracticeApiClient):
		await api.aclose()

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
	status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
	logger.debug({"event": "engine_error", "path": request.url.path, "code": exc.code, "message": exc.message, "status_code": status_code})
	return ORJSONResponse(status_code=status_code, content={"detail": exc.code, "message": exc.message})

# routes touching an attempt are all async so engine state only changes on the loop thread
def _require_attempt(session_id: str) -> SessionStateMachine:
	if not attempt_registry.has_attempt(session_id):
		raise HTTPException(status_code=404, detail="session_not_found")
	return attempt_registry.get(session_id)

def _activate(request: Request, started: StartedSession) -> SessionStateMachine:
	machine = SessionStateMachine(started.session_id, request.app.state.practice_api)
	machine.activate(started.questions, started.duration_seconds)
	attempt_registry.add(machine)
	return machine

def _scored(machine: SessionStateMachine) -> ResultSet:
	result = score_payload(machine.results, machine.questions)
	logger.debug({
		"event": "results_scored",
		"session_id": machine.session_id,
		"failed_answers": machine.failed_answers,
		"score_percent": result.score_percent,
		"grade": result.grade,
	})
	return result

@app.post("/api/attempts/start", response_model=AttemptView)
async def start_attempt(payload: StartAttemptRequest, request: Request):
	try:
		started = await request.app.state.practice_api.start_session(payload.selectors)
	except ApiError:
		logger.exception("session_start_failed")
		raise HTTPException(status_code=502, detail="session_start_failed")
	machine = _activate(request, started)
	request.app.state.attempt_cache.save(started.session_id, started)
	return machine.view()

@app.post("/api/attempts/{session_id}/restore", response_model=AttemptView)
async def restore_attempt(session_id: str, request: Request):
	if attempt_registry.has_attempt(session_id):
		machine = attempt_registry.get(session_id)
		if machine.status not in (SessionStatus.CANCELLED, SessionStatus.ERROR):
			return machine.view()
	started = request.app.state.attempt_cache.load(session_id)
	if started is None:
		try:
			started = await request.app.state.practice_api.get_session(session_id)
		except ApiError as e:
			if e.is_session_gone:
				raise HTTPException(status_code=404, detail="session_not_found")
			raise
		request.app.state.attempt_cache.save(session_id, started)
	machine = _activate(request, started)
	logger.info({"event": "attempt_restored", "session_id": session_id, "questions": len(started.questions)})
	return machine.view()

@app.get("/api/attempts/{session_id}", response_model=AttemptView)
async def get_attempt(session_id: str):
	return _require_attempt(session_id).view()

@app.post("/api/attempts/{session_id}/answer", response_model=AttemptView)
async def select_answer(session_id: str, payload: SelectAnswerRequest):
	machine = _require_attempt(session_id)
	machine.select_answer(payload.option_id)
	return machine.view()

@app.post("/api/attempts/{session_id}/navigate", response_model=AttemptView)
async def navigate(session_id: str, payload: NavigateRequest):
	machine = _require_attempt(session_id)
	machine.navigate(payload.index)
	return machine.view()

@app.post("/api/attempts/{session_id}/flag", response_model=FlagResult | None)
async def toggle_flag(session_id: str):
	return await _require_attempt(session_id).toggle_flag()

@app.post("/api/attempts/{session_id}/pause", response_model=AttemptView)
async def pause_attempt(session_id: str):
	machine = _require_attempt(session_id)
	await machine.pause()
	return machine.view()

@app.post("/api/attempts/{session_id}/resume", response_model=AttemptView)
async def resume_attempt(session_id: str):
	machine = _require_attempt(session_id)
	await machine.resume()
	return machine.view()

@app.post("/api/attempts/{session_id}/recover", response_model=AttemptView)
async def recover_attempt(session_id: str):
	machine = _require_attempt(session_id)
	machine.recover()
	return machine.view()

@app.post("/api/attempts/{session_id}/submit", response_model=ResultSet)
async def submit_attempt(session_id: str, payload: SubmitRequest, request: Request):
	machine = _require_attempt(session_id)
	if machine.status == SessionStatus.COMPLETED:
		return _scored(machine)
	if machine.requires_confirmation and not payload.confirm:
		raise HTTPException(status_code=409, detail="confirmation_required")
	await machine.submit(is_auto_submit=False)
	request.app.state.attempt_cache.clear(session_id)
	return _scored(machine)

@app.post("/api/attempts/{session_id}/exit")
async def exit_attempt(session_id: str, payload: ExitRequest, request: Request):
	machine = _require_attempt(session_id)
	if payload.submit and machine.status != SessionStatus.COMPLETED:
		await machine.exit(submit=True)
	elif not payload.submit:
		await machine.exit(submit=False)
	request.app.state.attempt_cache.clear(session_id)
	attempt_registry.discard(session_id)
	logger.info({"event": "attempt_exited", "session_id": session_id, "submitted": payload.submit, "status": machine.status.value})
	if machine.status == SessionStatus.COMPLETED:
		return _scored(machine)
	return {"session_id": session_id, "status": machine.status.value}

@app.get("/api/attempts/{session_id}/results", response_model=ResultSet)
async def get_results(session_id: str, request: Request):
	if attempt_registry.has_attempt(session_id):
		machine = attempt_registry.get(session_id)
		if machine.status != SessionStatus.COMPLETED:
			raise HTTPException(status_code=409, detail="session_not_completed")
		request.app.state.attempt_cache.clear(session_id)
		result = _scored(machine)
		# served once from memory; later reads go to the backend
		attempt_registry.discard(session_id)
		return result
	payload = await request.app.state.practice_api.get_results(session_id)
	return score_payload(payload)
