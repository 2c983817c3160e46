import logging
from time import perf_counter
from typing import Any, Callable, Dict, List, TypeVar

import httpx

from ..config import settings
from ..errors import ApiError
from ..models import Question, RecordAnswerResult, ResultsPayload, SessionSelectors, StartedSession

logger = logging.getLogger("exam_session")

MALFORMED = "malformed_response"

T = TypeVar("T")


def parse_started_session(data: Dict[str, Any]) -> StartedSession:
    if not isinstance(data, dict) or not isinstance(data.get("session") or {}, dict):
        raise ApiError("session payload is not an object", detail=MALFORMED)
    session = data.get("session") or {}
    session_id = session.get("id") or data.get("sessionId")
    if not session_id:
        raise ApiError("session_id_missing", detail="start response had no session id")
    duration_minutes = session.get("duration")
    duration_seconds = int(duration_minutes) * 60 if duration_minutes is not None else None
    questions = [Question.model_validate(q) for q in data.get("questions") or []]
    return StartedSession(session_id=session_id, duration_seconds=duration_seconds, questions=questions)


def _parsed(parse: Callable[[Any], T], data: Any, path: str) -> T:
    try:
        return parse(data)
    except (ValueError, TypeError) as e:
        # pydantic ValidationError is a ValueError
        logger.warning({"event": "api_malformed_response", "path": path, "error": str(e)})
        raise ApiError(f"{path} returned an unexpected payload", detail=MALFORMED) from e


class PracticeApiClient:
    """Async client for the practice backend.

    Every endpoint answers with an envelope ``{"success": ..., "data": ...}``;
    callers only ever see ``data``.
    """

    def __init__(self, base_url: str | None = None, token: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        headers = {"Content-Type": "application/json"}
        token = token if token is not None else settings.practice_api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url or settings.practice_api_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Dict[str, Any] | None = None, params: Dict[str, Any] | None = None) -> Any:
        t0 = perf_counter()
        try:
            response = await self._client.request(method, path, json=json, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = None
            try:
                body = e.response.json()
                if isinstance(body, dict):
                    detail = body.get("error") or body.get("message")
            except ValueError:
                detail = e.response.text or None
            logger.warning({"event": "api_error", "method": method, "path": path, "status_code": e.response.status_code, "detail": detail})
            raise ApiError(f"{method} {path} failed", status_code=e.response.status_code, detail=detail) from e
        except httpx.HTTPError as e:
            logger.warning({"event": "api_transport_error", "method": method, "path": path, "error": str(e)})
            raise ApiError(f"{method} {path} failed", detail=str(e)) from e
        logger.debug({
            "event": "api_call",
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": int((perf_counter() - t0) * 1000),
        })
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            logger.warning({"event": "api_malformed_response", "method": method, "path": path, "status_code": response.status_code})
            raise ApiError(f"{method} {path} returned a non-JSON body", status_code=response.status_code, detail=MALFORMED) from e
        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise ApiError(f"{method} {path} rejected", status_code=response.status_code, detail=body.get("error") or body.get("message"))
            return body.get("data")
        return body

    async def start_session(self, selectors: SessionSelectors) -> StartedSession:
        payload = selectors.model_dump(by_alias=True, exclude_none=True, mode="json")
        payload["hasDuration"] = selectors.has_duration
        path = "/practice/start"
        data = await self._request("POST", path, json=payload)
        return _parsed(parse_started_session, data or {}, path)

    async def get_session(self, session_id: str) -> StartedSession:
        path = f"/practice/sessions/{session_id}"
        data = await self._request("GET", path)
        return _parsed(parse_started_session, data or {}, path)

    async def record_answer(self, session_id: str, question_id: str, selected_option_id: str) -> RecordAnswerResult:
        path = f"/practice/sessions/{session_id}/answer"
        data = await self._request("POST", path, json={"questionId": question_id, "selectedAnswer": selected_option_id})
        return _parsed(RecordAnswerResult.model_validate, data or {}, path)

    async def set_flag(self, session_id: str, question_id: str, flagged: bool) -> None:
        await self._request("POST", f"/practice/sessions/{session_id}/questions/{question_id}/flag", json={"isFlagged": flagged})

    async def pause(self, session_id: str) -> None:
        await self._request("POST", f"/practice/sessions/{session_id}/pause")

    async def resume(self, session_id: str) -> None:
        await self._request("POST", f"/practice/sessions/{session_id}/resume")

    async def complete(self, session_id: str) -> None:
        await self._request("POST", f"/practice/sessions/{session_id}/complete")

    async def get_results(self, session_id: str) -> ResultsPayload:
        path = f"/practice/sessions/{session_id}/results"
        data = await self._request("GET", path)
        return _parsed(ResultsPayload.model_validate, data, path)

    # comprehensive (multi-day) exam

    async def create_exam(self, subjects: List[str]) -> Dict[str, Any]:
        return await self._request("POST", "/comprehensive-exam/create", json={"subjects": subjects})

    async def get_exam(self, exam_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/comprehensive-exam/{exam_id}")

    async def start_day(self, exam_id: str, day_number: int) -> StartedSession:
        path = f"/comprehensive-exam/{exam_id}/day/{day_number}/start"
        data = await self._request("POST", path)
        return _parsed(parse_started_session, data or {}, path)

    async def complete_day(self, exam_id: str, day_number: int, session_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/comprehensive-exam/{exam_id}/day/{day_number}/complete", json={"sessionId": session_id})

    async def get_exam_results(self, exam_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/comprehensive-exam/{exam_id}/results")
