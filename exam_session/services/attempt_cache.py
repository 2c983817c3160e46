import logging
import os
import re
from typing import Optional

import orjson
from pydantic import ValidationError

from ..config import settings
from ..models import StartedSession

logger = logging.getLogger("exam_session")

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class AttemptCache:
    """Keeps the started session (id, duration, questions) so a reload can rebuild it.

    Answers are never cached: the backend is the authority for anything that
    was submitted, and a rebuilt attempt starts from a blank answer book.
    """

    def __init__(self, cache_dir: str | None = None) -> None:
        self.cache_dir = os.path.abspath(cache_dir or settings.attempt_cache_dir)
        os.makedirs(self.cache_dir, exist_ok=True)

    def _path(self, scope: str) -> str:
        return os.path.join(self.cache_dir, f"attempt_{_UNSAFE.sub('_', scope)}.json")

    def save(self, scope: str, started: StartedSession) -> None:
        with open(self._path(scope), "wb") as f:
            f.write(orjson.dumps(started.model_dump(mode="json")))
        logger.debug({"event": "attempt_cached", "scope": scope, "session_id": started.session_id, "questions": len(started.questions)})

    def load(self, scope: str) -> Optional[StartedSession]:
        path = self._path(scope)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "rb") as f:
                return StartedSession.model_validate(orjson.loads(f.read()))
        except (orjson.JSONDecodeError, ValidationError):
            logger.exception("attempt_cache_corrupt")
            return None

    def clear(self, scope: str) -> None:
        path = self._path(scope)
        if os.path.exists(path):
            os.remove(path)
            logger.debug({"event": "attempt_cache_cleared", "scope": scope})
