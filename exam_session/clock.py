import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import settings

logger = logging.getLogger("exam_session")

TickHandler = Callable[[], Awaitable[None]]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Clock:
    """Awaits a handler once per interval on the running event loop.

    Pausing is the caller's job: it stops the clock and starts it again later.
    """

    def __init__(self, interval_seconds: float | None = None) -> None:
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.tick_interval_seconds
        self._handler: Optional[TickHandler] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, handler: TickHandler) -> None:
        if self.running:
            return
        self._handler = handler
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task = self._task
        self._task = None
        # a handler stopping its own clock must not cancel itself mid-await
        if task is not None and task is not _current_task():
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval_seconds)
            if self._task is not me or self._handler is None:
                break
            try:
                await self._handler()
            except Exception:
                logger.exception("clock_tick_failed")
