import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .clock import Clock
from .errors import InvalidState
from .models import SessionStatus
from .services.practice_api import PracticeApiClient
from .state import SessionStateMachine

logger = logging.getLogger("exam_session")

DayInteraction = Callable[[SessionStateMachine], Awaitable[None]]


class ComprehensiveExamDriver:
    """Runs a multi-day exam as one ordinary attempt per day.

    Each day gets a fresh state machine built from the day-scoped session the
    backend hands out; nothing here touches answers or timing.
    """

    def __init__(self, api: PracticeApiClient, exam_id: str, clock_factory: Optional[Callable[[], Clock]] = None) -> None:
        self.api = api
        self.exam_id = exam_id
        self.clock_factory = clock_factory or Clock
        self.days: Dict[int, SessionStateMachine] = {}

    async def start_day(self, day_number: int) -> SessionStateMachine:
        started = await self.api.start_day(self.exam_id, day_number)
        machine = SessionStateMachine(started.session_id, self.api, clock=self.clock_factory())
        machine.activate(started.questions, started.duration_seconds)
        self.days[day_number] = machine
        logger.info({"event": "exam_day_started", "exam_id": self.exam_id, "day": day_number, "session_id": started.session_id})
        return machine

    async def complete_day(self, day_number: int) -> Dict[str, Any]:
        machine = self.days.get(day_number)
        if machine is None or machine.status != SessionStatus.COMPLETED:
            raise InvalidState(f"day_{day_number}_not_completed")
        result = await self.api.complete_day(self.exam_id, day_number, machine.session_id)
        logger.info({"event": "exam_day_completed", "exam_id": self.exam_id, "day": day_number, "session_id": machine.session_id})
        return result

    async def run_day(self, day_number: int, interact: DayInteraction) -> Optional[Dict[str, Any]]:
        machine = await self.start_day(day_number)
        await interact(machine)
        # finished is set on COMPLETED, CANCELLED and ERROR; the clock finishes an idle day
        await machine.finished.wait()
        if machine.status != SessionStatus.COMPLETED:
            logger.info({"event": "exam_day_abandoned", "exam_id": self.exam_id, "day": day_number, "status": machine.status.value})
            return None
        return await self.complete_day(day_number)

    async def results(self) -> Dict[str, Any]:
        return await self.api.get_exam_results(self.exam_id)
