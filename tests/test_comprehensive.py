import pytest

from exam_session.comprehensive import ComprehensiveExamDriver
from exam_session.errors import InvalidState
from exam_session.models import SessionStatus

from conftest import FakeClock, FakePracticeApi


@pytest.fixture
def driver(api: FakePracticeApi) -> ComprehensiveExamDriver:
    return ComprehensiveExamDriver(api, "exam-1", clock_factory=FakeClock)


async def test_day_runs_as_an_ordinary_attempt(driver, api):
    async def interact(machine):
        machine.select_answer("q1-A")
        await machine.submit()

    result = await driver.run_day(1, interact)
    assert result == {"dayNumber": 1, "status": "COMPLETED"}
    assert api.completed_days == [("exam-1", 1, "exam-1-day1")]
    assert driver.days[1].status == SessionStatus.COMPLETED
    assert (await driver.results())["days"] == 1


async def test_day_finished_by_timeout(driver, api):
    api.duration_seconds = 2

    async def interact(machine):
        await machine.clock.fire(5)

    result = await driver.run_day(2, interact)
    assert result is not None
    assert driver.days[2].auto_submit_latched
    assert api.complete_calls == 1


async def test_abandoned_day_is_not_completed(driver, api):
    async def interact(machine):
        machine.cancel()

    assert await driver.run_day(1, interact) is None
    assert api.completed_days == []


async def test_complete_day_requires_finished_attempt(driver):
    await driver.start_day(3)
    with pytest.raises(InvalidState):
        await driver.complete_day(3)
    with pytest.raises(InvalidState):
        await driver.complete_day(4)
