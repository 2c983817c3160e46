import asyncio

from exam_session.clock import Clock


async def wait_for(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


async def test_ticks_until_stopped():
    ticks = []

    async def handler():
        ticks.append(1)

    clock = Clock(interval_seconds=0.01)
    clock.start(handler)
    assert clock.running
    await wait_for(lambda: len(ticks) >= 3)
    clock.stop()
    assert not clock.running
    seen = len(ticks)
    await asyncio.sleep(0.05)
    assert len(ticks) == seen


async def test_start_is_idempotent():
    ticks = []

    async def handler():
        ticks.append(1)

    clock = Clock(interval_seconds=0.01)
    clock.start(handler)
    first = clock._task
    clock.start(handler)
    assert clock._task is first
    clock.stop()


async def test_handler_can_stop_its_own_clock():
    done = asyncio.Event()
    clock = Clock(interval_seconds=0.01)

    async def handler():
        clock.stop()
        await asyncio.sleep(0)
        done.set()

    clock.start(handler)
    await asyncio.wait_for(done.wait(), 2.0)
    assert not clock.running


async def test_handler_errors_do_not_kill_the_clock():
    calls = []

    async def handler():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    clock = Clock(interval_seconds=0.01)
    clock.start(handler)
    await wait_for(lambda: len(calls) >= 2)
    clock.stop()


async def test_restart_after_stop():
    ticks = []

    async def handler():
        ticks.append(1)

    clock = Clock(interval_seconds=0.01)
    clock.start(handler)
    clock.stop()
    clock.start(handler)
    await wait_for(lambda: len(ticks) >= 1)
    clock.stop()
