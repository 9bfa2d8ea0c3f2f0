"""CancelSignal — race, interrupt, sleep."""

import asyncio

import pytest

from agentcore.core.cancellation import CancelSignal
from agentcore.core.errors import CancellationRequested


async def test_race_returns_result_when_not_cancelled():
    async def work():
        return 42

    assert await CancelSignal().race(work()) == 42


async def test_race_propagates_errors():
    async def broken():
        raise KeyError("x")

    with pytest.raises(KeyError):
        await CancelSignal().race(broken())


async def test_race_interrupts_on_cancel():
    cancel = CancelSignal()
    interrupted = []

    async def slow():
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            interrupted.append(True)
            raise

    asyncio.get_running_loop().call_later(0.01, cancel.cancel, "stop")
    with pytest.raises(CancellationRequested, match="stop"):
        await asyncio.wait_for(cancel.race(slow()), timeout=5)
    assert interrupted == [True]


async def test_race_without_interrupt_lets_work_finish():
    cancel = CancelSignal()
    finished = []

    async def atomic():
        await asyncio.sleep(0.05)
        finished.append(True)

    asyncio.get_running_loop().call_later(0.01, cancel.cancel)
    with pytest.raises(CancellationRequested):
        await cancel.race(atomic(), interrupt=False)
    assert finished == [True]


async def test_race_after_cancel_does_not_start_work():
    cancel = CancelSignal()
    cancel.cancel()
    started = []

    async def work():
        started.append(True)

    with pytest.raises(CancellationRequested):
        await cancel.race(work())
    assert started == []


async def test_sleep_returns_early_on_cancel():
    cancel = CancelSignal()
    asyncio.get_running_loop().call_later(0.01, cancel.cancel)
    assert await asyncio.wait_for(cancel.sleep(30), timeout=5) is True


async def test_sleep_times_out_normally():
    assert await CancelSignal().sleep(0) is False


def test_first_reason_wins():
    cancel = CancelSignal()
    cancel.cancel("first")
    cancel.cancel("second")
    assert cancel.reason == "first"
    with pytest.raises(CancellationRequested):
        cancel.raise_if_cancelled()
