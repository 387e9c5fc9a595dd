import asyncio

import pytest

from scenesync.throttle import ThrottledFunction


class Counter:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


@pytest.mark.asyncio
async def test_burst_runs_leading_and_trailing_call() -> None:
    counter = Counter()
    throttled = ThrottledFunction(counter, interval_ms=10)

    for _ in range(5):
        throttled.schedule_call()
    await throttled.wait_for_pending_calls()

    assert counter.calls == 2
    assert not throttled.running


@pytest.mark.asyncio
async def test_single_call_runs_once() -> None:
    counter = Counter()
    throttled = ThrottledFunction(counter, interval_ms=10)

    throttled.schedule_call()
    await throttled.wait_for_pending_calls()
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_call_during_sleep_produces_trailing_run() -> None:
    counter = Counter()
    throttled = ThrottledFunction(counter, interval_ms=30)

    throttled.schedule_call()
    await asyncio.sleep(0.01)
    assert counter.calls == 1
    throttled.schedule_call()
    await throttled.wait_for_pending_calls()
    assert counter.calls == 2


@pytest.mark.asyncio
async def test_set_fn_swaps_target() -> None:
    first, second = Counter(), Counter()
    throttled = ThrottledFunction(first, interval_ms=5)
    throttled.set_fn(second)

    throttled.schedule_call()
    await throttled.wait_for_pending_calls()
    assert (first.calls, second.calls) == (0, 1)


@pytest.mark.asyncio
async def test_disable_turns_calls_into_noops() -> None:
    counter = Counter()
    throttled = ThrottledFunction(counter, interval_ms=10)

    throttled.schedule_call()
    throttled.schedule_call()
    throttled.disable()
    await throttled.wait_for_pending_calls()
    throttled.schedule_call()
    await throttled.wait_for_pending_calls()

    assert counter.calls == 0


@pytest.mark.asyncio
async def test_failures_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    async def boom() -> None:
        raise RuntimeError("engine unavailable")

    throttled = ThrottledFunction(boom, interval_ms=5)
    throttled.schedule_call()
    await throttled.wait_for_pending_calls()

    assert "Throttled call failed" in caplog.text
