import asyncio

import pytest

from scenesync.quiescence import UpdateQuiescenceTracker


@pytest.mark.asyncio
async def test_resolves_when_scene_is_stable() -> None:
    tracker = UpdateQuiescenceTracker(no_update_timeout_ms=20, max_render_timeout_ms=1000)
    assert await tracker.wait_for_render_end() is True
    assert not tracker.waiting


@pytest.mark.asyncio
async def test_updates_extend_the_wait() -> None:
    tracker = UpdateQuiescenceTracker(no_update_timeout_ms=40, max_render_timeout_ms=1000)
    loop = asyncio.get_running_loop()

    async def nudge() -> None:
        await asyncio.sleep(0.02)
        tracker.on_update()

    started = loop.time()
    nudger = asyncio.ensure_future(nudge())
    assert await tracker.wait_for_render_end() is True
    await nudger
    assert loop.time() - started >= 0.055


@pytest.mark.asyncio
async def test_endless_updates_are_cut_off(caplog: pytest.LogCaptureFixture) -> None:
    tracker = UpdateQuiescenceTracker(no_update_timeout_ms=30, max_render_timeout_ms=150)
    stop = asyncio.Event()

    async def churn() -> None:
        while not stop.is_set():
            tracker.on_update()
            await asyncio.sleep(0.01)

    churner = asyncio.ensure_future(churn())
    try:
        assert await tracker.wait_for_render_end() is False
    finally:
        stop.set()
        await churner

    assert "infinite update loop" in caplog.text


def test_updates_outside_a_wait_are_ignored() -> None:
    tracker = UpdateQuiescenceTracker()
    tracker.on_update()
    assert not tracker.waiting
