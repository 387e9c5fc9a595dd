import asyncio
import math

import pytest

from fakes import FakeClock, SceneChanges
from scenesync.ids import IdAllocator
from scenesync.timeline import LiveTimeContext, OfflineTimeContext, new_blocking_task


def test_offline_steps_through_sorted_markers() -> None:
    ctx = OfflineTimeContext()
    for timestamp in (5, 10, 3):
        ctx.add_timestamp(ctx.new_marker(timestamp))
    seen = []
    ctx.subscribe(lambda: seen.append(ctx.timestamp_ms()))

    assert ctx.timestamp_ms() == 0
    assert ctx.set_next_timestamp() is True
    assert ctx.timestamp_ms() == 3
    ctx.set_next_timestamp()
    assert ctx.timestamp_ms() == 5
    ctx.set_next_timestamp()
    assert ctx.timestamp_ms() == 10

    assert ctx.set_next_timestamp() is False
    assert ctx.timestamp_ms() == 10
    assert seen == [3, 5, 10]


def test_offline_ignores_removed_and_infinite_markers() -> None:
    ctx = OfflineTimeContext()
    removed = ctx.new_marker(4)
    ctx.add_timestamp(removed)
    ctx.add_timestamp(ctx.new_marker(math.inf))
    ctx.add_timestamp(ctx.new_marker(8))
    ctx.remove_timestamp(removed)

    assert ctx.next_timestamp_ms() == 8
    ctx.set_next_timestamp()
    assert ctx.next_timestamp_ms() is None


def test_offline_same_instant_markers_are_independent() -> None:
    ctx = OfflineTimeContext()
    first = ctx.new_marker(20)
    second = ctx.new_marker(20)
    ctx.add_timestamp(first)
    ctx.add_timestamp(second)
    ctx.remove_timestamp(first)

    assert ctx.next_timestamp_ms() == 20


def test_time_change_callback_receives_new_timestamp() -> None:
    received = []
    ctx = OfflineTimeContext(on_time_change=received.append)
    ctx.add_timestamp(ctx.new_marker(250))
    ctx.set_next_timestamp()
    assert received == [250]


def test_blocking_tasks_gate_rendering() -> None:
    unblocked = SceneChanges()
    ctx = OfflineTimeContext(on_unblocked=unblocked)
    first = ctx.new_blocking_task()
    second = ctx.new_blocking_task()
    assert ctx.is_blocked()

    first.close()
    assert ctx.is_blocked()
    assert unblocked.count == 0

    second.close()
    second.close()
    assert not ctx.is_blocked()
    assert unblocked.count == 1


def test_blocking_task_as_context_manager() -> None:
    ctx = OfflineTimeContext()
    with new_blocking_task(ctx) as task:
        assert ctx.is_blocked()
    assert task.closed
    assert not ctx.is_blocked()


def test_live_context_hands_out_detached_tasks() -> None:
    ctx = LiveTimeContext(clock=FakeClock().now)
    task = new_blocking_task(ctx)
    assert not ctx.is_blocked()
    task.close()
    assert task.closed
    with pytest.raises(NotImplementedError):
        ctx.new_blocking_task()


def test_live_timestamp_follows_clock() -> None:
    clock = FakeClock(10_000)
    ctx = LiveTimeContext(clock=clock.now)
    assert ctx.timestamp_ms() == 0
    assert not ctx.clock_started

    ctx.init_clock(10_000)
    clock.advance_ms(1500)
    assert ctx.clock_started
    assert ctx.timestamp_ms() == 1500


def test_markers_share_allocator_handles() -> None:
    ids = IdAllocator()
    live = LiveTimeContext(ids=ids, clock=FakeClock().now)
    offline = OfflineTimeContext(ids=ids)
    assert live.new_marker(1).handle != offline.new_marker(1).handle


@pytest.mark.asyncio
async def test_live_marker_wakes_subscribers() -> None:
    clock = FakeClock(0)
    ctx = LiveTimeContext(clock=clock.now, margin_ms=0)
    ctx.init_clock(0)
    woke = asyncio.Event()
    ctx.subscribe(woke.set)

    ctx.add_timestamp(ctx.new_marker(20))
    assert ctx.pending_count() == 1

    await asyncio.wait_for(woke.wait(), timeout=1.0)
    assert ctx.pending_count() == 0


@pytest.mark.asyncio
async def test_removed_live_marker_never_fires() -> None:
    clock = FakeClock(0)
    ctx = LiveTimeContext(clock=clock.now, margin_ms=0)
    ctx.init_clock(0)
    changes = SceneChanges()
    ctx.subscribe(changes)

    marker = ctx.new_marker(20)
    ctx.add_timestamp(marker)
    ctx.remove_timestamp(marker)
    await asyncio.sleep(0.05)

    assert changes.count == 0
    assert ctx.pending_count() == 0


@pytest.mark.asyncio
async def test_past_and_infinite_live_markers_are_not_scheduled() -> None:
    clock = FakeClock(0)
    ctx = LiveTimeContext(clock=clock.now)
    ctx.init_clock(0)
    clock.advance_ms(500)

    ctx.add_timestamp(ctx.new_marker(100))
    ctx.add_timestamp(ctx.new_marker(math.inf))
    assert ctx.pending_count() == 0
