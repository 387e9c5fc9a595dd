"""
Time contexts driving scene updates.

Two variants share one contract:

* :class:`LiveTimeContext` follows the wall clock from the moment the engine
  was started and wakes subscribers shortly after registered timestamps pass.
* :class:`OfflineTimeContext` is stepped explicitly from one registered
  timestamp to the next and tracks blocking tasks that have to finish before
  the current timestamp may be rendered.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .ids import IdAllocator
from .notify import ChangeNotifier

LOG = logging.getLogger(__name__)

ClockCallable = Callable[[], float]

DEFAULT_TIMESTAMP_MARGIN_MS = 100


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True, slots=True)
class TimestampMarker:
    """
    Registration of interest in a point in time.

    Markers compare by handle only: two markers for the same instant are two
    independent registrations.
    """

    handle: int
    timestamp_ms: float = field(compare=False)


class BlockingTask:
    """
    Handle for in-flight asynchronous work.

    The owner closes it exactly when the work is finished.  Closing twice is
    harmless.
    """

    def __init__(self, handle: int, on_close: Optional[Callable[["BlockingTask"], None]] = None) -> None:
        self.handle = handle
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close(self)

    def __enter__(self) -> "BlockingTask":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"BlockingTask(handle={self.handle}, {state})"


class TimeContext:
    """Contract shared by the live and offline time contexts."""

    supports_blocking_tasks: bool = False

    def __init__(self, ids: Optional[IdAllocator] = None) -> None:
        self.ids = ids if ids is not None else IdAllocator()
        self._notifier = ChangeNotifier("time")

    def timestamp_ms(self) -> float:
        raise NotImplementedError

    def add_timestamp(self, marker: TimestampMarker) -> None:
        raise NotImplementedError

    def remove_timestamp(self, marker: TimestampMarker) -> None:
        raise NotImplementedError

    def is_blocked(self) -> bool:
        return False

    def new_blocking_task(self) -> BlockingTask:
        raise NotImplementedError(f"{type(self).__name__} does not track blocking tasks")

    def new_marker(self, timestamp_ms: float) -> TimestampMarker:
        return TimestampMarker(handle=self.ids.next("marker"), timestamp_ms=float(timestamp_ms))

    def subscribe(self, callback: Callable[[], None]) -> int:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, token: int) -> None:
        self._notifier.unsubscribe(token)

    def _notify(self) -> None:
        self._notifier.notify()


def new_blocking_task(ctx: TimeContext) -> BlockingTask:
    """
    Create a blocking task on ``ctx`` when it supports them.

    Live rendering never halts, so a detached task is returned there.
    """

    if ctx.supports_blocking_tasks:
        return ctx.new_blocking_task()
    return BlockingTask(handle=ctx.ids.next("task"))


class LiveTimeContext(TimeContext):
    """
    Wall-clock time relative to the engine start.
    """

    def __init__(
        self,
        *,
        ids: Optional[IdAllocator] = None,
        clock: Optional[ClockCallable] = None,
        margin_ms: float = DEFAULT_TIMESTAMP_MARGIN_MS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        super().__init__(ids)
        self._clock: ClockCallable = clock if clock is not None else wall_clock_ms
        self._margin_ms = max(0.0, float(margin_ms))
        self._loop = loop
        self._start_ms: Optional[float] = None
        self._pending: Dict[TimestampMarker, Optional[asyncio.TimerHandle]] = {}

    @property
    def clock_started(self) -> bool:
        return self._start_ms is not None

    def init_clock(self, start_ms: float) -> None:
        self._start_ms = float(start_ms)

    def timestamp_ms(self) -> float:
        if self._start_ms is None:
            return 0.0
        return self._clock() - self._start_ms

    def add_timestamp(self, marker: TimestampMarker) -> None:
        self._pending[marker] = self._schedule_notification(marker)

    def remove_timestamp(self, marker: TimestampMarker) -> None:
        handle = self._pending.pop(marker, None)
        if handle is not None:
            handle.cancel()

    def pending_count(self) -> int:
        return sum(1 for handle in self._pending.values() if handle is not None)

    def _schedule_notification(self, marker: TimestampMarker) -> Optional[asyncio.TimerHandle]:
        if not math.isfinite(marker.timestamp_ms):
            return None
        time_left_ms = marker.timestamp_ms - self.timestamp_ms()
        if time_left_ms < 0:
            # Subscribers that mount after the instant already observe it as passed.
            return None
        loop = self._loop or asyncio.get_running_loop()
        delay_s = (time_left_ms + self._margin_ms) / 1000.0
        return loop.call_later(delay_s, self._fire, marker)

    def _fire(self, marker: TimestampMarker) -> None:
        if marker in self._pending:
            self._pending[marker] = None
        self._notify()


class OfflineTimeContext(TimeContext):
    """
    Deterministic time that only moves on :meth:`set_next_timestamp`.
    """

    supports_blocking_tasks = True

    def __init__(
        self,
        *,
        ids: Optional[IdAllocator] = None,
        on_unblocked: Optional[Callable[[], None]] = None,
        on_time_change: Optional[Callable[[float], None]] = None,
    ) -> None:
        super().__init__(ids)
        self._current_ms = 0.0
        self._markers: Dict[int, TimestampMarker] = {}
        self._tasks: Dict[int, BlockingTask] = {}
        self._on_unblocked = on_unblocked
        if on_time_change is not None:
            self.subscribe(lambda: on_time_change(self._current_ms))

    def timestamp_ms(self) -> float:
        return self._current_ms

    def add_timestamp(self, marker: TimestampMarker) -> None:
        self._markers[marker.handle] = marker

    def remove_timestamp(self, marker: TimestampMarker) -> None:
        self._markers.pop(marker.handle, None)

    def is_blocked(self) -> bool:
        return bool(self._tasks)

    def new_blocking_task(self) -> BlockingTask:
        task = BlockingTask(handle=self.ids.next("task"), on_close=self._finish_task)
        self._tasks[task.handle] = task
        return task

    def _finish_task(self, task: BlockingTask) -> None:
        if self._tasks.pop(task.handle, None) is None:
            return
        if not self._tasks and self._on_unblocked is not None:
            self._on_unblocked()

    def next_timestamp_ms(self) -> Optional[float]:
        candidates = [
            marker.timestamp_ms
            for marker in self._markers.values()
            if math.isfinite(marker.timestamp_ms) and marker.timestamp_ms > self._current_ms
        ]
        return min(candidates) if candidates else None

    def set_next_timestamp(self) -> bool:
        """
        Advance to the closest registered timestamp after the current one.

        Returns ``False`` and keeps the current value when there is nothing
        left to advance to.
        """

        next_ms = self.next_timestamp_ms()
        if next_ms is None:
            return False
        self._current_ms = next_ms
        LOG.debug("Offline time advanced to %sms", next_ms)
        self._notify()
        return True
