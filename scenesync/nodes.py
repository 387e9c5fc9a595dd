"""
Lifecycle logic of time-aware scene nodes.

The UI runtime owns rendering; these classes own the bookkeeping a node does
while mounted: timestamp subscriptions, lifetime markers, volume
contributions and blocking work.  Each node is mounted and unmounted by the
runtime exactly once.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from .context import OutputContext, input_end_timestamp
from .lifetime import ChildrenLifetimeTracker
from .mixer import AudioContribution
from .notify import NotificationQueue
from .refs import InputRef
from .timeline import BlockingTask, TimestampMarker, new_blocking_task

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SLIDE_DURATION_MS = 1000


class AfterTimestamp:
    """Wake the scene once ``timestamp_ms`` is reached."""

    def __init__(self, ctx: OutputContext, timestamp_ms: float) -> None:
        self.ctx = ctx
        self.timestamp_ms = float(timestamp_ms)
        self._marker: Optional[TimestampMarker] = None
        self._token: Optional[int] = None

    @property
    def reached(self) -> bool:
        return self.ctx.time.timestamp_ms() >= self.timestamp_ms

    def mount(self) -> None:
        self._token = self.ctx.time.subscribe(self.ctx.scene_changed)
        if not math.isfinite(self.timestamp_ms):
            return
        self._marker = self.ctx.time.new_marker(self.timestamp_ms)
        self.ctx.time.add_timestamp(self._marker)

    def unmount(self) -> None:
        if self._marker is not None:
            self.ctx.time.remove_timestamp(self._marker)
            self._marker = None
        if self._token is not None:
            self.ctx.time.unsubscribe(self._token)
            self._token = None


class TimeLimitedNode:
    """
    Keep the parent tracker busy until ``end_ms``.

    The end marker is registered both with the tracker and with the time
    context; it is removed from both exactly once, on expiry or on unmount.
    """

    def __init__(
        self,
        ctx: OutputContext,
        end_ms: float,
        *,
        tracker: Optional[ChildrenLifetimeTracker] = None,
        on_expire: Optional[Callable[[], None]] = None,
    ) -> None:
        self.ctx = ctx
        self.end_ms = float(end_ms)
        self.tracker = tracker if tracker is not None else ctx.lifetime
        self._on_expire = on_expire
        self._marker: Optional[TimestampMarker] = None
        self._token: Optional[int] = None
        self.expired = False

    def mount(self) -> None:
        self._marker = self.ctx.time.new_marker(self.end_ms)
        self.tracker.add(self._marker)
        self.ctx.time.add_timestamp(self._marker)
        self._token = self.ctx.time.subscribe(self._check)
        self._check()

    def unmount(self) -> None:
        self._release()

    def _check(self) -> None:
        if self.expired or self._marker is None:
            return
        if self.ctx.time.timestamp_ms() < self.end_ms:
            return
        self.expired = True
        self._release()
        if self._on_expire is not None:
            self._on_expire()
        self.ctx.scene_changed()

    def _release(self) -> None:
        if self._token is not None:
            self.ctx.time.unsubscribe(self._token)
            self._token = None
        if self._marker is not None:
            marker, self._marker = self._marker, None
            self.ctx.time.remove_timestamp(marker)
            self.tracker.remove(marker)


class CompletableNode:
    """Hold the parent tracker until :meth:`set_completed` is called with ``True``."""

    def __init__(self, ctx: OutputContext, *, tracker: Optional[ChildrenLifetimeTracker] = None) -> None:
        self.ctx = ctx
        self.tracker = tracker if tracker is not None else ctx.lifetime
        self._marker: Optional[TimestampMarker] = None
        self._mounted = False
        self._completed = False

    def mount(self) -> None:
        self._mounted = True
        self._sync()

    def unmount(self) -> None:
        self._mounted = False
        self._sync()

    def set_completed(self, completed: bool) -> None:
        self._completed = bool(completed)
        self._sync()

    def _sync(self) -> None:
        should_hold = self._mounted and not self._completed
        if should_hold and self._marker is None:
            self._marker = self.ctx.time.new_marker(math.inf)
            self.tracker.add(self._marker)
        elif not should_hold and self._marker is not None:
            marker, self._marker = self._marker, None
            self.tracker.remove(marker)


class InputDurationNode:
    """
    Bound the parent's lifetime by an input's known duration.

    The duration may only become known after registration, so the node
    follows the store until it can compute an end timestamp.
    """

    def __init__(
        self,
        ctx: OutputContext,
        input_id: Any,
        *,
        scoped: bool = False,
        tracker: Optional[ChildrenLifetimeTracker] = None,
    ) -> None:
        self.ctx = ctx
        self.input_id = input_id
        self.store = ctx.internal_store if scoped else ctx.global_store
        self.tracker = tracker if tracker is not None else ctx.lifetime
        self._token: Optional[int] = None
        self._limit: Optional[TimeLimitedNode] = None

    def mount(self) -> None:
        self._token = self.store.subscribe(self._refresh)
        self._refresh()

    def unmount(self) -> None:
        if self._token is not None:
            self.store.unsubscribe(self._token)
            self._token = None
        if self._limit is not None:
            self._limit.unmount()
            self._limit = None

    def _refresh(self) -> None:
        if self._limit is not None:
            return
        end_ms = input_end_timestamp(self.store.get(self.input_id))
        if end_ms is None or not math.isfinite(end_ms):
            return
        self._limit = TimeLimitedNode(self.ctx, end_ms, tracker=self.tracker)
        self._limit.mount()


class InputAudio:
    """Volume contribution of one mounted component."""

    def __init__(self, ctx: OutputContext, ref: InputRef, volume: float = 1.0) -> None:
        self.ctx = ctx
        self.ref = ref
        self.volume = volume
        self._contribution: Optional[AudioContribution] = None

    def mount(self) -> None:
        self._contribution = self.ctx.audio.add_input_audio_component(self.ref, self.volume)

    def unmount(self) -> None:
        if self._contribution is not None:
            self.ctx.audio.remove_input_audio_component(self.ref, self._contribution)
            self._contribution = None

    def set_volume(self, volume: float) -> None:
        self.volume = volume
        if self._contribution is not None:
            self.unmount()
            self.mount()


async def run_blocking_task(ctx: OutputContext, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable`` while holding offline rendering of the current timestamp."""

    with new_blocking_task(ctx.time):
        return await awaitable


class BlockingTaskNode(Generic[T]):
    """
    Run an async function on mount and expose its result.

    The scene is notified when the result arrives.
    """

    def __init__(self, ctx: OutputContext, fn: Callable[[], Awaitable[T]]) -> None:
        self.ctx = ctx
        self._fn = fn
        self.result: Optional[T] = None
        self._task: Optional[BlockingTask] = None
        self._future: Optional[asyncio.Task] = None

    def mount(self) -> None:
        self._task = new_blocking_task(self.ctx.time)
        self._future = asyncio.get_running_loop().create_task(self._run())

    def unmount(self) -> None:
        if self._future is not None and not self._future.done():
            self._future.cancel()
        if self._task is not None:
            self._task.close()

    async def _run(self) -> None:
        try:
            self.result = await self._fn()
            self.ctx.scene_changed()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.ctx.logger.exception("Blocking task failed.")
        finally:
            if self._task is not None:
                self._task.close()


# ---------------------------------------------------------------- slide shows


@dataclass(frozen=True)
class SlideSpec:
    key: str
    duration_ms: Optional[float] = None
    # Mounts the slide's children against the given tracker; returns an unmount callback.
    children: Optional[Callable[[OutputContext, ChildrenLifetimeTracker], Callable[[], None]]] = None


class Slide:
    """
    One slide of a :class:`SlideShow`.

    A slide lives for ``duration_ms`` (1 second by default).  With an explicit
    duration its children get their own tracker and cannot extend it; without
    one, children bounded by e.g. an input duration keep the slide alive.
    """

    def __init__(self, ctx: OutputContext, spec: SlideSpec, tracker: ChildrenLifetimeTracker) -> None:
        self.ctx = ctx
        self.spec = spec
        self.tracker = tracker
        self._limit: Optional[TimeLimitedNode] = None
        self._unmount_children: Optional[Callable[[], None]] = None

    def mount(self) -> None:
        duration_ms = self.spec.duration_ms if self.spec.duration_ms is not None else DEFAULT_SLIDE_DURATION_MS
        self._limit = TimeLimitedNode(self.ctx, self.ctx.time.timestamp_ms() + duration_ms, tracker=self.tracker)
        self._limit.mount()
        if self.spec.children is not None:
            children_tracker = ChildrenLifetimeTracker() if self.spec.duration_ms is not None else self.tracker
            self._unmount_children = self.spec.children(self.ctx, children_tracker)

    def unmount(self) -> None:
        if self._unmount_children is not None:
            self._unmount_children()
            self._unmount_children = None
        if self._limit is not None:
            self._limit.unmount()
            self._limit = None


class SlideShow:
    """
    Show slides one after another.

    The show advances when every lifetime registration of the current slide is
    gone, and reports itself complete to its parent after the last slide.
    Advancing is queued so a slide finishing while the next one mounts cannot
    recurse.
    """

    def __init__(
        self,
        ctx: OutputContext,
        slides: Sequence[SlideSpec],
        *,
        tracker: Optional[ChildrenLifetimeTracker] = None,
    ) -> None:
        self.ctx = ctx
        self._slides: List[SlideSpec] = list(slides)
        self._queue = NotificationQueue()
        self._tracker = ChildrenLifetimeTracker(on_change=lambda: self._queue.post(self._check_children))
        self._completion = CompletableNode(ctx, tracker=tracker)
        self.index = 0
        self._current: Optional[Slide] = None
        self._mounted = False

    @property
    def current(self) -> Optional[SlideSpec]:
        return self._current.spec if self._current is not None else None

    @property
    def finished(self) -> bool:
        return self.index >= len(self._slides)

    def mount(self) -> None:
        self._mounted = True
        self._completion.mount()
        self._queue.post(self._show_current)

    def unmount(self) -> None:
        self._mounted = False
        self._hide_current()
        self._completion.unmount()

    def set_slides(self, slides: Sequence[SlideSpec]) -> None:
        """
        Replace the slide list, following the current slide by key.

        When the current slide disappeared, the first following slide that is
        still present becomes current; otherwise the index is kept.
        """

        previous = self._slides[self.index:]
        self._slides = list(slides)
        new_keys = [spec.key for spec in self._slides]
        for spec in previous:
            if spec.key in new_keys:
                self.index = new_keys.index(spec.key)
                break
        self._queue.post(self._show_current)

    def _show_current(self) -> None:
        if not self._mounted:
            return
        target = self._slides[self.index] if not self.finished else None
        if self._current is not None and target is not None and self._current.spec.key == target.key:
            return
        self._hide_current()
        self._completion.set_completed(target is None)
        if target is not None:
            self._current = Slide(self.ctx, target, self._tracker)
            self._current.mount()
        self.ctx.scene_changed()

    def _hide_current(self) -> None:
        if self._current is not None:
            slide, self._current = self._current, None
            slide.unmount()

    def _check_children(self) -> None:
        if not self._mounted or self._current is None or not self._tracker.is_done():
            return
        LOG.debug("Slide %s finished", self._current.spec.key)
        self.index += 1
        self._queue.post(self._show_current)
