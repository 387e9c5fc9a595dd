"""
Output coordinators.

An output binds one time context, its own input store, an audio mixer and the
scene root, and decides when snapshots are pushed to the engine:

* live outputs push through a :class:`~scenesync.throttle.ThrottledFunction`
  whenever something in the scene changes;
* offline outputs step through registered timestamps and push once the scene
  for each timestamp stopped changing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from .api.client import EngineApi
from .api.schemas import into_register_output
from .config import CoordinatorConfig
from .context import OutputContext
from .ids import IdAllocator
from .inputs import LiveInputStreamStore, OfflineInputStreamStore
from .lifetime import ChildrenLifetimeTracker
from .mixer import AudioMixerContext
from .nodes import TimeLimitedNode
from .quiescence import UpdateQuiescenceTracker
from .scene import OutputRoot, SceneSnapshot, SceneTree, into_audio_inputs_configuration
from .throttle import ThrottledFunction
from .timeline import ClockCallable, LiveTimeContext, OfflineTimeContext, TimeContext
from .utils.logging import output_logger

LOG = logging.getLogger(__name__)


class BaseOutput:
    """Pieces shared by live and offline outputs."""

    time: TimeContext

    def __init__(
        self,
        output_id: str,
        request: Mapping[str, Any],
        api: EngineApi,
        config: CoordinatorConfig,
        ids: IdAllocator,
    ) -> None:
        self.output_id = output_id
        self.request = dict(request)
        self.api = api
        self.config = config
        self.ids = ids
        self.logger = output_logger(LOG, output_id)
        self.supports_video = bool(self.request.get("video"))
        self.supports_audio = bool(self.request.get("audio"))
        self.lifetime = ChildrenLifetimeTracker()
        self.audio = AudioMixerContext(on_change=self.on_scene_change)
        self._subscriptions: List[tuple] = []
        self.root: OutputRoot

    def on_scene_change(self) -> None:
        raise NotImplementedError

    def _follow(self, source: Any) -> None:
        token = source.subscribe(self.on_scene_change)
        self._subscriptions.append((source, token))

    def _unfollow_all(self) -> None:
        for source, token in self._subscriptions:
            source.unsubscribe(token)
        self._subscriptions.clear()

    def scene(self) -> SceneSnapshot:
        video = {"root": self.root.scene()} if self.supports_video else None
        audio = into_audio_inputs_configuration(self.audio.get_audio_config()) if self.supports_audio else None
        return SceneSnapshot(video=video, audio=audio)

    def register_request(self) -> Dict[str, Any]:
        snapshot = self.scene()
        return into_register_output(self.request, snapshot.video, snapshot.audio)

    def describe(self) -> Dict[str, Any]:
        return {
            "outputId": self.output_id,
            "timestampMs": self.time.timestamp_ms(),
            "video": self.supports_video,
            "audio": self.supports_audio,
            "lifetimeDone": self.lifetime.is_done(),
            "shutdown": self.root.is_shutdown,
        }


class LiveOutput(BaseOutput):
    """
    Output rendered in real time.

    Changes arriving before :meth:`ready` are remembered and pushed once the
    output is registered on the engine.
    """

    def __init__(
        self,
        output_id: str,
        tree: SceneTree,
        request: Mapping[str, Any],
        api: EngineApi,
        global_store: LiveInputStreamStore[str],
        *,
        config: Optional[CoordinatorConfig] = None,
        ids: Optional[IdAllocator] = None,
        start_ms: Optional[float] = None,
        clock: Optional[ClockCallable] = None,
    ) -> None:
        super().__init__(output_id, request, api, config or CoordinatorConfig(), ids or IdAllocator())
        self._update_when_ready = False
        self.throttled_update = ThrottledFunction(
            self._remember_update,
            interval_ms=self.config.live_push_interval_ms,
            logger=self.logger,
        )
        self.time = LiveTimeContext(ids=self.ids, clock=clock, margin_ms=self.config.live_timestamp_margin_ms)
        if start_ms is not None:
            self.time.init_clock(start_ms)
        self.global_store = global_store
        self.internal_store: LiveInputStreamStore[int] = LiveInputStreamStore(self.logger)
        self.ctx = OutputContext(
            output_id=output_id,
            api=api,
            global_store=global_store,
            internal_store=self.internal_store,
            audio=self.audio,
            time=self.time,
            lifetime=self.lifetime,
            ids=self.ids,
            logger=self.logger,
            on_scene_change=self.on_scene_change,
        )
        self.root = OutputRoot(tree, self.ctx)

    def on_scene_change(self) -> None:
        self.throttled_update.schedule_call()

    async def _remember_update(self) -> None:
        self._update_when_ready = True

    async def _push(self) -> None:
        await self.api.update_scene(self.output_id, self.scene())

    async def register(self) -> Dict[str, Any]:
        self.root.mount()
        for source in (self.global_store, self.internal_store, self.time):
            self._follow(source)
        result = await self.api.register_output(self.output_id, self.register_request())
        self.ready()
        return result

    def ready(self) -> None:
        self.throttled_update.set_fn(self._push)
        if self._update_when_ready:
            self._update_when_ready = False
            self.throttled_update.schedule_call()

    def init_clock(self, start_ms: float) -> None:
        self.time.init_clock(start_ms)

    async def close(self) -> None:
        # The neutral scene goes first so a push racing with teardown cannot
        # resurrect the old tree.
        self.root.shutdown()
        self.throttled_update.disable()
        self._unfollow_all()
        await self.throttled_update.wait_for_pending_calls()


class OfflineOutput(BaseOutput):
    """
    Output rendered ahead of time, one registered timestamp after another.
    """

    def __init__(
        self,
        output_id: str,
        tree: SceneTree,
        request: Mapping[str, Any],
        api: EngineApi,
        global_store: OfflineInputStreamStore[str],
        *,
        config: Optional[CoordinatorConfig] = None,
        ids: Optional[IdAllocator] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        super().__init__(output_id, request, api, config or CoordinatorConfig(), ids or IdAllocator())
        self.duration_ms = duration_ms
        self.update_tracker = UpdateQuiescenceTracker(
            no_update_timeout_ms=self.config.offline_no_update_timeout_ms,
            max_render_timeout_ms=self.config.offline_max_render_timeout_ms,
            logger=self.logger,
        )
        self.global_store = global_store
        self.internal_store: OfflineInputStreamStore[int] = OfflineInputStreamStore()
        self.time = OfflineTimeContext(
            ids=self.ids,
            on_unblocked=self.on_scene_change,
            on_time_change=self._on_time_change,
        )
        self.ctx = OutputContext(
            output_id=output_id,
            api=api,
            global_store=global_store,
            internal_store=self.internal_store,
            audio=self.audio,
            time=self.time,
            lifetime=self.lifetime,
            ids=self.ids,
            logger=self.logger,
            on_scene_change=self.on_scene_change,
            track_input_timestamps=True,
        )
        self.root = OutputRoot(tree, self.ctx)
        self._min_lifetime = TimeLimitedNode(self.ctx, self.config.output_min_lifetime_ms)
        self.done = False

    def on_scene_change(self) -> None:
        self.update_tracker.on_update()

    def _on_time_change(self, timestamp_ms: float) -> None:
        self.global_store.set_current_timestamp(timestamp_ms)
        self.internal_store.set_current_timestamp(timestamp_ms)

    def scene(self) -> SceneSnapshot:
        snapshot = super().scene()
        return SceneSnapshot(
            video=snapshot.video,
            audio=snapshot.audio,
            schedule_time_ms=self.time.timestamp_ms(),
        )

    async def register(self) -> Dict[str, Any]:
        self._on_time_change(self.time.timestamp_ms())
        self._min_lifetime.mount()
        self.root.mount()
        for source in (self.global_store, self.internal_store):
            self._follow(source)
        return await self.api.register_output(self.output_id, self.register_request())

    async def _wait_until_renderable(self) -> None:
        poll_s = self.config.offline_blocked_poll_ms / 1000.0
        while True:
            while self.time.is_blocked():
                await asyncio.sleep(poll_s)
            await self.update_tracker.wait_for_render_end()
            if not self.time.is_blocked():
                return

    async def schedule_all_updates(self) -> None:
        """
        Push one snapshot per registered timestamp until the scene is done.

        Without an explicit duration the output ends as soon as the root
        lifetime tracker is empty (or no timestamp is left); with one it ends
        at that duration.
        """

        while True:
            timestamp_ms = self.time.timestamp_ms()
            self.logger.debug("Rendering timestamp %sms", timestamp_ms)
            await self._wait_until_renderable()
            try:
                await self.api.update_scene(self.output_id, self.scene())
            except Exception:
                self.logger.exception("Scene update for %sms failed.", timestamp_ms)

            if self.duration_ms is None and self.lifetime.is_done():
                await self._unregister(timestamp_ms)
                break
            if not self.time.set_next_timestamp():
                await self._unregister(self.duration_ms if self.duration_ms is not None else timestamp_ms)
                break
            if self.duration_ms is not None and self.time.timestamp_ms() > self.duration_ms:
                await self._unregister(self.duration_ms)
                break

        self.root.shutdown()
        self._min_lifetime.unmount()
        self._unfollow_all()

    async def _unregister(self, schedule_time_ms: float) -> None:
        self.done = True
        try:
            await self.api.unregister_output(self.output_id, schedule_time_ms=schedule_time_ms)
        except Exception:
            self.logger.exception("Unregistering output at %sms failed.", schedule_time_ms)
