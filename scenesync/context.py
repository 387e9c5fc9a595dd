"""
Per-output context handed to the UI runtime.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .api.client import EngineApi
from .api.schemas import RegisterInputResponse, into_register_image, into_register_input
from .ids import IdAllocator
from .inputs import (
    AddInput,
    InputStreamRecord,
    LiveInputStreamStore,
    OfflineInputStreamStore,
    RemoveInput,
    UpdateFn,
)
from .lifetime import ChildrenLifetimeTracker
from .mixer import AudioMixerContext
from .refs import ScopedRef
from .timeline import TimeContext, new_blocking_task

AnyStore = Union[LiveInputStreamStore, OfflineInputStreamStore]


class OutputContext:
    """
    Everything a mounted scene needs from its output: stores, mixer, time,
    the root lifetime tracker and registration of output-scoped resources.
    """

    def __init__(
        self,
        *,
        output_id: str,
        api: EngineApi,
        global_store: AnyStore,
        internal_store: AnyStore,
        audio: AudioMixerContext,
        time: TimeContext,
        lifetime: ChildrenLifetimeTracker,
        ids: IdAllocator,
        logger: logging.Logger,
        on_scene_change: Callable[[], None],
        track_input_timestamps: bool = False,
    ) -> None:
        self.output_id = output_id
        self.api = api
        self.global_store = global_store
        self.internal_store = internal_store
        self.audio = audio
        self.time = time
        self.lifetime = lifetime
        self.ids = ids
        self.logger = logger
        self._on_scene_change = on_scene_change
        self._track_input_timestamps = track_input_timestamps

    def scene_changed(self) -> None:
        self._on_scene_change()

    def new_internal_id(self, kind: str = "stream") -> int:
        return self.ids.next(kind)

    async def register_mp4_input(self, input_id: int, request: Mapping[str, Any]) -> RegisterInputResponse:
        """
        Register an mp4 that only this output uses.

        The store record is installed atomically with the registration, and
        offline rendering is held until it completes.
        """

        ref = ScopedRef(output_id=self.output_id, id=input_id)
        offset_ms = request.get("offsetMs")

        async def install(update: UpdateFn) -> RegisterInputResponse:
            response = await self.api.register_input(ref, into_register_input({**request, "type": "mp4"}))
            update(
                AddInput(
                    InputStreamRecord(
                        input_id=input_id,
                        offset_ms=offset_ms,
                        video_duration_ms=response.video_duration_ms,
                        audio_duration_ms=response.audio_duration_ms,
                    )
                )
            )
            return response

        with new_blocking_task(self.time):
            response = await self.internal_store.run_blocking(install)
        if self._track_input_timestamps:
            self._add_input_timestamps(offset_ms or 0.0, response)
        return response

    async def unregister_mp4_input(self, input_id: int) -> Dict[str, Any]:
        ref = ScopedRef(output_id=self.output_id, id=input_id)
        result = await self.api.unregister_input(ref)
        self.internal_store.dispatch(RemoveInput(input_id=input_id))
        return result

    async def register_image(self, image_id: int, spec: Mapping[str, Any]) -> Dict[str, Any]:
        ref = ScopedRef(output_id=self.output_id, id=image_id)
        with new_blocking_task(self.time):
            return await self.api.register_image(ref, into_register_image(spec))

    async def unregister_image(self, image_id: int) -> Dict[str, Any]:
        return await self.api.unregister_image(ScopedRef(output_id=self.output_id, id=image_id))

    def _add_input_timestamps(self, offset_ms: float, response: RegisterInputResponse) -> None:
        timestamps = [offset_ms]
        for duration in (response.video_duration_ms, response.audio_duration_ms):
            if duration:
                timestamps.append(offset_ms + duration)
        for timestamp in timestamps:
            self.time.add_timestamp(self.time.new_marker(timestamp))


def input_end_timestamp(record: Optional[InputStreamRecord]) -> Optional[float]:
    """End of an input on the output timeline, when its duration is known."""

    if record is None:
        return None
    durations = [value for value in (record.video_duration_ms, record.audio_duration_ms) if value is not None]
    if not durations:
        return None
    return (record.offset_ms or 0.0) + max(durations)
