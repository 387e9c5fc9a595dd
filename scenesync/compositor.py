"""
Compositor facades tying outputs, the instance-wide input store and engine
events together.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

from .api.client import EngineApi
from .api.events import InputEvent, OutputDoneEvent, parse_event, route_input_event
from .api.schemas import RegisterInputResponse, into_register_image, into_register_input
from .config import CoordinatorConfig
from .errors import RenderAlreadyStarted, UnknownOutputError
from .ids import IdAllocator
from .inputs import (
    AddInput,
    InputStreamRecord,
    LiveInputStreamStore,
    OfflineInput,
    OfflineInputStreamStore,
    RemoveInput,
    UpdateFn,
)
from .output import LiveOutput, OfflineOutput
from .refs import GlobalRef
from .scene import SceneTree
from .timeline import ClockCallable, wall_clock_ms

LOG = logging.getLogger(__name__)

OFFLINE_OUTPUT_ID = "offline_output"


class _CompositorBase:
    def __init__(self, api: EngineApi, config: Optional[CoordinatorConfig], ids: Optional[IdAllocator]) -> None:
        self.api = api
        self.config = config or CoordinatorConfig()
        self.ids = ids or IdAllocator()
        self._done_waiters: Dict[str, List[asyncio.Future]] = defaultdict(list)

    def wait_for_output_done(self, output_id: str) -> "asyncio.Future[None]":
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._done_waiters[output_id].append(future)
        return future

    def _resolve_output_done(self, output_id: str) -> None:
        LOG.info("Output %s done", output_id)
        for future in self._done_waiters.pop(output_id, []):
            if not future.done():
                future.set_result(None)

    async def register_shader(self, shader_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.api.register_shader(shader_id, request)

    async def register_image(self, image_id: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.api.register_image(GlobalRef(id=image_id), into_register_image(request))


class LiveCompositor(_CompositorBase):
    """
    Real-time compositor: any number of outputs, inputs registered at any time.
    """

    def __init__(
        self,
        api: EngineApi,
        config: Optional[CoordinatorConfig] = None,
        *,
        ids: Optional[IdAllocator] = None,
        clock: Optional[ClockCallable] = None,
    ) -> None:
        super().__init__(api, config, ids)
        self._clock: ClockCallable = clock if clock is not None else wall_clock_ms
        self.store: LiveInputStreamStore[str] = LiveInputStreamStore(LOG.getChild("store"))
        self.outputs: Dict[str, LiveOutput] = {}
        self.start_ms: Optional[float] = None

    async def register_output(self, output_id: str, tree: SceneTree, request: Mapping[str, Any]) -> Dict[str, Any]:
        output = LiveOutput(
            output_id,
            tree,
            request,
            self.api,
            self.store,
            config=self.config,
            ids=self.ids,
            start_ms=self.start_ms,
            clock=self._clock,
        )
        try:
            result = await output.register()
        except Exception:
            await output.close()
            raise
        # Only an output the engine accepted replaces the map entry.
        self.outputs[output_id] = output
        return result

    async def unregister_output(self, output_id: str) -> Dict[str, Any]:
        output = self.outputs.pop(output_id, None)
        if output is None:
            raise UnknownOutputError(output_id)
        await output.close()
        return await self.api.unregister_output(output_id)

    async def register_input(self, input_id: str, request: Mapping[str, Any]) -> RegisterInputResponse:
        LOG.info("Register input %s (%s)", input_id, request.get("type"))

        async def install(update: UpdateFn) -> RegisterInputResponse:
            response = await self.api.register_input(GlobalRef(id=input_id), into_register_input(request))
            update(
                AddInput(
                    InputStreamRecord(
                        input_id=input_id,
                        offset_ms=request.get("offsetMs"),
                        video_duration_ms=response.video_duration_ms,
                        audio_duration_ms=response.audio_duration_ms,
                    )
                )
            )
            return response

        return await self.store.run_blocking(install)

    async def unregister_input(self, input_id: str) -> Dict[str, Any]:
        async def uninstall(update: UpdateFn) -> Dict[str, Any]:
            result = await self.api.unregister_input(GlobalRef(id=input_id))
            update(RemoveInput(input_id=input_id))
            return result

        return await self.store.run_blocking(uninstall)

    async def unregister_shader(self, shader_id: str) -> Dict[str, Any]:
        return await self.api.unregister_shader(shader_id)

    async def unregister_image(self, image_id: str) -> Dict[str, Any]:
        return await self.api.unregister_image(GlobalRef(id=image_id))

    async def register_web_renderer(self, instance_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.api.register_web_renderer(instance_id, request)

    async def unregister_web_renderer(self, instance_id: str) -> Dict[str, Any]:
        return await self.api.unregister_web_renderer(instance_id)

    async def start(self) -> None:
        start_ms = self._clock()
        await self.api.start()
        for output in self.outputs.values():
            output.init_clock(start_ms)
        self.start_ms = start_ms

    def handle_event(self, raw: Any) -> None:
        event = parse_event(raw)
        if isinstance(event, InputEvent):
            route_input_event(self.store, self.outputs, event)
        elif isinstance(event, OutputDoneEvent):
            self._resolve_output_done(event.output_id)

    def describe(self) -> Dict[str, Any]:
        return {
            "mode": "live",
            "started": self.start_ms is not None,
            "outputs": [output.describe() for output in self.outputs.values()],
            "inputs": [record.to_dict() for record in self.store.snapshot().values()],
        }


class OfflineCompositor(_CompositorBase):
    """
    Ahead-of-time compositor rendering a single output.

    Inputs, images and shaders must be registered before :meth:`render`.
    """

    def __init__(
        self,
        api: EngineApi,
        config: Optional[CoordinatorConfig] = None,
        *,
        ids: Optional[IdAllocator] = None,
    ) -> None:
        super().__init__(api, config, ids)
        self.store: OfflineInputStreamStore[str] = OfflineInputStreamStore()
        self.output: Optional[OfflineOutput] = None
        self._render_started = False
        # Offsets and known end timestamps of registered inputs.
        self._input_timestamps: List[float] = []

    def _check_not_started(self) -> None:
        if self._render_started:
            raise RenderAlreadyStarted("Render was already started.")

    async def register_input(self, input_id: str, request: Mapping[str, Any]) -> RegisterInputResponse:
        self._check_not_started()
        LOG.info("Register input %s (%s)", input_id, request.get("type"))
        response = await self.api.register_input(GlobalRef(id=input_id), into_register_input(request))
        offset_ms = float(request.get("offsetMs") or 0.0)

        if request.get("type") == "mp4" and request.get("loop"):
            self.store.add_input(
                OfflineInput(
                    input_id=input_id,
                    offset_ms=offset_ms,
                    video_duration_ms=math.inf,
                    audio_duration_ms=math.inf,
                )
            )
            if offset_ms:
                self._input_timestamps.append(offset_ms)
            return response

        self.store.add_input(
            OfflineInput(
                input_id=input_id,
                offset_ms=offset_ms,
                video_duration_ms=response.video_duration_ms,
                audio_duration_ms=response.audio_duration_ms,
            )
        )
        if offset_ms:
            self._input_timestamps.append(offset_ms)
        for duration in (response.video_duration_ms, response.audio_duration_ms):
            if duration:
                self._input_timestamps.append(offset_ms + duration)
        return response

    async def register_shader(self, shader_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        self._check_not_started()
        LOG.info("Register shader %s", shader_id)
        return await super().register_shader(shader_id, request)

    async def register_image(self, image_id: str, request: Mapping[str, Any]) -> Dict[str, Any]:
        self._check_not_started()
        LOG.info("Register image %s", image_id)
        return await super().register_image(image_id, request)

    async def render(
        self,
        tree: SceneTree,
        request: Mapping[str, Any],
        duration_ms: Optional[float] = None,
    ) -> None:
        self._check_not_started()
        self._render_started = True

        output = OfflineOutput(
            OFFLINE_OUTPUT_ID,
            tree,
            request,
            self.api,
            self.store,
            config=self.config,
            ids=self.ids,
            duration_ms=duration_ms,
        )
        self.output = output
        for timestamp_ms in self._input_timestamps:
            output.time.add_timestamp(output.time.new_marker(timestamp_ms))
        if duration_ms is not None:
            output.time.add_timestamp(output.time.new_marker(duration_ms))

        await output.register()
        # Every scene update and the final unregister are queued on the engine
        # before it starts processing.
        await output.schedule_all_updates()

        done = self.wait_for_output_done(OFFLINE_OUTPUT_ID)
        await self.api.start()
        await done

    def handle_event(self, raw: Any) -> None:
        event = parse_event(raw)
        if isinstance(event, OutputDoneEvent):
            self._resolve_output_done(event.output_id)

    def describe(self) -> Dict[str, Any]:
        return {
            "mode": "offline",
            "started": self._render_started,
            "outputs": [self.output.describe()] if self.output is not None else [],
            "inputs": [record.to_dict() for record in self.store.snapshot().values()],
        }
