import asyncio
from typing import Any, Dict

import pytest

from fakes import FakeClock, RecordingEngineApi
from scenesync.config import CoordinatorConfig
from scenesync.inputs import AddInput, InputStreamRecord, LiveInputStreamStore
from scenesync.nodes import AfterTimestamp
from scenesync.output import LiveOutput
from scenesync.refs import GlobalRef
from scenesync.scene import EMPTY_VIEW, CallableScene, SceneTree

RTP_OUTPUT = {
    "type": "rtp_stream",
    "port": 9000,
    "video": {"resolution": {"width": 1280, "height": 720}, "encoder": {"preset": "fast"}},
    "audio": {"encoder": {"preset": "voip", "channels": "stereo"}},
}
UPDATE_ROUTE = "/api/output/main/update"


class TrackingScene(SceneTree):
    def __init__(self) -> None:
        self.ctx = None
        self.unmounted = False

    def mount(self, ctx) -> None:
        self.ctx = ctx
        ctx.scene_changed()

    def unmount(self) -> None:
        self.unmounted = True

    def render(self, ctx) -> Dict[str, Any]:
        return {"type": "text", "text": "hello"}


def make_output(api: RecordingEngineApi, config: CoordinatorConfig, tree: SceneTree, **kwargs) -> LiveOutput:
    return LiveOutput(
        "main",
        tree,
        RTP_OUTPUT,
        api,
        kwargs.pop("store", LiveInputStreamStore()),
        config=config,
        clock=FakeClock().now,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_register_embeds_initial_scene(api: RecordingEngineApi, test_config: CoordinatorConfig) -> None:
    output = make_output(api, test_config, TrackingScene())
    await output.register()
    await output.throttled_update.wait_for_pending_calls()

    body = api.bodies("/api/output/main/register")[0]
    assert body["type"] == "rtp_stream"
    assert body["video"]["initial"] == {"root": {"type": "text", "text": "hello"}}
    assert body["video"]["encoder"] == {"type": "ffmpeg_h264", "preset": "fast"}
    assert body["audio"]["initial"] == {"inputs": []}
    assert body["audio"]["encoder"] == {"type": "opus", "preset": "voip", "channels": "stereo"}
    await output.close()


@pytest.mark.asyncio
async def test_change_before_ready_is_pushed_once(api: RecordingEngineApi, test_config: CoordinatorConfig) -> None:
    output = make_output(api, test_config, TrackingScene())
    await output.register()
    await output.throttled_update.wait_for_pending_calls()

    updates = api.bodies(UPDATE_ROUTE)
    assert len(updates) == 1
    assert updates[0]["video"] == {"root": {"type": "text", "text": "hello"}}
    assert "schedule_time_ms" not in updates[0]
    await output.close()


@pytest.mark.asyncio
async def test_burst_of_changes_is_throttled(api: RecordingEngineApi, test_config: CoordinatorConfig) -> None:
    output = make_output(api, test_config, TrackingScene())
    await output.register()
    await output.throttled_update.wait_for_pending_calls()

    for _ in range(10):
        output.on_scene_change()
    await output.throttled_update.wait_for_pending_calls()

    assert len(api.bodies(UPDATE_ROUTE)) == 3
    await output.close()


@pytest.mark.asyncio
async def test_store_and_mixer_changes_push(api: RecordingEngineApi, test_config: CoordinatorConfig) -> None:
    store = LiveInputStreamStore()
    tree = TrackingScene()
    output = make_output(api, test_config, tree, store=store)
    await output.register()
    await output.throttled_update.wait_for_pending_calls()

    store.dispatch(AddInput(InputStreamRecord(input_id="cam")))
    await output.throttled_update.wait_for_pending_calls()
    tree.ctx.audio.add_input_audio_component(GlobalRef(id="cam"), 0.5)
    await output.throttled_update.wait_for_pending_calls()

    updates = api.bodies(UPDATE_ROUTE)
    assert len(updates) == 3
    assert updates[-1]["audio"] == {"inputs": [{"input_id": "global:cam", "volume": 0.5}]}
    await output.close()


@pytest.mark.asyncio
async def test_close_renders_empty_view_and_stops_pushes(
    api: RecordingEngineApi, test_config: CoordinatorConfig
) -> None:
    store = LiveInputStreamStore()
    tree = TrackingScene()
    output = make_output(api, test_config, tree, store=store)
    await output.register()
    await output.throttled_update.wait_for_pending_calls()

    await output.close()
    pushed = len(api.bodies(UPDATE_ROUTE))
    output.on_scene_change()
    store.dispatch(AddInput(InputStreamRecord(input_id="cam")))
    await output.throttled_update.wait_for_pending_calls()

    assert tree.unmounted
    assert output.scene().video == {"root": EMPTY_VIEW}
    assert len(api.bodies(UPDATE_ROUTE)) == pushed


@pytest.mark.asyncio
async def test_timestamp_marker_triggers_push(api: RecordingEngineApi, test_config: CoordinatorConfig) -> None:
    config = test_config.model_copy(update={"live_timestamp_margin_ms": 0})
    nodes = []

    def on_mount(ctx) -> None:
        node = AfterTimestamp(ctx, 20)
        node.mount()
        nodes.append(node)

    tree = CallableScene(lambda ctx: {"type": "view", "children": []}, on_mount=on_mount)
    output = make_output(api, config, tree, start_ms=0)
    await output.register()
    await output.throttled_update.wait_for_pending_calls()
    assert api.bodies(UPDATE_ROUTE) == []

    await asyncio.sleep(0.08)
    await output.throttled_update.wait_for_pending_calls()
    # The node and the output both follow time, so one leading and one trailing push.
    assert len(api.bodies(UPDATE_ROUTE)) == 2
    nodes[0].unmount()
    await output.close()
