from __future__ import annotations

import logging

import pytest

from fakes import RecordingEngineApi, SceneChanges
from scenesync.config import CoordinatorConfig, load_config
from scenesync.context import OutputContext
from scenesync.ids import IdAllocator
from scenesync.inputs import OfflineInputStreamStore
from scenesync.lifetime import ChildrenLifetimeTracker
from scenesync.mixer import AudioMixerContext
from scenesync.timeline import OfflineTimeContext


@pytest.fixture
def api() -> RecordingEngineApi:
    return RecordingEngineApi()


@pytest.fixture
def test_config() -> CoordinatorConfig:
    return load_config(profile="test")


@pytest.fixture
def offline_ctx(api: RecordingEngineApi) -> OutputContext:
    """Output context on offline time, as an offline output would build it."""

    ids = IdAllocator()
    changes = SceneChanges()
    ctx = OutputContext(
        output_id="out",
        api=api,
        global_store=OfflineInputStreamStore(),
        internal_store=OfflineInputStreamStore(),
        audio=AudioMixerContext(on_change=changes),
        time=OfflineTimeContext(ids=ids),
        lifetime=ChildrenLifetimeTracker(),
        ids=ids,
        logger=logging.getLogger("tests.output.out"),
        on_scene_change=changes,
    )
    ctx.changes = changes  # type: ignore[attr-defined]
    return ctx
