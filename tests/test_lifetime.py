import math

import pytest

from fakes import SceneChanges
from scenesync.lifetime import ChildrenLifetimeTracker
from scenesync.timeline import TimestampMarker


def test_done_only_when_empty() -> None:
    tracker = ChildrenLifetimeTracker()
    assert tracker.is_done()

    first = TimestampMarker(handle=1, timestamp_ms=100)
    second = TimestampMarker(handle=2, timestamp_ms=math.inf)
    tracker.add(first)
    tracker.add(second)
    assert len(tracker) == 2

    tracker.remove(first)
    assert not tracker.is_done()
    tracker.remove(second)
    assert tracker.is_done()


def test_markers_for_same_instant_are_independent() -> None:
    tracker = ChildrenLifetimeTracker()
    tracker.add(TimestampMarker(handle=1, timestamp_ms=50))
    tracker.add(TimestampMarker(handle=2, timestamp_ms=50))
    assert len(tracker) == 2


def test_double_remove_is_noop(caplog: pytest.LogCaptureFixture) -> None:
    changes = SceneChanges()
    tracker = ChildrenLifetimeTracker(on_change=changes)
    marker = TimestampMarker(handle=1, timestamp_ms=10)

    tracker.add(marker)
    tracker.remove(marker)
    tracker.remove(marker)
    tracker.remove(TimestampMarker(handle=9, timestamp_ms=10))

    assert tracker.is_done()
    assert changes.count == 2
    assert "already removed" in caplog.text


def test_duplicate_add_is_noop(caplog: pytest.LogCaptureFixture) -> None:
    tracker = ChildrenLifetimeTracker()
    marker = TimestampMarker(handle=4, timestamp_ms=10)
    tracker.add(marker)
    tracker.add(marker)
    assert len(tracker) == 1
    assert "already registered" in caplog.text
