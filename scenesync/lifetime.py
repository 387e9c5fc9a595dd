"""
Children lifetime tracking.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from .timeline import TimestampMarker

LOG = logging.getLogger(__name__)


class ChildrenLifetimeTracker:
    """
    Aggregate of "keep this subtree alive until T" registrations.

    Descendants add their end marker on mount and remove it once it expired.
    The tracker is done when no marker is left.  ``on_change`` fires after every
    effective add or remove.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._markers: Dict[int, TimestampMarker] = {}
        self._on_change = on_change

    def add(self, marker: TimestampMarker) -> None:
        if marker.handle in self._markers:
            LOG.warning("Lifetime marker %s is already registered.", marker.handle)
            return
        self._markers[marker.handle] = marker
        self._changed()

    def remove(self, marker: TimestampMarker) -> None:
        if self._markers.pop(marker.handle, None) is None:
            LOG.warning("Lifetime marker %s was not registered or was already removed.", marker.handle)
            return
        self._changed()

    def is_done(self) -> bool:
        return not self._markers

    def __len__(self) -> int:
        return len(self._markers)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
