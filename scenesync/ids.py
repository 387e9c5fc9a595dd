"""
Per-process id allocation.

Internal stream ids, image ids, timestamp markers and blocking tasks all draw
their handles from an :class:`IdAllocator` that is passed around explicitly, so
id generation stays deterministic for a given sequence of calls.
"""

from __future__ import annotations

from typing import Dict


class IdAllocator:
    """Monotonic counters keyed by namespace."""

    def __init__(self, start: int = 1) -> None:
        self._start = int(start)
        self._counters: Dict[str, int] = {}

    def next(self, namespace: str = "default") -> int:
        value = self._counters.get(namespace, self._start)
        self._counters[namespace] = value + 1
        return value
