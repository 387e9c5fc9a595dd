"""
Change notification primitives.

Stores and contexts expose ``subscribe``/``unsubscribe`` in the same token
based style as the transport observers.  Notifications that feed back into the
scene (store update -> scene change -> new store action) go through
:class:`NotificationQueue`, which never re-enters itself: a handler running
inside a drain may enqueue more work, and that work is picked up by the drain
already in progress, in FIFO order.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Dict

LOG = logging.getLogger(__name__)

Callback = Callable[[], None]


class ChangeNotifier:
    """Fan-out of no-payload change callbacks."""

    def __init__(self, name: str = "store") -> None:
        self._name = name
        self._counter = 0
        self._observers: Dict[int, Callback] = {}

    def subscribe(self, callback: Callback) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._counter += 1
        token = self._counter
        self._observers[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        self._observers.pop(token, None)

    def __len__(self) -> int:
        return len(self._observers)

    def notify(self) -> None:
        for token, callback in list(self._observers.items()):
            try:
                callback()
            except Exception:  # pragma: no cover - defensive
                LOG.exception("%s observer %s failed.", self._name, token)


class NotificationQueue:
    """
    Single-direction queue of deferred callbacks.

    ``post`` appends; when no drain is running the queue drains immediately.
    Posting from inside a callback only appends.
    """

    def __init__(self) -> None:
        self._pending: Deque[Callback] = deque()
        self._draining = False

    def post(self, callback: Callback) -> None:
        self._pending.append(callback)
        if self._draining:
            return
        self._drain()

    def _drain(self) -> None:
        self._draining = True
        try:
            while self._pending:
                callback = self._pending.popleft()
                try:
                    callback()
                except Exception:  # pragma: no cover - defensive
                    LOG.exception("Queued notification failed.")
        finally:
            self._draining = False
