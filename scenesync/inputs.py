"""
Input stream stores.

The live store is fed by engine events and by registrations; the offline store
derives every input state from the current timestamp.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, Generic, Hashable, List, Mapping, Optional, TypeVar, Union

from .notify import ChangeNotifier, NotificationQueue

LOG = logging.getLogger(__name__)

IdT = TypeVar("IdT", bound=Hashable)
T = TypeVar("T")


class StreamState(str, Enum):
    """Lifecycle of the video or audio part of an input."""

    READY = "ready"
    PLAYING = "playing"
    FINISHED = "finished"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {
    StreamState.READY: 0,
    StreamState.PLAYING: 1,
    StreamState.FINISHED: 2,
}


@dataclass(frozen=True)
class InputStreamRecord(Generic[IdT]):
    input_id: IdT
    video_state: Optional[StreamState] = None
    audio_state: Optional[StreamState] = None
    offset_ms: Optional[float] = None
    video_duration_ms: Optional[float] = None
    audio_duration_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "inputId": self.input_id,
            "videoState": self.video_state.value if self.video_state else None,
            "audioState": self.audio_state.value if self.audio_state else None,
            "offsetMs": self.offset_ms,
            "videoDurationMs": self.video_duration_ms,
            "audioDurationMs": self.audio_duration_ms,
        }


@dataclass(frozen=True)
class AddInput(Generic[IdT]):
    input: InputStreamRecord[IdT]


@dataclass(frozen=True)
class UpdateInput(Generic[IdT]):
    """Partial update; ``None`` fields are left untouched."""

    input_id: IdT
    video_state: Optional[StreamState] = None
    audio_state: Optional[StreamState] = None
    offset_ms: Optional[float] = None
    video_duration_ms: Optional[float] = None
    audio_duration_ms: Optional[float] = None


@dataclass(frozen=True)
class RemoveInput(Generic[IdT]):
    input_id: IdT


UpdateAction = Union[AddInput, UpdateInput, RemoveInput]
UpdateFn = Callable[[UpdateAction], None]


class InputStreamStore(Generic[IdT]):
    """Read side shared by both store variants."""

    def __init__(self) -> None:
        self._context: Dict[IdT, InputStreamRecord[IdT]] = {}
        self._notifier = ChangeNotifier("input-store")

    def snapshot(self) -> Mapping[IdT, InputStreamRecord[IdT]]:
        """
        Current records.  Every change replaces the mapping, so a snapshot
        held by a caller never changes underneath it.
        """

        return self._context

    def get(self, input_id: IdT) -> Optional[InputStreamRecord[IdT]]:
        return self._context.get(input_id)

    def subscribe(self, callback: Callable[[], None]) -> int:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, token: int) -> None:
        self._notifier.unsubscribe(token)

    def _signal_update(self) -> None:
        self._notifier.notify()


class LiveInputStreamStore(InputStreamStore[IdT]):
    """
    Event-driven store with an ordering-preserving update queue.

    While a :meth:`run_blocking` sequence is in flight, actions passed to
    :meth:`dispatch` are buffered and applied in arrival order once the
    sequence finished.  Actions dispatched from inside a change callback are
    applied after that callback returns.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        super().__init__()
        self.logger = logger or LOG
        self._buffer: Optional[List[UpdateAction]] = None
        self._blocking_lock = asyncio.Lock()
        self._events = NotificationQueue()

    @property
    def is_blocking(self) -> bool:
        return self._buffer is not None

    def dispatch(self, action: UpdateAction) -> None:
        if self._buffer is not None:
            self._buffer.append(action)
            return
        self._apply(action)

    async def run_blocking(self, fn: Callable[[UpdateFn], Awaitable[T]]) -> T:
        """
        Run ``fn`` while holding back dispatched actions.

        ``fn`` receives an update function that bypasses the buffer; it should
        be used to install the records that the buffered actions depend on.
        """

        async with self._blocking_lock:
            self._buffer = []
            try:
                return await fn(self._apply)
            finally:
                buffered, self._buffer = self._buffer, None
                for action in buffered:
                    self._apply(action)

    def _apply(self, action: UpdateAction) -> None:
        self._events.post(lambda: self._apply_now(action))

    def _apply_now(self, action: UpdateAction) -> None:
        if isinstance(action, AddInput):
            self._add_input(action.input)
        elif isinstance(action, UpdateInput):
            self._update_input(action)
        elif isinstance(action, RemoveInput):
            self._remove_input(action.input_id)
        else:
            self.logger.warning("Ignoring unknown input store action %r", action)

    def _add_input(self, record: InputStreamRecord[IdT]) -> None:
        if record.input_id in self._context:
            self.logger.warning("Adding input %s. Input already exists.", record.input_id)
        self._context = {**self._context, record.input_id: record}
        self._signal_update()

    def _update_input(self, update: UpdateInput[IdT]) -> None:
        current = self._context.get(update.input_id)
        if current is None:
            self.logger.warning("Updating input %s. Input does not exist.", update.input_id)
            return
        changes = {}
        for name in ("video_state", "audio_state"):
            new_state: Optional[StreamState] = getattr(update, name)
            if new_state is None:
                continue
            old_state: Optional[StreamState] = getattr(current, name)
            if old_state is not None and new_state.rank < old_state.rank:
                self.logger.warning(
                    "Ignoring %s change %s -> %s for input %s.",
                    name,
                    old_state.value,
                    new_state.value,
                    update.input_id,
                )
                continue
            changes[name] = new_state
        for name in ("offset_ms", "video_duration_ms", "audio_duration_ms"):
            value = getattr(update, name)
            if value is not None:
                changes[name] = value
        if not changes:
            return
        self._context = {**self._context, update.input_id: replace(current, **changes)}
        self._signal_update()

    def _remove_input(self, input_id: IdT) -> None:
        if input_id not in self._context:
            return
        context = dict(self._context)
        del context[input_id]
        self._context = context
        self._signal_update()


@dataclass(frozen=True)
class OfflineInput(Generic[IdT]):
    input_id: IdT
    offset_ms: float = 0.0
    video_duration_ms: Optional[float] = None
    audio_duration_ms: Optional[float] = None


class OfflineInputStreamStore(InputStreamStore[IdT]):
    """
    Static inputs whose state is a pure function of the current timestamp.
    """

    def __init__(self) -> None:
        super().__init__()
        self._inputs: List[OfflineInput[IdT]] = []
        self._timestamp_ms: Optional[float] = None

    def add_input(self, entry: OfflineInput[IdT]) -> None:
        self._inputs.append(entry)

    @property
    def inputs(self) -> List[OfflineInput[IdT]]:
        return list(self._inputs)

    def dispatch(self, action: UpdateAction) -> None:
        """
        Registration-side actions.  State changes are derived from time, so
        ``UpdateInput`` is ignored.
        """

        if isinstance(action, AddInput):
            record = action.input
            self.add_input(
                OfflineInput(
                    input_id=record.input_id,
                    offset_ms=record.offset_ms or 0.0,
                    video_duration_ms=record.video_duration_ms,
                    audio_duration_ms=record.audio_duration_ms,
                )
            )
        elif isinstance(action, RemoveInput):
            self._inputs = [entry for entry in self._inputs if entry.input_id != action.input_id]
        else:
            LOG.debug("Offline store ignores %r", action)
            return
        if self._timestamp_ms is not None:
            self.set_current_timestamp(self._timestamp_ms)

    async def run_blocking(self, fn: Callable[[UpdateFn], Awaitable[T]]) -> T:
        return await fn(self.dispatch)

    def set_current_timestamp(self, timestamp_ms: float) -> None:
        self._timestamp_ms = timestamp_ms
        self._context = {
            entry.input_id: self._record_at(entry, timestamp_ms)
            for entry in self._inputs
            if timestamp_ms >= entry.offset_ms
        }
        self._signal_update()

    @staticmethod
    def _record_at(entry: OfflineInput[IdT], timestamp_ms: float) -> InputStreamRecord[IdT]:
        def state_for(duration_ms: Optional[float]) -> StreamState:
            # Unknown duration counts as zero length.
            end_ms = entry.offset_ms + (duration_ms or 0.0)
            if math.isfinite(end_ms) and end_ms <= timestamp_ms:
                return StreamState.FINISHED
            return StreamState.PLAYING

        return InputStreamRecord(
            input_id=entry.input_id,
            video_state=state_for(entry.video_duration_ms),
            audio_state=state_for(entry.audio_duration_ms),
            offset_ms=entry.offset_ms,
            video_duration_ms=entry.video_duration_ms,
            audio_duration_ms=entry.audio_duration_ms,
        )
