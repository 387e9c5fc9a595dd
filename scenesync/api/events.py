"""
Engine event parsing and routing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from pydantic import ValidationError

from ..errors import RefParseError
from ..inputs import LiveInputStreamStore, StreamState, UpdateInput
from ..refs import GlobalRef, InputRef, ScopedRef, decode_ref
from .schemas import INPUT_EVENT_TYPES, EventType, RawEventModel

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..output import LiveOutput

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputEvent:
    type: EventType
    ref: InputRef

    @property
    def is_video(self) -> bool:
        return self.type.value.startswith("VIDEO_")

    @property
    def state(self) -> StreamState:
        if self.type in (EventType.VIDEO_INPUT_DELIVERED, EventType.AUDIO_INPUT_DELIVERED):
            return StreamState.READY
        if self.type in (EventType.VIDEO_INPUT_PLAYING, EventType.AUDIO_INPUT_PLAYING):
            return StreamState.PLAYING
        return StreamState.FINISHED


@dataclass(frozen=True)
class OutputDoneEvent:
    output_id: str
    type: EventType = EventType.OUTPUT_DONE


EngineEvent = Union[InputEvent, OutputDoneEvent]


def parse_event(raw: Any, logger: Optional[logging.Logger] = None) -> Optional[EngineEvent]:
    """
    Validate a raw event payload.

    Malformed payloads are logged and dropped (``None``); they never raise.
    """

    log = logger or LOG
    try:
        model = RawEventModel.model_validate(raw)
    except ValidationError as exc:
        log.warning("Dropping malformed engine event %r: %s", raw, exc.errors())
        return None

    try:
        event_type = EventType(model.type.upper())
    except ValueError:
        log.debug("Ignoring unknown engine event type %r", model.type)
        return None

    if event_type in INPUT_EVENT_TYPES:
        if not model.input_id:
            log.warning("Dropping %s event without input_id", event_type.value)
            return None
        try:
            ref = decode_ref(model.input_id)
        except RefParseError as exc:
            log.warning("Dropping %s event: %s", event_type.value, exc)
            return None
        return InputEvent(type=event_type, ref=ref)

    if not model.output_id:
        log.warning("Dropping %s event without output_id", event_type.value)
        return None
    return OutputDoneEvent(output_id=model.output_id)


def route_input_event(
    store: LiveInputStreamStore[str],
    outputs: Mapping[str, "LiveOutput"],
    event: InputEvent,
) -> None:
    """
    Turn an input event into a store update.

    Global references update the instance store; scoped references update the
    internal store of the output that owns them.
    """

    field = "video_state" if event.is_video else "audio_state"
    if isinstance(event.ref, GlobalRef):
        store.dispatch(UpdateInput(input_id=event.ref.id, **{field: event.state}))
    elif isinstance(event.ref, ScopedRef):
        output = outputs.get(event.ref.output_id)
        if output is None:
            LOG.debug("Dropping %s for unknown output %s", event.type.value, event.ref.output_id)
            return
        output.internal_store.dispatch(UpdateInput(input_id=event.ref.id, **{field: event.state}))
