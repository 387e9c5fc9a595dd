"""
Audio mixer configuration for a single output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .refs import InputRef

LOG = logging.getLogger(__name__)

MAX_VOLUME = 1.0


@dataclass(eq=False)
class AudioContribution:
    """Volume requested by one mounted component.  Compared by identity."""

    volume: float = 1.0


@dataclass
class MixerEntry:
    ref: InputRef
    contributions: List[AudioContribution] = field(default_factory=list)

    @property
    def volume(self) -> float:
        return min(MAX_VOLUME, sum(item.volume for item in self.contributions))


@dataclass(frozen=True)
class MixerInput:
    ref: InputRef
    volume: float


class AudioMixerContext:
    """
    Collect per-input volume contributions and expose the effective mix.

    Several components may request audio from the same input; their volumes
    are summed and clipped at 1.0.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._entries: Dict[InputRef, MixerEntry] = {}
        self._on_change = on_change
        self._config: List[MixerInput] = []

    def add_input_audio_component(self, ref: InputRef, volume: float = 1.0) -> AudioContribution:
        contribution = AudioContribution(volume=max(0.0, float(volume)))
        entry = self._entries.get(ref)
        if entry is None:
            entry = self._entries[ref] = MixerEntry(ref=ref)
        entry.contributions.append(contribution)
        self._changed()
        return contribution

    def remove_input_audio_component(self, ref: InputRef, contribution: AudioContribution) -> None:
        entry = self._entries.get(ref)
        if entry is None or not any(item is contribution for item in entry.contributions):
            LOG.warning("Removing unknown audio contribution for %s.", ref)
            return
        entry.contributions = [item for item in entry.contributions if item is not contribution]
        if not entry.contributions:
            del self._entries[ref]
        self._changed()

    def volume_for(self, ref: InputRef) -> float:
        entry = self._entries.get(ref)
        return entry.volume if entry is not None else 0.0

    def get_audio_config(self) -> List[MixerInput]:
        return list(self._config)

    def _changed(self) -> None:
        self._config = [MixerInput(ref=entry.ref, volume=entry.volume) for entry in self._entries.values()]
        if self._on_change is not None:
            self._on_change()
