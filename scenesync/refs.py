"""
Tagged references to inputs and images.

A reference is either ``global`` (registered on the compositor instance) or
``scoped`` to a single output.  References travel to the engine in their string
form: ``"global:<id>"`` or ``"scoped:<id>:<output_id>"``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from .errors import RefParseError

GLOBAL_TAG = "global"
SCOPED_TAG = "scoped"

# Exactly what encode_ref writes for an int id.
_SCOPED_ID = re.compile(r"-?(0|[1-9][0-9]*)")


@dataclass(frozen=True, slots=True)
class GlobalRef:
    id: str

    @property
    def type(self) -> str:
        return GLOBAL_TAG


@dataclass(frozen=True, slots=True)
class ScopedRef:
    output_id: str
    id: int

    @property
    def type(self) -> str:
        return SCOPED_TAG


Ref = Union[GlobalRef, ScopedRef]
InputRef = Ref
ImageRef = Ref


def encode_ref(ref: Ref) -> str:
    if isinstance(ref, GlobalRef):
        return f"{GLOBAL_TAG}:{ref.id}"
    if isinstance(ref, ScopedRef):
        return f"{SCOPED_TAG}:{ref.id}:{ref.output_id}"
    raise TypeError(f"Unsupported reference {ref!r}")


def decode_ref(raw: str) -> Ref:
    """
    Parse the string form produced by :func:`encode_ref`.

    Global ids and output ids may themselves contain ``:``; everything after
    the fixed leading segments belongs to them.
    """

    if not isinstance(raw, str):
        raise RefParseError(f"Reference must be a string, got {type(raw).__name__}")
    segments = raw.split(":")
    if len(segments) < 2:
        raise RefParseError(f"Invalid reference '{raw}': expected '<tag>:<id>'")

    tag = segments[0]
    if tag == GLOBAL_TAG:
        return GlobalRef(id=":".join(segments[1:]))
    if tag == SCOPED_TAG:
        if len(segments) < 3:
            raise RefParseError(f"Invalid scoped reference '{raw}': missing output id")
        if not _SCOPED_ID.fullmatch(segments[1]):
            raise RefParseError(f"Invalid scoped reference '{raw}': id is not a number")
        return ScopedRef(output_id=":".join(segments[2:]), id=int(segments[1]))
    raise RefParseError(f"Invalid reference '{raw}': unknown tag '{tag}'")
