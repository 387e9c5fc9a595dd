"""Rendering engine boundary: HTTP client, wire schemas and events."""

from .client import EngineApi, HttpEngineApi
from .events import InputEvent, OutputDoneEvent, parse_event

__all__ = ["EngineApi", "HttpEngineApi", "InputEvent", "OutputDoneEvent", "parse_event"]
