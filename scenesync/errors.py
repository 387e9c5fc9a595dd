"""
Exception hierarchy shared by the coordination layer.
"""

from __future__ import annotations

from typing import Any, Optional


class SceneSyncError(RuntimeError):
    """Base class for scenesync errors."""


class RefParseError(SceneSyncError, ValueError):
    """Raised when a resource reference string cannot be decoded."""


class EngineRequestError(SceneSyncError):
    """Raised when a request to the rendering engine fails."""

    def __init__(
        self,
        message: str,
        *,
        route: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.route = route
        self.status_code = status_code
        self.body = body


class RenderAlreadyStarted(SceneSyncError):
    """Raised when an offline compositor is modified after ``render()``."""


class UnknownOutputError(SceneSyncError, KeyError):
    """Raised when an operation targets an output that was never registered."""
