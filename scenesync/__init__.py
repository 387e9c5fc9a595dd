"""
scenesync: coordination layer between a declarative scene runtime and a
remote rendering engine.

Scene changes are turned into ordered ``update_scene`` calls, either live
(wall-clock driven, throttled) or offline (stepped through registered
timestamps, waiting for blocking work and for the scene to settle).
"""

from __future__ import annotations

__all__ = [
    "CoordinatorConfig",
    "LiveCompositor",
    "OfflineCompositor",
    "load_config",
]

from .compositor import LiveCompositor, OfflineCompositor
from .config import CoordinatorConfig, load_config
