"""
Logging helpers for scenesync.

Library modules only call ``logging.getLogger(__name__)``; the entrypoint is
the single place that installs handlers.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_LEVEL_ENV = "SCENESYNC_LOG_LEVEL"


def resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, logging.INFO)
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Union[int, str, None] = None, format: Optional[str] = None) -> None:
    """
    Configure the root logger once; an existing configuration wins.
    """

    if logging.getLogger().handlers:
        return

    logging.basicConfig(
        level=resolve_level(level),
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def output_logger(base: logging.Logger, output_id: str) -> logging.Logger:
    return base.getChild(f"output.{output_id}")
