"""Utility helpers for scenesync."""

from .logging import configure_logging, output_logger

__all__ = ["configure_logging", "output_logger"]
