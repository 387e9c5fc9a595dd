"""
Coordinator configuration.

Profiles live in a YAML file (``configs/default.yaml`` ships with the
package); the selected profile is validated into :class:`CoordinatorConfig`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "default.yaml"
ENGINE_URL_ENV = "SCENESYNC_ENGINE_URL"


class CoordinatorConfig(BaseModel):
    engine_url: str = "http://127.0.0.1:8081"
    request_timeout_s: float = Field(default=30.0, gt=0)
    live_push_interval_ms: float = Field(default=30, ge=0)
    live_timestamp_margin_ms: float = Field(default=100, ge=0)
    offline_no_update_timeout_ms: float = Field(default=200, ge=0)
    offline_max_render_timeout_ms: float = Field(default=2000, ge=0)
    offline_blocked_poll_ms: float = Field(default=100, gt=0)
    output_min_lifetime_ms: float = Field(default=1000, ge=0)
    event_ingress_host: str = "127.0.0.1"
    event_ingress_port: int = Field(default=8090, ge=0, le=65535)
    model_config = ConfigDict(extra="forbid")


def load_config(
    path: Optional[Path | str] = None,
    profile: str = "default",
    overrides: Optional[Mapping[str, Any]] = None,
) -> CoordinatorConfig:
    """
    Load ``profile`` from ``path`` (the packaged defaults when omitted).

    Precedence: explicit ``overrides`` > ``SCENESYNC_ENGINE_URL`` > file.
    """

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    with config_path.open("r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}

    profiles = document.get("profiles") or {}
    if profile not in profiles:
        raise KeyError(f"Unknown profile '{profile}' in {config_path}")

    values: Dict[str, Any] = dict(profiles.get(profile) or {})
    env_url = os.environ.get(ENGINE_URL_ENV)
    if env_url:
        values["engine_url"] = env_url
    if overrides:
        values.update(overrides)
    LOG.debug("Loaded profile %s from %s", profile, config_path)
    return CoordinatorConfig(**values)
