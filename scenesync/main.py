"""
Process entrypoint.

Runs a live compositor against the configured engine and exposes the event
ingress so the engine can report input and output events back.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .api.client import HttpEngineApi
from .api.server import create_app
from .compositor import LiveCompositor
from .config import CoordinatorConfig, load_config
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


async def serve(config: CoordinatorConfig, host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    configure_logging()
    api = HttpEngineApi(config.engine_url, timeout_s=config.request_timeout_s)
    compositor = LiveCompositor(api, config)

    @asynccontextmanager
    async def app_lifespan(_app) -> AsyncIterator[None]:
        LOG.info("Event ingress starting (engine at %s)", config.engine_url)
        try:
            yield
        finally:
            for output_id in list(compositor.outputs):
                try:
                    await compositor.unregister_output(output_id)
                except Exception:  # pragma: no cover - defensive
                    LOG.exception("Failed to unregister output %s on shutdown.", output_id)
            await api.aclose()
            LOG.info("Event ingress stopped")

    app = create_app(compositor, lifespan=app_lifespan)
    server_config = uvicorn.Config(
        app=app,
        host=host or config.event_ingress_host,
        port=port or config.event_ingress_port,
        log_config=None,
        log_level="info",
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="scenesync event ingress")
    parser.add_argument("--config", default=None, help="path to a YAML profiles file")
    parser.add_argument("--profile", default="default", help="profile to load")
    parser.add_argument("--host", default=None, help="bind host for the ingress server")
    parser.add_argument("--port", type=int, default=None, help="bind port for the ingress server")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    config = load_config(args.config, profile=args.profile)

    try:
        asyncio.run(serve(config=config, host=args.host, port=args.port))
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")


if __name__ == "__main__":
    run()
