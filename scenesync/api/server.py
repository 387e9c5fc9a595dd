"""
FastAPI event ingress.

The rendering engine (or a relay in front of it) delivers its events here,
either one per POST or as JSON frames over a WebSocket.  Events go straight to
the compositor's ``handle_event``; malformed ones are dropped there.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from fastapi import Body, FastAPI, WebSocket, WebSocketDisconnect

from ..compositor import LiveCompositor, OfflineCompositor

LOG = logging.getLogger(__name__)

AnyCompositor = Union[LiveCompositor, OfflineCompositor]


def create_app(compositor: AnyCompositor, *, lifespan: Optional[Any] = None) -> FastAPI:
    app = FastAPI(title="scenesync event ingress", lifespan=lifespan)
    app.state.compositor = compositor

    @app.post("/api/events", status_code=202)
    async def post_event(payload: Any = Body(...)) -> Dict[str, bool]:
        compositor.handle_event(payload)
        return {"accepted": True}

    @app.get("/api/outputs")
    async def list_outputs() -> Dict[str, Any]:
        return compositor.describe()

    @app.websocket("/ws/events")
    async def event_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        logger = LOG.getChild("ws")
        try:
            while True:
                try:
                    payload = await websocket.receive_json()
                except ValueError as exc:
                    logger.warning("Dropping non-JSON event frame: %s", exc)
                    continue
                compositor.handle_event(payload)
        except WebSocketDisconnect:
            logger.info("Event stream disconnected")

    return app
