"""
Client for the rendering engine HTTP API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import EngineRequestError
from ..refs import ImageRef, InputRef, encode_ref
from ..scene import SceneSnapshot
from .schemas import RegisterInputResponse

LOG = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class EngineApi:
    """
    Request/response boundary to the rendering engine.

    Resource ids travel in their reference string form.
    """

    async def register_input(self, ref: InputRef, request: Dict[str, Any]) -> RegisterInputResponse:
        response = await self.send("POST", f"/api/input/{_segment(encode_ref(ref))}/register", request)
        return RegisterInputResponse.model_validate(response or {})

    async def unregister_input(self, ref: InputRef, schedule_time_ms: Optional[float] = None) -> Dict[str, Any]:
        body = {} if schedule_time_ms is None else {"schedule_time_ms": schedule_time_ms}
        return await self.send("POST", f"/api/input/{_segment(encode_ref(ref))}/unregister", body)

    async def register_image(self, ref: ImageRef, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send("POST", f"/api/image/{_segment(encode_ref(ref))}/register", request)

    async def unregister_image(self, ref: ImageRef) -> Dict[str, Any]:
        return await self.send("POST", f"/api/image/{_segment(encode_ref(ref))}/unregister", {})

    async def register_shader(self, shader_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send("POST", f"/api/shader/{_segment(shader_id)}/register", request)

    async def unregister_shader(self, shader_id: str) -> Dict[str, Any]:
        return await self.send("POST", f"/api/shader/{_segment(shader_id)}/unregister", {})

    async def register_web_renderer(self, instance_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send("POST", f"/api/web-renderer/{_segment(instance_id)}/register", request)

    async def unregister_web_renderer(self, instance_id: str) -> Dict[str, Any]:
        return await self.send("POST", f"/api/web-renderer/{_segment(instance_id)}/unregister", {})

    async def register_output(self, output_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send("POST", f"/api/output/{_segment(output_id)}/register", request)

    async def update_scene(self, output_id: str, snapshot: SceneSnapshot) -> Dict[str, Any]:
        return await self.send("POST", f"/api/output/{_segment(output_id)}/update", snapshot.to_request())

    async def unregister_output(self, output_id: str, schedule_time_ms: Optional[float] = None) -> Dict[str, Any]:
        body = {} if schedule_time_ms is None else {"schedule_time_ms": schedule_time_ms}
        return await self.send("POST", f"/api/output/{_segment(output_id)}/unregister", body)

    async def start(self) -> None:
        await self.send("POST", "/api/start", {})

    async def send(self, method: str, route: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        raise NotImplementedError


class HttpEngineApi(EngineApi):
    """:class:`EngineApi` over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_s, connect=min(10.0, timeout_s)),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpEngineApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def send(self, method: str, route: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        LOG.debug("%s %s", method, route)
        try:
            response = await self._client.request(method, route, json=body if body is not None else {})
        except httpx.HTTPError as exc:
            raise EngineRequestError(f"Request {method} {route} failed: {exc}", route=route) from exc

        if response.status_code >= 400:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = response.text
            raise EngineRequestError(
                f"Request {method} {route} failed with status {response.status_code}",
                route=route,
                status_code=response.status_code,
                body=payload,
            )
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError:
            LOG.warning("Non-JSON response for %s %s", method, route)
            return {}
        return payload if isinstance(payload, dict) else {"result": payload}
