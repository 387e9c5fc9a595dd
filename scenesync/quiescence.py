"""
Render-stability detection for offline outputs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

LOG = logging.getLogger(__name__)

DEFAULT_NO_UPDATE_TIMEOUT_MS = 200
DEFAULT_MAX_RENDER_TIMEOUT_MS = 2000


class UpdateQuiescenceTracker:
    """
    Decide when the scene for the current timestamp stopped changing.

    A wait resolves once no update was reported for ``no_update_timeout_ms``,
    or unconditionally after ``max_render_timeout_ms`` so that a scene which
    keeps mutating cannot stall the render.
    """

    def __init__(
        self,
        *,
        no_update_timeout_ms: float = DEFAULT_NO_UPDATE_TIMEOUT_MS,
        max_render_timeout_ms: float = DEFAULT_MAX_RENDER_TIMEOUT_MS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._no_update_s = max(0.0, float(no_update_timeout_ms)) / 1000.0
        self._max_render_s = max(0.0, float(max_render_timeout_ms)) / 1000.0
        self.logger = logger or LOG
        self._future: Optional[asyncio.Future] = None
        self._no_update_handle: Optional[asyncio.TimerHandle] = None
        self._max_render_handle: Optional[asyncio.TimerHandle] = None

    @property
    def waiting(self) -> bool:
        return self._future is not None and not self._future.done()

    def on_update(self) -> None:
        """Report a scene mutation; restarts the no-update countdown."""

        if not self.waiting:
            return
        self._arm_no_update()

    async def wait_for_render_end(self) -> bool:
        """
        Wait until the scene is stable.

        Returns ``False`` when the wait was cut short by the max-render timeout.
        """

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._arm_no_update()
        self._max_render_handle = loop.call_later(self._max_render_s, self._force_render_end)
        try:
            return await self._future
        finally:
            self._cancel_timers()
            self._future = None

    def _arm_no_update(self) -> None:
        if self._no_update_handle is not None:
            self._no_update_handle.cancel()
        loop = asyncio.get_running_loop()
        self._no_update_handle = loop.call_later(self._no_update_s, self._resolve, True)

    def _force_render_end(self) -> None:
        self.logger.warning(
            "Render for a specific timestamp took too long, make sure you don't have "
            "an infinite update loop."
        )
        self._resolve(False)

    def _resolve(self, stable: bool) -> None:
        future = self._future
        if future is not None and not future.done():
            future.set_result(stable)

    def _cancel_timers(self) -> None:
        for handle in (self._no_update_handle, self._max_render_handle):
            if handle is not None:
                handle.cancel()
        self._no_update_handle = None
        self._max_render_handle = None
