"""
Throttled scene pushes for live outputs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

LOG = logging.getLogger(__name__)

AsyncCallable = Callable[[], Awaitable[None]]


async def _noop() -> None:
    return None


class ThrottledFunction:
    """
    Run ``fn`` at most once per ``interval_ms``.

    A call arriving while ``fn`` runs or while the interval sleep is in
    progress is remembered, and exactly one trailing run happens once the
    interval elapsed.  The last state is therefore always delivered.
    """

    def __init__(
        self,
        fn: AsyncCallable,
        *,
        interval_ms: float = 30,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._fn = fn
        self._interval_s = max(0.0, float(interval_ms)) / 1000.0
        self.logger = logger or LOG
        self._task: Optional[asyncio.Task] = None
        self._pending = False
        self._disabled = False

    @property
    def running(self) -> bool:
        return self._task is not None

    def set_fn(self, fn: AsyncCallable) -> None:
        self._fn = fn

    def disable(self) -> None:
        """Turn every future call into a no-op."""

        self._disabled = True
        self._fn = _noop
        self._pending = False

    def schedule_call(self) -> None:
        if self._disabled:
            return
        if self._task is not None:
            self._pending = True
            return
        self._pending = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def wait_for_pending_calls(self) -> None:
        while self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        try:
            while True:
                try:
                    await self._fn()
                except Exception:
                    self.logger.exception("Throttled call failed.")
                await asyncio.sleep(self._interval_s)
                if not self._pending or self._disabled:
                    break
                # Calls made before this point are covered by the trailing run.
                self._pending = False
        finally:
            self._task = None
