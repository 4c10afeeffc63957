"""Dead-connection watchdog.

A connection that stays open but stops delivering bytes is indistinguishable
from a quiet one at the socket level. The monitor ticks every ``timeout``
seconds and fires once if nothing was marked alive during the last window.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from ..errors import HeartbeatTimeoutError

log = structlog.get_logger()


class HeartbeatMonitor:
    """Fires ``on_expired`` when ``mark_alive`` is not called within ``timeout``."""

    def __init__(
        self,
        timeout: float,
        on_expired: Callable[[HeartbeatTimeoutError], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self._on_expired = on_expired
        self._clock = clock
        self._last_alive = clock()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def mark_alive(self) -> None:
        self._last_alive = self._clock()

    def start(self) -> None:
        """Arm the watchdog. No-op if already running."""
        if self.running:
            return
        self._last_alive = self._clock()
        self._task = asyncio.get_running_loop().create_task(self._watch())

    def stop(self) -> None:
        """Disarm the watchdog. Safe to call at any time, including from ``on_expired``."""
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.timeout)
            if self._clock() - self._last_alive < self.timeout:
                continue
            log.warning("heartbeat_expired", timeout=self.timeout)
            self._task = None
            self._on_expired(HeartbeatTimeoutError(self.timeout))
            return
