"""
Monitoring - Scheduled Task.

A repeating background coroutine with one idempotent
cancellation handle. Callback failures are logged and the
loop keeps running. A paused task keeps its schedule but
skips the callback until resumed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Runs ``callback`` every ``interval_seconds``.

    Usage:
        timer = ScheduledTask("health-check", 30, checker.perform_health_check)
        timer.start()
        ...
        await timer.stop()
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[object]],
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._name = name
        self._interval = interval_seconds
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self._runs = 0
        self._paused = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def is_paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        """Skip callbacks until resume(). Idempotent."""
        if not self._paused:
            logger.info(f"Scheduled task {self._name} paused")
        self._paused = True

    def resume(self) -> None:
        if self._paused:
            logger.info(f"Scheduled task {self._name} resumed")
        self._paused = False

    def start(self) -> bool:
        """Start the loop. Returns False if already running."""
        if self.is_running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        return True

    async def stop(self) -> bool:
        """Cancel the loop. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False

        task.cancel()
        if task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._paused:
                continue
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Scheduled task {self._name} failed: {e}")
            self._runs += 1
