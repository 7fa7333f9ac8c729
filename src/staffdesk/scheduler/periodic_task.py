"""In-process runner that calls one reconciliation tick on a fixed interval.

Used where no Discord client drives the ticks (headless deployments, tests).
Handles lifecycle (start/shutdown) and standard error handling.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from staffdesk.util.logger import get_logger

logger = get_logger("periodic_task")


class PeriodicTask:
    """
    Runs ``tick`` every ``get_interval()`` seconds until shut down.

    Args:
        name: Human-readable name for logging (e.g. "SUSPENSION_SWEEP").
        tick: Async callable invoked once per interval.
        get_interval: Callable returning the interval in seconds (read at start).
        run_immediately: Run the first tick right away instead of after one interval.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Awaitable[Any]],
        get_interval: Callable[[], float],
        run_immediately: bool = True,
    ) -> None:
        self._name = name
        self._tick = tick
        self._get_interval = get_interval
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: tick, sleep, repeat."""
        logger.info("[%s] Starting periodic task (interval=%.1fs)", self._name, interval)
        try:
            if not self._run_immediately:
                await asyncio.sleep(interval)
            while True:
                try:
                    await self._tick()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[%s] Unexpected error during tick: %s", self._name, exc)
                self.runs += 1
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic task cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Task already running", self._name)
            return
        interval = self._get_interval()
        if interval <= 0:
            raise ValueError(f"{self._name}: interval must be positive, got {interval}")
        self._task = asyncio.create_task(self._run_loop(interval))

    async def shutdown(self) -> None:
        """Cancel the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Periodic task shutdown complete", self._name)
