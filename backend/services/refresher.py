"""Background polling loop that re-runs the portfolio load on a fixed interval."""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


class PeriodicRefresher:
    """Calls `refresh_fn` every `interval_seconds` until stopped.

    A failed cycle is logged and the loop keeps going. Cycles never cancel
    fetches started by earlier ones; the cache's last writer wins.
    """

    def __init__(self, refresh_fn: Callable[[], Any], interval_seconds: float = 30):
        self.refresh_fn = refresh_fn
        self.interval_seconds = interval_seconds
        self.last_refreshed_at: float | None = None
        self.last_error: str | None = None
        self.cycles = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("Periodic refresh disabled")
            return
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Periodic refresh started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Periodic refresh stopped")

    async def refresh_once(self) -> None:
        try:
            result = self.refresh_fn()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.last_error = str(e)
            logger.exception("Refresh cycle failed")
        else:
            self.last_error = None
            self.last_refreshed_at = time.time()
        finally:
            self.cycles += 1

    def status(self) -> dict:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "cycles": self.cycles,
            "last_refreshed_at": self.last_refreshed_at,
            "last_error": self.last_error,
        }

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.refresh_once()
