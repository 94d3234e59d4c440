"""
Rate limit sweep job.
Periodically evicts expired fixed-window entries so the limiter tables do
not have to sweep on the request path under heavy traffic.
"""

import asyncio
import contextlib

from spoqen.infrastructure.observability.logging import get_logger
from spoqen.middleware.rate_limiter import RateLimiter

logger = get_logger(__name__)


class RateLimitSweeper:
    """Background asyncio task calling cleanup() on a set of limiters."""

    def __init__(self, limiters: list[RateLimiter], interval_seconds: float):
        self.limiters = limiters
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        """Sweep every limiter once and return the number of evicted entries."""
        removed = 0
        for limiter in self.limiters:
            removed += limiter.cleanup()
        return removed

    async def _run(self) -> None:
        logger.info(
            "Starting rate limit sweeper",
            interval_seconds=self.interval_seconds,
            limiters=len(self.limiters),
        )

        while True:
            await asyncio.sleep(self.interval_seconds)
            removed = self.sweep_once()
            if removed:
                logger.debug("Rate limit sweep cycle completed", removed=removed)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Rate limit sweeper stopped")
