"""Minimum-interval rate limiter for outbound provider calls."""

import asyncio
import time

from context_engine.core.logging import get_logger

logger = get_logger(__name__)


class MinIntervalRateLimiter:
    """
    Spaces calls so that consecutive acquisitions are at least
    `min_interval` seconds apart.

    Shared by every caller of one provider within a process; acquisitions
    are serialized through an asyncio lock.
    """

    def __init__(self, min_interval: float = 0.3):
        """
        Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between calls
        """
        self.min_interval = min_interval
        self._last_call: float | None = None
        self._lock = asyncio.Lock()
        self._wait_count = 0

    async def acquire(self) -> None:
        """Wait until the next call is allowed, then record it."""
        async with self._lock:
            now = time.monotonic()
            if self._last_call is not None:
                wait_for = self.min_interval - (now - self._last_call)
                if wait_for > 0:
                    self._wait_count += 1
                    logger.debug(f"Rate limiter sleeping {wait_for:.3f}s")
                    await asyncio.sleep(wait_for)
            self._last_call = time.monotonic()

    def reset(self) -> None:
        """Forget the last call (useful for testing)."""
        self._last_call = None
        self._wait_count = 0

    @property
    def wait_count(self) -> int:
        """Number of acquisitions that had to wait."""
        return self._wait_count
