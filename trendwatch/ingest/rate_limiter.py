"""Per-source request pacing for adapter calls."""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Optional

from trendwatch.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed minimum interval between calls to the same source, with cooldowns."""

    def __init__(self, min_interval: Optional[float] = None):
        self.min_interval = (
            settings.source_request_delay_seconds if min_interval is None else min_interval
        )
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.last_request: dict[str, float] = {}
        self.source_cooldowns: dict[str, float] = {}  # Source -> cooldown until timestamp

    async def acquire(self, source: str, min_interval: Optional[float] = None) -> None:
        """
        Wait until ``source`` may be called again.

        Args:
            source: Source adapter name
            min_interval: Override of the configured delay in seconds
        """
        interval = self.min_interval if min_interval is None else min_interval
        async with self.locks[source]:
            now = time.monotonic()

            cooldown_until = self.source_cooldowns.get(source, 0.0)
            if now < cooldown_until:
                await asyncio.sleep(cooldown_until - now)
                now = time.monotonic()

            last_time = self.last_request.get(source)
            if last_time is not None:
                wait_needed = max(0.0, interval - (now - last_time))
                if wait_needed > 0:
                    await asyncio.sleep(wait_needed)

            self.last_request[source] = time.monotonic()

    def set_cooldown(self, source: str, seconds: float) -> None:
        """Block calls to ``source`` for ``seconds`` (e.g. after a 429)."""
        logger.warning(f"Cooling down {source} for {seconds:.0f}s")
        self.source_cooldowns[source] = time.monotonic() + seconds


# Global instance
rate_limiter = RateLimiter()
