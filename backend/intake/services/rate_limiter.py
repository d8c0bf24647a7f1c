"""
Per-client request rate limiting.
"""

import asyncio
import logging
import math
import time
from typing import Callable, Iterable, Optional

from intake.errors import RateLimitExceeded
from intake.storage.rate_limit_store import RateLimitStore

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request limiter for one scope.

    Attributes:
        store: Counter store shared by every limiter of the app
        scope: Prefix isolating this limiter's counters from other scopes
        max_requests: Requests allowed per client inside one window
        window_seconds: Window length
        message: Message returned with the 429 response
    """

    def __init__(
        self,
        store: RateLimitStore,
        scope: str,
        max_requests: int,
        window_seconds: int,
        message: str = "Too many requests, please try again later.",
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self.clock = clock

    def check(self, client_key: Optional[str]) -> None:
        """
        Count a request from client_key.

        Raises:
            RateLimitExceeded: If the client is over the limit for this window
        """
        now = self.clock()
        key = f"{self.scope}:{client_key or 'unknown'}"
        count, reset_at = self.store.hit(key, self.window_seconds, now)
        if count > self.max_requests:
            retry_after = max(1, math.ceil(reset_at - now))
            raise RateLimitExceeded(self.message, retry_after)


def sweep_once(stores: Iterable[RateLimitStore], now: Optional[float] = None) -> int:
    """Remove expired counters from every store."""
    now = time.time() if now is None else now
    return sum(store.sweep(now) for store in stores)


async def run_sweeper(stores: Iterable[RateLimitStore], interval_seconds: float) -> None:
    """Sweep expired counters every interval until cancelled."""
    stores = list(stores)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(sweep_once, stores)
            if removed:
                logger.info(f"Swept {removed} expired rate limit counters")
        except Exception as e:
            logger.error(f"Rate limit sweep failed: {e}")
