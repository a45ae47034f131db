"""
Minimum-interval rate limiter for outbound calls to one dependency.

Pacing is advisory: callers are delayed, never rejected.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..observability import histogram

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Enforces ``min_interval`` seconds between the starts of successive calls.

    Acquisition is serialized, so concurrent callers queue up and each one
    is released at least ``min_interval`` after the previous one.
    """

    def __init__(
        self,
        name: str,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval cannot be negative")

        self.name = name
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep

        self._last_request_at: Optional[float] = None
        self._lock = asyncio.Lock()

        # Statistics
        self._total_requests = 0
        self._delayed_requests = 0
        self._total_delay = 0.0

        logger.debug(f"Rate limiter {name} initialized with {min_interval:.3f}s minimum interval")

    @property
    def last_request_at(self) -> Optional[float]:
        return self._last_request_at

    async def acquire(self) -> float:
        """
        Wait until the next call may start.

        Returns:
            Delay applied in seconds
        """
        async with self._lock:
            delay = 0.0
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.debug(f"Rate limiting {self.name}: waiting {delay:.3f}s")
                    await self._sleep(delay)
                    self._delayed_requests += 1
                    self._total_delay += delay

            self._last_request_at = self._clock()
            self._total_requests += 1

        histogram("rate_limiter_wait_seconds", delay, labels={"dependency": self.name})
        return delay

    async def gate(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Pace, then run ``func``."""
        await self.acquire()
        return await func(*args, **kwargs)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics for monitoring."""
        since_last = None
        if self._last_request_at is not None:
            since_last = self._clock() - self._last_request_at

        return {
            "name": self.name,
            "min_interval": self.min_interval,
            "total_requests": self._total_requests,
            "delayed_requests": self._delayed_requests,
            "total_delay": self._total_delay,
            "time_since_last_request": since_last,
        }

    def reset(self) -> None:
        """Forget the last request time."""
        self._last_request_at = None
        logger.info(f"Reset rate limiting for {self.name}")
