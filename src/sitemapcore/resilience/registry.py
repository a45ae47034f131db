"""
Owns one RateLimiter and one CircuitBreaker per downstream dependency.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..config import ResilienceConfig
from .circuit_breaker import CircuitBreaker
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ResilienceRegistry:
    """
    Hands out the shared guards for a named dependency.

    The registry is held by the long-lived service object; every job that
    talks to the same dependency receives the same instances.
    """

    def __init__(
        self,
        config: Optional[ResilienceConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ResilienceConfig()
        self._clock = clock
        self._rate_limiters: Dict[str, RateLimiter] = {}
        self._circuit_breakers: Dict[str, CircuitBreaker] = {}

    def rate_limiter(self, dependency: str) -> RateLimiter:
        """Get or create the rate limiter for a dependency."""
        if dependency not in self._rate_limiters:
            self._rate_limiters[dependency] = RateLimiter(
                dependency,
                min_interval=self.config.rate_limit_for(dependency),
                clock=self._clock,
            )
            logger.debug(f"Created rate limiter for dependency: {dependency}")
        return self._rate_limiters[dependency]

    def circuit_breaker(self, dependency: str) -> CircuitBreaker:
        """Get or create the circuit breaker for a dependency."""
        if dependency not in self._circuit_breakers:
            settings = self.config.circuit_breaker_for(dependency)
            self._circuit_breakers[dependency] = CircuitBreaker(
                dependency,
                failure_threshold=settings.failure_threshold,
                reset_timeout=settings.reset_timeout,
                clock=self._clock,
            )
            logger.debug(f"Created circuit breaker for dependency: {dependency}")
        return self._circuit_breakers[dependency]

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        """Breaker and limiter snapshots for every dependency seen so far."""
        names = set(self._rate_limiters) | set(self._circuit_breakers)
        return {
            name: {
                "circuit_breaker": self._circuit_breakers[name].get_state() if name in self._circuit_breakers else None,
                "rate_limiter": self._rate_limiters[name].get_stats() if name in self._rate_limiters else None,
            }
            for name in sorted(names)
        }

    async def reset_all(self) -> None:
        """Reset all circuit breakers and rate limiters."""
        for breaker in self._circuit_breakers.values():
            await breaker.reset()
        for limiter in self._rate_limiters.values():
            limiter.reset()
        logger.info("All circuit breakers and rate limiters reset")
