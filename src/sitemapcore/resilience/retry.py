"""
Bounded retries with exponential backoff and jitter.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..config import RetryConfig
from ..errors import CircuitOpenError, ExtractionError, RateLimitError, RetryExhaustedError, as_extraction_error
from ..observability import increment

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Wraps an async operation with up to ``max_retries`` retries.

    Breaker rejections and non-retryable errors are raised immediately;
    retrying against an open breaker would defeat its purpose.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int, error: Optional[ExtractionError] = None) -> float:
        """
        Delay before the retry that follows failed attempt ``attempt`` (0-based).

        ``min(base * multiplier**attempt, max_delay) + uniform(0, jitter)``,
        never more than ``max_delay``. A Retry-After hint from the upstream
        replaces the computed value.
        """
        config = self.config
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(max(0.0, error.retry_after), config.max_delay)

        backoff = min(config.base_delay * config.backoff_multiplier**attempt, config.max_delay)
        jitter = self._rng.uniform(0, config.jitter) if config.jitter > 0 else 0.0
        return min(backoff + jitter, config.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str,
        config: Optional[RetryConfig] = None,
    ) -> T:
        """
        Attempt ``operation`` at most ``max_retries + 1`` times.

        Raises:
            CircuitOpenError: the breaker rejected the first attempt.
            RetryExhaustedError: every attempt failed, or the breaker rejected a
                retry; wraps the last failure the upstream returned.
            ExtractionError: a non-retryable failure, raised as-is.
        """
        policy = self if config is None else RetryPolicy(config, sleep=self._sleep, rng=self._rng)
        max_retries = policy.config.max_retries
        last_error: Optional[ExtractionError] = None

        for attempt in range(max_retries + 1):
            try:
                result = await operation()
            except Exception as exc:
                error = as_extraction_error(exc)

                if isinstance(error, CircuitOpenError):
                    logger.debug(f"{label}: circuit open, not retrying")
                    if last_error is not None:
                        # Earlier attempts reached the upstream; report what it said.
                        raise RetryExhaustedError(label, attempt + 1, last_error) from exc
                    raise

                last_error = error

                if not error.retryable:
                    logger.warning(f"{label} failed with non-retryable error: {error}")
                    raise

                if attempt == max_retries:
                    logger.warning(f"{label} failed after {max_retries + 1} attempts: {error}")
                    raise RetryExhaustedError(label, attempt + 1, error) from exc

                delay = policy.compute_delay(attempt, error)
                increment("retry_attempts_total", labels={"failure_kind": error.kind.value})
                logger.info(
                    f"Retrying {label} in {delay:.2f}s (attempt {attempt + 2}/{max_retries + 1}) after: {error}"
                )
                await self._sleep(delay)
                continue

            if attempt > 0:
                logger.info(f"{label} succeeded on attempt {attempt + 1}")
            return result

        # The loop either returns or raises on the final attempt.
        raise AssertionError("unreachable")
