"""
Circuit Breaker Pattern Implementation for Downstream Dependencies

Stops calling a dependency after repeated consecutive failures and checks
for recovery with a single trial call once the cooldown has elapsed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..errors import CircuitOpenError, FailureKind, classify_failure
from ..observability import gauge

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, rejecting calls
    HALF_OPEN = "half_open"  # One trial call in flight

    @property
    def gauge_value(self) -> int:
        return {"closed": 0, "half_open": 1, "open": 2}[self.value]


class CircuitBreaker:
    """
    Tri-state guard around calls to an unreliable dependency.

    One instance is shared by every caller of the dependency, so the state
    is only mutated while holding an asyncio lock. The lock is never held
    while the wrapped operation runs.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        # State tracking
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_at: Optional[float] = None
        self._tripped_by: Optional[FailureKind] = None
        self._trial_in_flight = False
        self._rejected_calls = 0

        self._lock = asyncio.Lock()
        self._publish_state()

        logger.debug(f"Circuit breaker {name} initialized with threshold {failure_threshold}")

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_at(self) -> Optional[float]:
        return self._last_failure_at

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` through the breaker.

        Raises:
            CircuitOpenError: the breaker is open, or a half-open trial is
                already in flight. ``func`` is not invoked.
        """
        is_trial = await self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            await self._record_failure(is_trial, classify_failure(exc))
            raise
        except BaseException:
            # Cancelled: give the trial slot back without judging the dependency.
            if is_trial:
                async with self._lock:
                    self._trial_in_flight = False
            raise

        await self._record_success(is_trial)
        return result

    async def _before_call(self) -> bool:
        """Admit or reject a call. Returns True when the call is the half-open trial."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_at or 0.0)
                if elapsed >= self.reset_timeout:
                    logger.info(f"Circuit breaker {self.name} transitioning to HALF_OPEN for recovery test")
                    self._set_state(CircuitState.HALF_OPEN)
                    self._trial_in_flight = True
                    return True

                self._rejected_calls += 1
                raise CircuitOpenError(
                    self.name, retry_in=self.reset_timeout - elapsed, tripped_by=self._tripped_by
                )

            # HALF_OPEN
            if self._trial_in_flight:
                self._rejected_calls += 1
                raise CircuitOpenError(self.name, tripped_by=self._tripped_by)
            self._trial_in_flight = True
            return True

    async def _record_success(self, is_trial: bool) -> None:
        async with self._lock:
            if is_trial:
                self._trial_in_flight = False
                if self._state == CircuitState.HALF_OPEN:
                    logger.info(f"Circuit breaker {self.name} closing - service recovered")
                    self._set_state(CircuitState.CLOSED)
            self._consecutive_failures = 0

    async def _record_failure(self, is_trial: bool, kind: FailureKind) -> None:
        async with self._lock:
            now = self._clock()

            if is_trial:
                self._trial_in_flight = False
                if self._state == CircuitState.HALF_OPEN:
                    logger.warning(f"Circuit breaker {self.name} trial call failed, reopening")
                    self._last_failure_at = now
                    self._tripped_by = kind
                    self._set_state(CircuitState.OPEN)
                return

            self._consecutive_failures += 1
            if self._state == CircuitState.CLOSED:
                self._last_failure_at = now
                logger.debug(f"Circuit breaker {self.name} failure count: {self._consecutive_failures}")
                if self._consecutive_failures >= self.failure_threshold:
                    logger.warning(
                        f"Circuit breaker {self.name} opening due to {self._consecutive_failures} consecutive failures"
                    )
                    self._tripped_by = kind
                    self._set_state(CircuitState.OPEN)

    def _set_state(self, state: CircuitState) -> None:
        self._state = state
        if state == CircuitState.CLOSED:
            self._consecutive_failures = 0
        self._publish_state()

    def _publish_state(self) -> None:
        gauge("circuit_breaker_state", self._state.gauge_value, labels={"dependency": self.name})

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state for monitoring."""
        retry_in = 0.0
        if self._state == CircuitState.OPEN and self._last_failure_at is not None:
            retry_in = max(0.0, self.reset_timeout - (self._clock() - self._last_failure_at))

        return {
            "name": self.name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
            "last_failure_at": self._last_failure_at,
            "retry_in": retry_in,
            "rejected_calls": self._rejected_calls,
            "tripped_by": self._tripped_by.value if self._tripped_by else None,
        }

    async def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        async with self._lock:
            logger.info(f"Circuit breaker {self.name} manually reset")
            self._last_failure_at = None
            self._tripped_by = None
            self._trial_in_flight = False
            self._set_state(CircuitState.CLOSED)

    async def force_open(self) -> None:
        """Manually force the circuit breaker to open state."""
        async with self._lock:
            logger.warning(f"Circuit breaker {self.name} manually forced open")
            self._last_failure_at = self._clock()
            self._tripped_by = None
            self._trial_in_flight = False
            self._set_state(CircuitState.OPEN)
