"""
Resilience primitives for calls to unreliable, rate-limited dependencies.

- RateLimiter: minimum spacing between outbound calls
- CircuitBreaker: sheds load after repeated failures, tests recovery
- RetryPolicy: exponential backoff with jitter
- ResilienceRegistry: one limiter and one breaker per dependency
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .rate_limiter import RateLimiter
from .registry import ResilienceRegistry
from .retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "RateLimiter",
    "ResilienceRegistry",
    "RetryPolicy",
]
