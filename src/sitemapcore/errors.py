"""
Error taxonomy for the batch-fetch engine.

Per-item failures derive from ExtractionError and carry an explicit
FailureKind, so callers never inspect free-text messages to decide whether a
failure was caused by upstream throttling.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Classification of a per-item extraction failure."""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    OTHER = "other"


class SitemapCoreError(Exception):
    """Base class for all errors raised by sitemapcore."""


class InputValidationError(SitemapCoreError):
    """Malformed input URL or empty URL list. The job never starts."""


class SitemapFetchError(SitemapCoreError):
    """The source URL list could not be retrieved or parsed."""


class ExtractionError(SitemapCoreError):
    """A single URL could not be extracted."""

    kind: FailureKind = FailureKind.OTHER

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        status_code: Optional[int] = None,
        dependency: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        self.dependency = dependency


class RateLimitError(ExtractionError):
    """Upstream signalled throttling (HTTP 429 or equivalent)."""

    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: Optional[float] = None,
        dependency: Optional[str] = None,
    ) -> None:
        super().__init__(message, retryable=True, status_code=429, dependency=dependency)
        self.retry_after = retry_after


class FetchTimeoutError(ExtractionError):
    """A single extraction call exceeded its timeout."""

    kind = FailureKind.TIMEOUT


class CircuitOpenError(ExtractionError):
    """The circuit breaker rejected the call without attempting I/O."""

    kind = FailureKind.CIRCUIT_OPEN

    def __init__(self, name: str, retry_in: float = 0.0, tripped_by: Optional[FailureKind] = None) -> None:
        super().__init__(
            f"Circuit breaker for {name} is OPEN - service likely unavailable",
            retryable=False,
            dependency=name,
        )
        self.retry_in = retry_in
        # Kind of the failure that opened the breaker
        self.tripped_by = tripped_by


class RetryExhaustedError(ExtractionError):
    """All attempts failed; wraps the last underlying failure."""

    def __init__(self, label: str, attempts: int, last_error: ExtractionError) -> None:
        super().__init__(
            f"{label} failed after {attempts} attempts: {last_error}",
            retryable=False,
            status_code=last_error.status_code,
            dependency=last_error.dependency,
        )
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        self.kind = last_error.kind


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception to its FailureKind."""
    if isinstance(exc, ExtractionError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return FailureKind.TIMEOUT
    return FailureKind.OTHER


def is_rate_limited(exc: BaseException) -> bool:
    """
    True when upstream throttling caused the failure.

    A breaker rejection counts when the breaker was opened by rate-limit
    responses: the upstream is still throttling, the breaker only stopped
    us from asking again.
    """
    if classify_failure(exc) is FailureKind.RATE_LIMITED:
        return True
    return isinstance(exc, CircuitOpenError) and exc.tripped_by is FailureKind.RATE_LIMITED


def as_extraction_error(exc: Exception, dependency: Optional[str] = None) -> ExtractionError:
    """Wrap an arbitrary exception so that it carries a FailureKind."""
    if isinstance(exc, ExtractionError):
        return exc
    if isinstance(exc, TimeoutError):
        return FetchTimeoutError(f"Timeout error in {dependency or 'operation'}", dependency=dependency)
    message = str(exc) or type(exc).__name__
    return ExtractionError(f"Unknown error in {dependency or 'operation'}: {message}", dependency=dependency)
