"""
Test configuration for SitemapCore.

Extraction, clocks and sleeps are replaced with in-memory fakes so that the
resilience logic can be exercised deterministically.
"""

import pytest
from sitemapcore.config import BatchConfig, RetryConfig
from sitemapcore.crawler import BatchCrawlController
from sitemapcore.resilience import CircuitBreaker, RateLimiter, RetryPolicy

from tests.helpers import FakeClock, FakeExtractor, RecordingSleep

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep deployment variables from leaking into configuration tests."""
    for name in ("SITEMAP_WORKERS", "FIRECRAWL_API_KEY"):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_sleep():
    return RecordingSleep()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def make_controller(fast_sleep):
    """Build a BatchCrawlController with no pacing and instant backoff."""

    def _make(
        extractor,
        max_retries: int = 0,
        failure_threshold: int = 1000,
        initial_workers: int = 15,
        item_timeout: float = 5.0,
    ) -> BatchCrawlController:
        return BatchCrawlController(
            extractor=extractor,
            rate_limiter=RateLimiter(extractor.name, min_interval=0.0),
            circuit_breaker=CircuitBreaker(extractor.name, failure_threshold=failure_threshold, reset_timeout=60.0),
            retry_policy=RetryPolicy(
                RetryConfig(max_retries=max_retries, base_delay=0.0, max_delay=0.0, jitter=0.0),
                sleep=fast_sleep,
            ),
            config=BatchConfig(initial_workers=initial_workers, item_timeout=item_timeout),
            sleep=fast_sleep,
        )

    return _make
