"""
Defines the Prometheus metrics for the batch-fetch engine.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# The test suite builds many app instances in one process; reusing an already
# registered collector avoids "Duplicated timeseries" errors on re-import.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing

        try:
            return metric_cls(name, documentation, *args, **kwargs)
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)
Gauge = _duplicate_safe_factory(_OrigGauge)
Histogram = _duplicate_safe_factory(_OrigHistogram)


def _create_metrics() -> Dict[str, Any]:
    """Create (or look up) every collector used by sitemapcore."""
    return {
        "crawl_items_total": Counter(
            "sitemapcore_crawl_items_total",
            "URLs processed by the batch crawler, by outcome",
            ["outcome"],
        ),
        "crawl_rate_limit_hits_total": Counter(
            "sitemapcore_crawl_rate_limit_hits_total",
            "URLs whose extraction failed because the upstream throttled us",
        ),
        "crawl_worker_count": Gauge(
            "sitemapcore_crawl_worker_count",
            "Worker count chosen for the most recent batch",
        ),
        "crawl_batch_duration_seconds": Histogram(
            "sitemapcore_crawl_batch_duration_seconds",
            "Time taken for one batch to settle",
            buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
        ),
        "crawl_jobs_total": Counter(
            "sitemapcore_crawl_jobs_total",
            "Batch crawl jobs completed",
        ),
        "retry_attempts_total": Counter(
            "sitemapcore_retry_attempts_total",
            "Retries scheduled after a failed attempt",
            ["failure_kind"],
        ),
        "circuit_breaker_state": Gauge(
            "sitemapcore_circuit_breaker_state",
            "Circuit breaker state per dependency (0=closed, 1=half_open, 2=open)",
            ["dependency"],
        ),
        "rate_limiter_wait_seconds": Histogram(
            "sitemapcore_rate_limiter_wait_seconds",
            "Pacing delay applied before an outbound call",
            ["dependency"],
            buckets=[0.0, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0],
        ),
        "extraction_latency_seconds": Histogram(
            "sitemapcore_extraction_latency_seconds",
            "Latency of single calls to the extraction service",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
