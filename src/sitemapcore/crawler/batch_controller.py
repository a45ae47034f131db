"""
Adaptive batch crawler.

URLs are processed in sequential batches. Items inside a batch run
concurrently, each one wrapped as retry(rate limit(circuit breaker(extract))).
After every batch the worker count and the pause before the next batch are
adjusted from the number of upstream rate-limit responses observed.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import structlog
from structlog.contextvars import bound_contextvars

from ..config import BatchConfig
from ..errors import FetchTimeoutError, InputValidationError, as_extraction_error
from ..models import BatchJob, BatchStats, PageMetadata, UrlResult, utcnow
from ..observability import gauge, histogram, increment
from ..resilience import CircuitBreaker, RateLimiter, RetryPolicy
from .firecrawl_client import MetadataExtractor

logger = structlog.get_logger(__name__)

# Scaling thresholds
HEAVY_RATE_LIMIT_RATIO = 0.3
HEAVY_BACKOFF_FACTOR = 0.5
HEAVY_WORKER_FLOOR = 5
LIGHT_BACKOFF_FACTOR = 0.8
LIGHT_WORKER_FLOOR = 10
MAX_DELAY_EXPONENT = 4


def next_worker_count(current: int, batch_size: int, rate_limit_hits: int) -> int:
    """
    Worker count for the next batch.

    >>> next_worker_count(15, 15, 6)
    7
    >>> next_worker_count(20, 20, 1)
    16
    >>> next_worker_count(20, 20, 0)
    20
    """
    if rate_limit_hits > HEAVY_RATE_LIMIT_RATIO * batch_size and current > HEAVY_WORKER_FLOOR:
        return max(HEAVY_WORKER_FLOOR, math.floor(current * HEAVY_BACKOFF_FACTOR))
    if rate_limit_hits > 0 and current > LIGHT_WORKER_FLOOR:
        return max(LIGHT_WORKER_FLOOR, math.floor(current * LIGHT_BACKOFF_FACTOR))
    return current


def inter_batch_delay(worker_count: int, batch_rate_limit_hits: int, total_rate_limit_hits: int) -> float:
    """
    Seconds to pause before the next batch.

    Larger pools pause longer. A batch that hit the upstream rate limit
    doubles the pause per hit seen so far in the job, up to 16x.
    """
    if worker_count > 30:
        delay = 1.0
    elif worker_count > 20:
        delay = 0.75
    else:
        delay = 0.5

    if batch_rate_limit_hits > 0:
        delay *= 2 ** min(total_rate_limit_hits, MAX_DELAY_EXPONENT)
    return delay


class BatchCrawlController:
    """
    Runs one crawl job at a time against a single extraction dependency.

    The limiter, breaker and retry policy are shared objects owned by the
    caller; the controller itself keeps no state between jobs.
    """

    def __init__(
        self,
        extractor: MetadataExtractor,
        rate_limiter: RateLimiter,
        circuit_breaker: CircuitBreaker,
        retry_policy: RetryPolicy,
        config: Optional[BatchConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.extractor = extractor
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.retry_policy = retry_policy
        self.config = config or BatchConfig()
        self._sleep = sleep

    async def crawl(self, urls: Sequence[str], initial_workers: Optional[int] = None) -> BatchJob:
        """
        Extract metadata for every URL.

        Returns a BatchJob holding exactly one UrlResult per input URL.
        Per-URL failures become fallback results; only an empty input fails.

        Raises:
            InputValidationError: ``urls`` is empty or the worker count is invalid.
        """
        if not urls:
            raise InputValidationError("No URLs to crawl")

        workers = self.config.initial_workers if initial_workers is None else initial_workers
        try:
            job = BatchJob(urls=list(urls), initial_worker_count=workers)
        except ValueError as exc:
            raise InputValidationError(str(exc)) from exc

        with bound_contextvars(job_id=job.job_id):
            logger.info(
                "Starting batch crawl",
                total_urls=len(job.urls),
                workers=job.initial_worker_count,
                dependency=self.extractor.name,
            )
            increment("crawl_jobs_total")
            await self._run(job)
            job.finished_at = utcnow()
            logger.info("Batch crawl complete", **job.summary())

        return job

    async def _run(self, job: BatchJob) -> None:
        offset = 0
        index = 0
        while offset < len(job.urls):
            batch = job.urls[offset : offset + job.current_worker_count]
            offset += len(batch)
            gauge("crawl_worker_count", job.current_worker_count)

            start = time.monotonic()
            results: List[UrlResult] = await asyncio.gather(*(self._fetch_one(url) for url in batch))
            duration = time.monotonic() - start
            job.results.extend(results)

            failures = sum(1 for result in results if not result.success)
            hits = sum(1 for result in results if result.is_rate_limit)
            job.total_rate_limit_hits += hits

            worker_count = job.current_worker_count
            job.current_worker_count = next_worker_count(worker_count, len(batch), hits)
            if job.current_worker_count != worker_count:
                logger.warning(
                    "Rate limiting detected, reducing workers",
                    rate_limit_hits=hits,
                    batch_size=len(batch),
                    previous_workers=worker_count,
                    workers=job.current_worker_count,
                )

            delay = 0.0
            if offset < len(job.urls):
                delay = inter_batch_delay(job.current_worker_count, hits, job.total_rate_limit_hits)

            job.batches.append(
                BatchStats(
                    index=index,
                    size=len(batch),
                    worker_count=worker_count,
                    failures=failures,
                    rate_limit_hits=hits,
                    duration=duration,
                    delay_after=delay,
                )
            )
            histogram("crawl_batch_duration_seconds", duration)
            increment("crawl_rate_limit_hits_total", hits)
            logger.info(
                "Batch complete",
                batch=index,
                size=len(batch),
                succeeded=len(batch) - failures,
                failed=failures,
                rate_limit_hits=hits,
                processed=len(job.results),
                total=len(job.urls),
            )

            if delay > 0:
                await self._sleep(delay)
            index += 1

    async def _fetch_one(self, url: str) -> UrlResult:
        """Resolve one URL to a UrlResult. Never raises for extraction failures."""

        async def attempt() -> PageMetadata:
            return await self.rate_limiter.gate(self.circuit_breaker.call, self._extract_with_timeout, url)

        try:
            metadata = await self.retry_policy.run(attempt, f"{self.extractor.name} extract {url}")
        except Exception as exc:
            error = as_extraction_error(exc, dependency=self.extractor.name)
            logger.warning("Using fallback result", url=url, failure_kind=error.kind.value, error=str(error))
            increment("crawl_items_total", labels={"outcome": "fallback"})
            return UrlResult.fallback(url, error)

        increment("crawl_items_total", labels={"outcome": "success"})
        return UrlResult.from_metadata(url, metadata)

    async def _extract_with_timeout(self, url: str) -> PageMetadata:
        try:
            async with asyncio.timeout(self.config.item_timeout):
                return await self.extractor.extract_metadata(url)
        except TimeoutError as exc:
            raise FetchTimeoutError(
                f"Timeout error in {self.extractor.name}: {url}", dependency=self.extractor.name
            ) from exc
