"""
Tests for the adaptive batch crawler.

Scaling and pacing are asserted through the BatchStats recorded on the job
and the delays handed to the injected sleep function.
"""

import asyncio
from collections import Counter

import pytest
from sitemapcore.config import BatchConfig, ResilienceConfig, RetryConfig
from sitemapcore.crawler import BatchCrawlController, inter_batch_delay, next_worker_count
from sitemapcore.errors import ExtractionError, FailureKind, InputValidationError, RateLimitError
from sitemapcore.models import PageMetadata
from sitemapcore.resilience import CircuitState, ResilienceRegistry, RetryPolicy

from tests.helpers import FakeExtractor, RecordingSleep, always, fail_then, metric_delta


def site_urls(count, prefix="https://example.com/page"):
    return [f"{prefix}-{i}" for i in range(count)]


@pytest.mark.unit
class TestScalingRules:
    @pytest.mark.parametrize(
        "current,batch_size,hits,expected",
        [
            (15, 15, 6, 7),  # 40% rate limited, halve
            (20, 20, 1, 16),  # 5% rate limited, gentle reduction
            (20, 20, 0, 20),  # clean batch, unchanged
            (15, 15, 4, 12),  # 26% is below the heavy threshold
            (10, 10, 4, 5),
            (7, 7, 7, 5),  # floor of 5
            (5, 5, 5, 5),
            (10, 10, 1, 10),  # gentle rule needs more than 10 workers
            (11, 11, 1, 10),
            (3, 3, 3, 3),  # never raised to the floor
        ],
    )
    def test_next_worker_count(self, current, batch_size, hits, expected):
        assert next_worker_count(current, batch_size, hits) == expected

    def test_never_scales_up(self):
        workers = 7
        for _ in range(20):
            workers = next_worker_count(workers, workers, 0)
        assert workers == 7

    @pytest.mark.parametrize(
        "workers,batch_hits,total_hits,expected",
        [
            (31, 0, 0, 1.0),
            (30, 0, 0, 0.75),
            (21, 0, 0, 0.75),
            (20, 0, 0, 0.5),
            (5, 0, 3, 0.5),  # earlier hits do not matter for a clean batch
            (16, 1, 1, 1.0),
            (7, 6, 6, 8.0),
            (5, 2, 100, 8.0),  # exponent capped at 4
            (25, 1, 2, 3.0),
        ],
    )
    def test_inter_batch_delay(self, workers, batch_hits, total_hits, expected):
        assert inter_batch_delay(workers, batch_hits, total_hits) == expected


@pytest.mark.unit
class TestBatchCrawlController:
    @pytest.mark.asyncio
    async def test_every_url_gets_one_result(self, make_controller):
        urls = site_urls(37)
        extractor = FakeExtractor(
            {
                urls[3]: always(ExtractionError("Network error")),
                urls[10]: always(RateLimitError()),
                urls[20]: always(RuntimeError("unexpected")),
            }
        )
        job = await make_controller(extractor).crawl(urls)

        assert job.is_complete
        assert Counter(result.url for result in job.results) == Counter(urls)
        assert job.failed == 3
        assert job.succeeded == 34
        assert job.finished_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_urls_each_get_a_result(self, make_controller, fake_extractor):
        urls = ["https://example.com/a", "https://example.com/a", "https://example.com/b"]
        job = await make_controller(fake_extractor).crawl(urls)
        assert len(job.results) == 3

    @pytest.mark.asyncio
    async def test_successful_results_use_metadata(self, make_controller):
        url = "https://example.com/pricing"
        extractor = FakeExtractor({url: always(PageMetadata(title="Pricing", description="x" * 250))})

        job = await make_controller(extractor).crawl([url])

        result = job.results[0]
        assert result.success
        assert result.title == "Pricing"
        assert result.description == "x" * 200 + "..."
        assert result.content_preview == "Pricing..."
        assert not result.is_rate_limit

    @pytest.mark.asyncio
    async def test_scale_down_on_heavy_rate_limiting(self, make_controller, fast_sleep):
        """W=15 with 6 of 15 items rate limited gives W=7 for the next batch."""
        urls = site_urls(30)
        extractor = FakeExtractor({url: always(RateLimitError()) for url in urls[:6]})

        job = await make_controller(extractor, initial_workers=15).crawl(urls)

        assert [batch.worker_count for batch in job.batches] == [15, 7, 7, 7]
        assert [batch.size for batch in job.batches] == [15, 7, 7, 1]
        assert job.batches[0].rate_limit_hits == 6
        assert job.total_rate_limit_hits == 6
        assert job.current_worker_count == 7
        # 0.5s base for 7 workers, doubled per hit up to 16x
        assert fast_sleep.calls == [8.0, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_gentle_scale_down_on_light_rate_limiting(self, make_controller, fast_sleep):
        """W=20 with a single rate-limited item gives W=16 for the next batch."""
        urls = site_urls(40)
        extractor = FakeExtractor({urls[0]: always(RateLimitError())})

        job = await make_controller(extractor, initial_workers=20).crawl(urls)

        assert [batch.worker_count for batch in job.batches] == [20, 16, 16]
        assert [batch.size for batch in job.batches] == [20, 16, 4]
        assert fast_sleep.calls == [1.0, 0.5]

    @pytest.mark.asyncio
    async def test_worker_floor_under_sustained_rate_limiting(self, make_controller):
        urls = site_urls(80)
        extractor = FakeExtractor({url: always(RateLimitError()) for url in urls})

        job = await make_controller(extractor, initial_workers=15).crawl(urls)

        assert all(batch.worker_count >= 5 for batch in job.batches)
        assert job.current_worker_count == 5
        assert job.total_rate_limit_hits == 80
        assert all(result.is_rate_limit for result in job.results)
        assert job.is_complete

    @pytest.mark.asyncio
    async def test_clean_crawl_keeps_worker_count(self, make_controller, fast_sleep, fake_extractor):
        job = await make_controller(fake_extractor, initial_workers=10).crawl(site_urls(25))
        assert [batch.worker_count for batch in job.batches] == [10, 10, 10]
        assert fast_sleep.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_network_error_yields_fallback(self, make_controller):
        url = "https://x.com/foo-bar"
        extractor = FakeExtractor({url: always(ExtractionError("Network error: ECONNRESET"))})

        job = await make_controller(extractor).crawl([url])

        result = job.results[0]
        assert not result.success
        assert result.title == "Foo Bar"
        assert result.description == "No description available"
        assert result.failure_kind is FailureKind.OTHER
        assert not result.is_rate_limit
        assert "ECONNRESET" in result.error

    @pytest.mark.asyncio
    async def test_empty_url_list_rejected_before_extraction(self, make_controller, fake_extractor):
        with pytest.raises(InputValidationError):
            await make_controller(fake_extractor).crawl([])
        assert fake_extractor.total_calls == 0

    @pytest.mark.asyncio
    async def test_invalid_worker_count_rejected(self, make_controller, fake_extractor):
        with pytest.raises(InputValidationError):
            await make_controller(fake_extractor).crawl(["https://example.com"], initial_workers=0)

    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, make_controller):
        url = "https://example.com/flaky"
        extractor = FakeExtractor(
            {url: fail_then(ExtractionError("Service unavailable"), 2, PageMetadata(title="Flaky"))}
        )

        job = await make_controller(extractor, max_retries=3).crawl([url])

        assert job.results[0].success
        assert job.results[0].title == "Flaky"
        assert extractor.calls[url] == 3

    @pytest.mark.asyncio
    async def test_open_breaker_short_circuits_remaining_urls(self, make_controller):
        urls = site_urls(6)
        extractor = FakeExtractor({url: always(ExtractionError("down")) for url in urls})

        job = await make_controller(extractor, failure_threshold=3, initial_workers=1).crawl(urls)

        assert extractor.total_calls == 3
        kinds = [result.failure_kind for result in job.results]
        assert kinds[:3] == [FailureKind.OTHER] * 3
        assert kinds[3:] == [FailureKind.CIRCUIT_OPEN] * 3
        assert job.is_complete

    @pytest.mark.asyncio
    async def test_slow_extraction_times_out_per_item(self, make_controller):
        class SlowExtractor(FakeExtractor):
            async def extract_metadata(self, url):
                if url.endswith("slow"):
                    await asyncio.sleep(5)
                return await super().extract_metadata(url)

        extractor = SlowExtractor()
        urls = ["https://example.com/slow", "https://example.com/fast"]

        job = await make_controller(extractor, item_timeout=0.05).crawl(urls)

        by_url = {result.url: result for result in job.results}
        assert by_url["https://example.com/slow"].failure_kind is FailureKind.TIMEOUT
        assert not by_url["https://example.com/slow"].success
        assert by_url["https://example.com/fast"].success

    @pytest.mark.asyncio
    async def test_job_metrics_recorded(self, make_controller, fake_extractor):
        with metric_delta("sitemapcore_crawl_jobs_total", 1):
            with metric_delta("sitemapcore_crawl_items_total", 4, labels={"outcome": "success"}):
                await make_controller(fake_extractor).crawl(site_urls(4))

    @pytest.mark.asyncio
    async def test_summary(self, make_controller):
        urls = site_urls(5)
        extractor = FakeExtractor({urls[0]: always(RateLimitError())})
        job = await make_controller(extractor, initial_workers=5).crawl(urls)

        summary = job.summary()
        assert summary["total_urls"] == 5
        assert summary["succeeded"] == 4
        assert summary["failed"] == 1
        assert summary["rate_limit_hits"] == 1
        assert summary["initial_workers"] == 5
        assert summary["batches"] == 1


@pytest.mark.unit
class TestDefaultFirecrawlResilience:
    """Crawls against the shipped firecrawl breaker and retry defaults."""

    @pytest.mark.asyncio
    async def test_breaker_rejections_after_429_trip_still_scale_down(self, fast_sleep):
        registry = ResilienceRegistry(ResilienceConfig(rate_limits={"firecrawl": 0.0}))
        controller = BatchCrawlController(
            extractor=FakeExtractor(name="firecrawl"),
            rate_limiter=registry.rate_limiter("firecrawl"),
            circuit_breaker=registry.circuit_breaker("firecrawl"),
            retry_policy=RetryPolicy(
                RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0, jitter=0.0),
                sleep=RecordingSleep(),
            ),
            config=BatchConfig(initial_workers=15),
            sleep=fast_sleep,
        )
        urls = site_urls(22)
        controller.extractor.behaviour = {url: always(RateLimitError()) for url in urls}

        job = await controller.crawl(urls)

        # Five 429s open the breaker (threshold 5); the rest are rejected locally.
        assert controller.extractor.total_calls == 5
        assert registry.circuit_breaker("firecrawl").state is CircuitState.OPEN
        assert job.batches[0].rate_limit_hits == 15
        assert all(result.is_rate_limit for result in job.results)
        assert [batch.worker_count for batch in job.batches] == [15, 7]
        # 0.5s base for 7 workers at the 16x cap
        assert job.batches[0].delay_after == 8.0
        assert fast_sleep.calls == [8.0]

    @pytest.mark.asyncio
    async def test_breaker_tripped_by_errors_is_not_a_rate_limit(self, fast_sleep):
        registry = ResilienceRegistry(ResilienceConfig(rate_limits={"firecrawl": 0.0}))
        urls = site_urls(15)
        extractor = FakeExtractor({url: always(ExtractionError("down")) for url in urls}, name="firecrawl")
        controller = BatchCrawlController(
            extractor=extractor,
            rate_limiter=registry.rate_limiter("firecrawl"),
            circuit_breaker=registry.circuit_breaker("firecrawl"),
            retry_policy=RetryPolicy(
                RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0, jitter=0.0),
                sleep=RecordingSleep(),
            ),
            sleep=fast_sleep,
        )

        job = await controller.crawl(urls, initial_workers=15)

        assert job.total_rate_limit_hits == 0
        assert job.current_worker_count == 15
        assert Counter(result.failure_kind for result in job.results)[FailureKind.CIRCUIT_OPEN] == 13
