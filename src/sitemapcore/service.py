"""
Long-lived service object behind the HTTP API and the CLI.

SitemapService constructs the resilience registry, the extraction client and
the batch controller once; every request reuses them, so rate limiting and
circuit breaking apply across requests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import structlog

from .config import Config
from .crawler import BatchCrawlController, FirecrawlClient, MetadataExtractor, SitemapFetcher
from .errors import InputValidationError
from .models import BatchJob, SitemapSession, utcnow
from .resilience import CircuitState, ResilienceRegistry, RetryPolicy
from .sessions import SessionStore
from .utils.urls import is_valid_url

logger = structlog.get_logger(__name__)


class SitemapService:
    """
    Scrapes sitemaps, either in one request or chunk by chunk.

    Collaborators may be injected; anything not given is built from the
    configuration.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        extractor: Optional[MetadataExtractor] = None,
        fetcher: Optional[SitemapFetcher] = None,
        registry: Optional[ResilienceRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sessions: Optional[SessionStore] = None,
    ):
        self.config = config or Config()
        self.registry = registry or ResilienceRegistry(self.config.resilience)
        self.extractor: MetadataExtractor = extractor or FirecrawlClient(self.config.extraction)
        self.fetcher = fetcher or SitemapFetcher(self.config.sitemap)
        self.retry_policy = retry_policy or RetryPolicy(self.config.retry_for(self.extractor.name))
        self.sessions = sessions or SessionStore(ttl=self.config.batch.session_ttl)

        dependency = self.extractor.name
        self.controller = BatchCrawlController(
            extractor=self.extractor,
            rate_limiter=self.registry.rate_limiter(dependency),
            circuit_breaker=self.registry.circuit_breaker(dependency),
            retry_policy=self.retry_policy,
            config=self.config.batch,
        )

    async def initialize(self) -> None:
        initialize = getattr(self.extractor, "initialize", None)
        if initialize is not None:
            await initialize()
        logger.info("Sitemap service initialized", dependency=self.extractor.name)

    async def close(self) -> None:
        close = getattr(self.extractor, "close", None)
        if close is not None:
            await close()
        logger.info("Sitemap service closed")

    async def __aenter__(self) -> "SitemapService":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _sitemap_urls(self, sitemap_url: str) -> List[str]:
        urls = await self.fetcher.fetch_urls(sitemap_url)
        if not urls:
            raise InputValidationError("No URLs found in sitemap")
        return urls

    async def scrape_sitemap(self, sitemap_url: str, workers: Optional[int] = None) -> Dict[str, Any]:
        """
        Fetch a sitemap and extract metadata for every page it lists.

        Raises:
            InputValidationError: invalid sitemap URL, or no URLs in the sitemap.
            SitemapFetchError: the sitemap could not be downloaded.
        """
        urls = await self._sitemap_urls(sitemap_url)
        job = await self.controller.crawl(urls, initial_workers=workers)
        return self._job_payload(sitemap_url.strip(), job)

    async def parse_sitemap(self, sitemap_url: str) -> Dict[str, Any]:
        """List a sitemap's URLs and open a session for chunked scraping."""
        urls = await self._sitemap_urls(sitemap_url)
        session = self.sessions.create(sitemap_url.strip(), len(urls))
        return {
            "sitemapUrl": session.sitemap_url,
            "urls": urls,
            "totalUrls": len(urls),
            "sessionId": session.session_id,
        }

    async def scrape_chunk(self, urls: Sequence[str], session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Scrape the first ``chunk_max_urls`` URLs of ``urls``.

        Progress is added to the session when ``session_id`` is known.
        """
        if not urls:
            raise InputValidationError("URLs array is required")
        invalid = [url for url in urls if not is_valid_url(url)]
        if invalid:
            raise InputValidationError(f"Invalid URL in chunk: {invalid[0]}")

        chunk = list(urls)[: self.config.batch.chunk_max_urls]
        if len(chunk) < len(urls):
            logger.info("Chunk truncated", requested=len(urls), processing=len(chunk))

        job = await self.controller.crawl(chunk, initial_workers=self.config.batch.chunk_workers)
        if session_id:
            self.sessions.record_progress(session_id, len(job.results))

        return {
            "urls": [result.to_dict() for result in job.results],
            "processed": len(job.results),
            "failed": job.failed,
        }

    def get_session(self, session_id: str) -> Optional[SitemapSession]:
        return self.sessions.get(session_id)

    def health(self) -> Dict[str, Any]:
        """Breaker and limiter state for the extraction dependency."""
        dependency = self.extractor.name
        breaker = self.registry.circuit_breaker(dependency)
        limiter = self.registry.rate_limiter(dependency)
        return {
            "status": "healthy" if breaker.state is CircuitState.CLOSED else "degraded",
            "dependency": dependency,
            "circuitBreaker": breaker.get_state(),
            "rateLimiter": limiter.get_stats(),
            "activeSessions": len(self.sessions),
            "timestamp": utcnow().isoformat(),
        }

    @staticmethod
    def _job_payload(sitemap_url: str, job: BatchJob) -> Dict[str, Any]:
        return {
            "sitemapUrl": sitemap_url,
            "urls": [result.to_dict() for result in job.results],
            "totalUrls": len(job.results),
            "scrapedAt": (job.finished_at or utcnow()).isoformat(),
        }
