"""
Dataclasses shared by the batch crawler, the service layer and the web API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .errors import ExtractionError, FailureKind, classify_failure, is_rate_limited
from .utils.urls import DEFAULT_DESCRIPTION, generate_url_id, title_from_url, truncate_description


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PageMetadata:
    """What the extraction capability returns for a single page."""

    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class UrlResult:
    """Outcome for exactly one input URL, successful or synthesized."""

    url: str
    title: str
    description: str
    success: bool
    is_rate_limit: bool = False
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    id: str = field(default_factory=generate_url_id)
    scraped_at: datetime = field(default_factory=utcnow)

    @property
    def content_preview(self) -> str:
        return self.title + "..."

    @classmethod
    def from_metadata(cls, url: str, metadata: PageMetadata) -> UrlResult:
        """Build a successful result, filling gaps from the URL."""
        title = (metadata.title or "").strip() or title_from_url(url)
        description = (metadata.description or "").strip() or DEFAULT_DESCRIPTION
        return cls(
            url=url,
            title=title,
            description=truncate_description(description),
            success=True,
        )

    @classmethod
    def fallback(cls, url: str, error: ExtractionError) -> UrlResult:
        """Build a degraded result for a URL whose extraction failed."""
        kind = classify_failure(error)
        return cls(
            url=url,
            title=title_from_url(url),
            description=DEFAULT_DESCRIPTION,
            success=False,
            is_rate_limit=is_rate_limited(error),
            error=str(error),
            failure_kind=kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by the HTTP API."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "scrapedAt": self.scraped_at.isoformat(),
            "contentPreview": self.content_preview,
            "success": self.success,
            "isRateLimit": self.is_rate_limit,
        }


@dataclass(frozen=True)
class BatchStats:
    """Observations for one batch, recorded after it settled."""

    index: int
    size: int
    worker_count: int
    failures: int
    rate_limit_hits: int
    duration: float
    delay_after: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.size == 0:
            return 0.0
        return (self.size - self.failures) / self.size


@dataclass
class BatchJob:
    """State of one crawl request; lives only for the duration of the crawl."""

    urls: List[str]
    initial_worker_count: int
    current_worker_count: int = 0
    total_rate_limit_hits: int = 0
    results: List[UrlResult] = field(default_factory=list)
    batches: List[BatchStats] = field(default_factory=list)
    job_id: str = field(default_factory=lambda: str(uuid4()))
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.initial_worker_count < 1:
            raise ValueError("initial_worker_count must be at least 1")
        if not self.current_worker_count:
            self.current_worker_count = self.initial_worker_count

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def is_complete(self) -> bool:
        return len(self.results) == len(self.urls)

    def summary(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "total_urls": len(self.urls),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batches": len(self.batches),
            "initial_workers": self.initial_worker_count,
            "final_workers": self.current_worker_count,
            "rate_limit_hits": self.total_rate_limit_hits,
        }


@dataclass
class SitemapSession:
    """Progress record for a sitemap processed chunk by chunk."""

    sitemap_url: str
    total_urls: int
    processed_urls: int = 0
    session_id: str = field(default_factory=lambda: f"session-{uuid4().hex[:16]}")
    created_at: datetime = field(default_factory=utcnow)

    @property
    def progress(self) -> float:
        if self.total_urls == 0:
            return 0.0
        return round(self.processed_urls / self.total_urls * 100, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "sitemapUrl": self.sitemap_url,
            "totalUrls": self.total_urls,
            "processedUrls": self.processed_urls,
            "createdAt": self.created_at.isoformat(),
            "progress": f"{self.progress:.1f}",
        }
