"""
Metadata extraction through the Firecrawl scrape API.

The client is the adapter boundary: upstream responses leave it either as
PageMetadata or as a typed ExtractionError, never as a bare HTTP error.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from ..config import ExtractionServiceConfig
from ..errors import ExtractionError, FetchTimeoutError, RateLimitError
from ..models import PageMetadata
from ..observability import histogram

logger = structlog.get_logger(__name__)


class MetadataExtractor(Protocol):
    """Given a URL, return its title and description or raise ExtractionError."""

    name: str

    async def extract_metadata(self, url: str) -> PageMetadata: ...


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # Retry-After might be an HTTP date, ignore it
        return None


class FirecrawlClient:
    """Async Firecrawl client returning lightweight page metadata."""

    def __init__(self, config: ExtractionServiceConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.name = config.name
        self._client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        """Create the underlying HTTP client if one was not injected."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.api_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.request_timeout, connect=5.0),
            )
            self._owns_client = True
            logger.info("Firecrawl client initialized", api_url=self.config.api_url)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "FirecrawlClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_payload(self, url: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": url,
            "formats": ["markdown"],
            "onlyMainContent": True,
            "timeout": int(self.config.request_timeout * 1000),
        }
        if self.config.wait_for_ms:
            payload["waitFor"] = self.config.wait_for_ms
        return payload

    async def extract_metadata(self, url: str) -> PageMetadata:
        """
        Scrape ``url`` and return its title and description.

        Raises:
            RateLimitError: HTTP 429 from Firecrawl.
            FetchTimeoutError: the HTTP call timed out.
            ExtractionError: any other failure; authentication and bad
                request errors are marked non-retryable.
        """
        if self._client is None:
            await self.initialize()
        assert self._client is not None

        start = time.monotonic()
        try:
            response = await self._client.post("/v1/scrape", json=self._build_payload(url))
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Timeout error in {self.name}: {url}", dependency=self.name) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Network error in {self.name}: {exc}", dependency=self.name) from exc
        finally:
            histogram("extraction_latency_seconds", time.monotonic() - start)

        self._raise_for_status(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise ExtractionError(f"Invalid JSON from {self.name}", dependency=self.name) from exc

        if not body.get("success", False):
            error = body.get("error") or "Failed to extract content from URL"
            raise ExtractionError(f"Extraction failed in {self.name}: {error}", dependency=self.name)

        metadata = (body.get("data") or {}).get("metadata") or {}
        return PageMetadata(
            title=metadata.get("title") or metadata.get("ogTitle"),
            description=metadata.get("description") or metadata.get("ogDescription"),
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning("Firecrawl rate limit hit", retry_after=retry_after)
            raise RateLimitError(
                f"Rate limit exceeded in {self.name}", retry_after=retry_after, dependency=self.name
            )
        if status in (401, 403):
            raise ExtractionError(
                f"Authentication failed in {self.name}", retryable=False, status_code=status, dependency=self.name
            )
        if status == 400:
            raise ExtractionError(
                f"Validation error in {self.name}: {response.text[:200]}",
                retryable=False,
                status_code=status,
                dependency=self.name,
            )
        if status == 408:
            raise FetchTimeoutError(f"Timeout error in {self.name}", status_code=status, dependency=self.name)
        if status in (502, 503, 504):
            raise ExtractionError(f"Service unavailable in {self.name}", status_code=status, dependency=self.name)
        raise ExtractionError(f"HTTP {status} from {self.name}", status_code=status, dependency=self.name)
