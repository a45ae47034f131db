"""
Sitemap retrieval and URL extraction.

Sitemaps are read with a plain regular expression over ``<loc>`` tags, not
an XML parser; malformed documents still yield whatever URLs they contain.
"""

from __future__ import annotations

import re
from typing import List, Optional

import httpx
import structlog

from ..config import SitemapConfig
from ..errors import InputValidationError, SitemapFetchError
from ..utils.urls import is_valid_url

logger = structlog.get_logger(__name__)

LOC_PATTERN = re.compile(r"<loc>(.*?)</loc>", re.IGNORECASE | re.DOTALL)
URL_BLOCK_PATTERN = re.compile(r"<url>([\s\S]*?)</url>", re.IGNORECASE)


def extract_urls(xml_content: str) -> List[str]:
    """
    Pull page URLs out of sitemap XML.

    Only http(s) URLs are kept. Duplicates are removed, first occurrence wins.
    """
    candidates = [match.strip() for match in LOC_PATTERN.findall(xml_content)]

    if not candidates:
        for block in URL_BLOCK_PATTERN.findall(xml_content):
            loc = LOC_PATTERN.search(block)
            if loc:
                candidates.append(loc.group(1).strip())

    # CDATA-wrapped and entity-escaped locations are common in CMS sitemaps
    cleaned = [_clean_loc(candidate) for candidate in candidates]
    return list(dict.fromkeys(url for url in cleaned if url and is_valid_url(url)))


def _clean_loc(value: str) -> str:
    if value.startswith("<![CDATA[") and value.endswith("]]>"):
        value = value[len("<![CDATA[") : -len("]]>")]
    return value.replace("&amp;", "&").strip()


class SitemapFetcher:
    """Downloads a sitemap and returns the page URLs it lists."""

    def __init__(self, config: SitemapConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    async def fetch_urls(self, sitemap_url: str) -> List[str]:
        """
        Raises:
            InputValidationError: ``sitemap_url`` is not an http(s) URL.
            SitemapFetchError: the sitemap could not be downloaded.
        """
        if not sitemap_url or not sitemap_url.strip():
            raise InputValidationError("Sitemap URL is required")
        sitemap_url = sitemap_url.strip()
        if not is_valid_url(sitemap_url):
            raise InputValidationError("Invalid sitemap URL format")

        logger.info("Parsing sitemap XML", sitemap_url=sitemap_url)
        xml_content = await self._download(sitemap_url)
        urls = extract_urls(xml_content)
        logger.info("Extracted unique URLs from sitemap", sitemap_url=sitemap_url, count=len(urls))
        return urls

    async def _download(self, sitemap_url: str) -> str:
        headers = {"User-Agent": self.config.user_agent}
        try:
            if self._client is not None:
                response = await self._client.get(sitemap_url, headers=headers, timeout=self.config.fetch_timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(sitemap_url, headers=headers, timeout=self.config.fetch_timeout)
        except httpx.HTTPError as exc:
            logger.error("Sitemap download failed", sitemap_url=sitemap_url, error=str(exc))
            raise SitemapFetchError(f"Failed to parse sitemap: {exc}") from exc

        if response.is_error:
            raise SitemapFetchError(
                f"Failed to parse sitemap: Failed to fetch sitemap: {response.status_code} {response.reason_phrase}"
            )
        return response.text
