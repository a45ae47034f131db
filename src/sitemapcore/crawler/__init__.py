"""
SitemapCore Crawler Module - Adaptive Batch Metadata Extraction

Fetches sitemaps and extracts a title and description for every listed
page through a rate-limited, unreliable upstream service.

Key Features:
- Regex-based sitemap URL extraction with de-duplication
- Firecrawl adapter with typed failures (rate limited, timeout, other)
- Sequential batches with concurrent items inside each batch
- Worker count reduced when the upstream starts throttling
- Growing inter-batch pauses after rate-limit responses
- Fallback results so every input URL gets exactly one result
"""

from .batch_controller import BatchCrawlController, inter_batch_delay, next_worker_count
from .firecrawl_client import FirecrawlClient, MetadataExtractor
from .sitemap import SitemapFetcher, extract_urls

__all__ = [
    "BatchCrawlController",
    "FirecrawlClient",
    "MetadataExtractor",
    "SitemapFetcher",
    "extract_urls",
    "inter_batch_delay",
    "next_worker_count",
]
