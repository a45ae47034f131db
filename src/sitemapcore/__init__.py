"""
SitemapCore - Resilient sitemap metadata crawler.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .crawler import BatchCrawlController
from .service import SitemapService

__all__ = ["__version__", "Config", "BatchCrawlController", "SitemapService"]
