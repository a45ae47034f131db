"""
In-memory store for sitemaps processed chunk by chunk.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple

import structlog

from .models import SitemapSession

logger = structlog.get_logger(__name__)


class SessionStore:
    """
    Keeps SitemapSession records for ``ttl`` seconds after creation.

    Expired sessions are purged whenever the store is accessed.
    """

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, Tuple[float, SitemapSession]] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._sessions)

    def create(self, sitemap_url: str, total_urls: int) -> SitemapSession:
        self.purge_expired()
        session = SitemapSession(sitemap_url=sitemap_url, total_urls=total_urls)
        self._sessions[session.session_id] = (self._clock(), session)
        logger.info("Session created", session_id=session.session_id, total_urls=total_urls)
        return session

    def get(self, session_id: str) -> Optional[SitemapSession]:
        self.purge_expired()
        entry = self._sessions.get(session_id)
        return entry[1] if entry else None

    def record_progress(self, session_id: str, processed: int) -> Optional[SitemapSession]:
        """Add ``processed`` URLs to a session; unknown ids are ignored."""
        session = self.get(session_id)
        if session is None:
            logger.warning("Progress reported for unknown session", session_id=session_id)
            return None
        session.processed_urls = min(session.total_urls, session.processed_urls + processed)
        return session

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, (created, _) in self._sessions.items() if now - created >= self.ttl]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged expired sessions", count=len(expired))
        return len(expired)
