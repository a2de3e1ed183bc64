"""
Time-boxed cache of rendered page images, keyed by source document identity.

Built once per process by the pipeline service container and handed by
reference to whatever needs rendered pages. There is no locking: two
concurrent misses on the same key both render, and the later ``put`` wins.
"""
from __future__ import annotations

import hashlib
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from app.services.providers.base import RenderedPage

logger = logging.getLogger(__name__)

DocumentSource = Union[str, bytes]


def document_key(source: DocumentSource) -> str:
    """URLs are their own identity; raw bytes are identified by content hash."""
    if isinstance(source, bytes):
        return "sha256:" + hashlib.sha256(source).hexdigest()
    return source


class PageRenderCache:
    """
    TTL cache for rendered documents.

    Attributes:
        ttl_seconds: Lifetime of an entry from the moment it was stored.

    Example:
        >>> cache = PageRenderCache(ttl_seconds=900)
        >>> pages = await cache.get_or_render(url, lambda: renderer.render(url))
        >>> cache.evict(url)
    """

    def __init__(self, ttl_seconds: float = 900, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Tuple[RenderedPage, ...]]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, source: DocumentSource) -> Optional[List[RenderedPage]]:
        key = document_key(source)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, pages = entry
        if self._clock() >= expires_at:
            # Only drop the entry we looked at; a fresher put may have replaced it.
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        return list(pages)

    def put(self, source: DocumentSource, pages: Sequence[RenderedPage]) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[document_key(source)] = (now + self.ttl_seconds, tuple(pages))

    def _sweep(self, now: float) -> None:
        # Most documents are never read again once their pipeline run ends.
        expired = [key for key, (expires_at, _pages) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Page cache dropped {len(expired)} expired document(s)")

    async def get_or_render(
        self,
        source: DocumentSource,
        render: Callable[[], Awaitable[Sequence[RenderedPage]]],
    ) -> List[RenderedPage]:
        cached = self.get(source)
        if cached is not None:
            self.hits += 1
            logger.debug(f"Page cache HIT: {document_key(source)[:80]}")
            return cached

        self.misses += 1
        logger.debug(f"Page cache MISS: {document_key(source)[:80]}")
        pages = list(await render())
        self.put(source, pages)
        return pages

    def evict(self, source: DocumentSource) -> bool:
        return self._entries.pop(document_key(source), None) is not None

    def clear(self) -> None:
        self._entries.clear()
