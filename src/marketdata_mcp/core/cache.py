"""Session-scoped cache of fetched content samples.

Caches raw samples, not rendered replies: a cache hit still goes through
quality assessment, the degradation decision and the ledger charge, so a
repeated query costs budget exactly like a fresh one.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from marketdata_mcp.core.governor.models import ContentSample

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]


@dataclass
class CacheStats:
    """Cache statistics."""

    entries: int
    hits: int
    misses: int
    evictions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": self.entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class ResultCache:
    """In-memory TTL cache keyed by ``(session_id, category, locator)``.

    Thread-safe. Expired entries are evicted lazily on lookup; when the cache
    is full the oldest insertion is evicted first.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 512):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Tuple[float, ContentSample]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: CacheKey) -> Optional[ContentSample]:
        """Return the cached sample for ``key``, or None if absent/expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, sample = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return None
            self._hits += 1
            return sample

    def set(self, key: CacheKey, sample: ContentSample) -> None:
        """Store ``sample`` under ``key`` for ``ttl_seconds``."""
        if self.max_entries <= 0:
            return
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = (time.monotonic() + self.ttl_seconds, sample)

    def clear(self) -> int:
        """Drop every entry. Returns the number of entries removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        if removed:
            logger.debug("Cleared %d cached samples", removed)
        return removed

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )


def cached_fetch(
    cache: ResultCache,
    fetch_fn: Callable[[str], Awaitable[ContentSample]],
    *,
    session_id: str,
    category: str,
) -> Callable[[str], Awaitable[ContentSample]]:
    """Wrap ``fetch_fn`` so successful fetches are served from ``cache``.

    Failed fetches are never cached; the next call retries the provider.
    """

    async def _fetch(locator: str) -> ContentSample:
        key = (session_id, category, locator)
        hit = cache.get(key)
        if hit is not None:
            logger.debug("Cache hit for %s", locator)
            return hit
        sample = await fetch_fn(locator)
        cache.set(key, sample)
        return sample

    return _fetch
