"""
Stash — Memory Cache Backend

In-memory cache implementation with LRU eviction and TTL support.
Reference implementation of the eviction policy; no persistence.
"""

import logging
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from ..eviction import create_entry, should_evict
from ..interface import StorageAdapter
from ..models import MISS, CacheEntry, CacheEventType, CacheOptions

logger = logging.getLogger(__name__)


class MemoryCacheBackend(StorageAdapter):
    """
    In-memory cache backend with LRU eviction.

    Features:
    - LRU eviction when max_entries is reached (one entry per insert)
    - Per-key TTL support with lazy expiry
    - O(1) get/set/delete operations

    The OrderedDict is both the value map and the access order: the first
    item is the least recently used.
    """

    backend_name = "memory"

    def __init__(
        self,
        options: CacheOptions | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__(options, clock)

        # Cache storage: key -> entry, oldest first
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()

    def _purge_expired(self, now: float) -> None:
        """Drop every expired entry (opportunistic sweep before a write)."""
        expired = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired:
            del self._cache[key]
            self._expired(key)

    async def _fetch(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return MISS

        if entry.is_expired(self._now()):
            del self._cache[key]
            self._expired(key)
            return MISS

        # Move to end (mark as recently used)
        self._cache.move_to_end(key)
        return entry.value

    async def _size(self) -> int:
        return len(self._cache)

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        """Store value in cache."""
        opts = self._resolve_options(options)
        now = self._now()
        self._purge_expired(now)

        # Evict if at capacity and key is new
        if should_evict(len(self._cache), opts.max_entries, key in self._cache):
            evicted_key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted key from memory cache: {evicted_key}")

        self._cache[key] = create_entry(value, opts.ttl, now)
        self._cache.move_to_end(key)
        self._sets += 1
        self._emit(CacheEventType.SET, key, value)

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        existed = self._cache.pop(key, None) is not None
        if existed:
            self._deletes += 1
        self._emit(CacheEventType.DELETE, key)
        return existed

    async def clear(self) -> None:
        """Clear all entries from cache."""
        size = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared {size} entries from memory cache")
        self._emit(CacheEventType.CLEAR)
