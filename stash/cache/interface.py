"""
Stash — Storage Adapter Interface

Defines the abstract interface that all storage adapters must implement,
plus the behaviour they share: option merging, the injectable clock,
event listeners and statistics.

Read path contract (all adapters):
- absent or malformed entry -> miss
- expired entry (now >= expires_at) -> miss, entry purged, "expired" event
- otherwise -> hit, key becomes most recently used
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from .eviction import now_ms
from .models import MISS, CacheEvent, CacheEventListener, CacheEventType, CacheOptions

logger = logging.getLogger(__name__)


class StorageAdapter(ABC):
    """
    Abstract base class for storage adapters.

    All adapters must implement this interface so the memory, key/value and
    file system variants are interchangeable behind the Cache facade.
    """

    backend_name = "abstract"

    def __init__(
        self,
        options: CacheOptions | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize shared adapter state.

        Args:
            options: Default options applied to every set (per-call options win)
            clock: Callable returning the current time in epoch milliseconds
        """
        self.options = options or CacheOptions()
        self._clock = clock or now_ms
        self._listeners: dict[CacheEventType, list[CacheEventListener]] = {t: [] for t in CacheEventType}

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0
        self._expirations = 0

    # ------------ Helpers ------------

    def _now(self) -> float:
        return self._clock()

    def _resolve_options(self, options: CacheOptions | None) -> CacheOptions:
        return self.options.merge(options)

    def _emit(self, event_type: CacheEventType, key: str | None = None, value: Any = None) -> None:
        listeners = self._listeners[event_type]
        if not listeners:
            return
        event = CacheEvent(type=event_type, timestamp=self._now(), key=key, value=value)
        for listener in list(listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Cache event listener failed for '{event_type.value}': {e}",
                    extra={"event_type": event_type.value, "key": key, "error": str(e)},
                    exc_info=True,
                )

    def _expired(self, key: str) -> None:
        """Record an expiry purge."""
        self._expirations += 1
        logger.debug(f"Purged expired key from {self.backend_name} cache: {key}")
        self._emit(CacheEventType.EXPIRED, key)

    # ------------ Events ------------

    def add_event_listener(self, event_type: CacheEventType | str, listener: CacheEventListener) -> None:
        """Register ``listener`` for ``event_type`` (set, get, delete, clear, expired)."""
        listeners = self._listeners[CacheEventType(event_type)]
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event_type: CacheEventType | str, listener: CacheEventListener) -> None:
        """Unregister ``listener``; unknown listeners are ignored."""
        listeners = self._listeners[CacheEventType(event_type)]
        if listener in listeners:
            listeners.remove(listener)

    # ------------ Core Interface ------------

    @abstractmethod
    async def _fetch(self, key: str) -> Any:
        """
        Look up ``key`` applying the read path contract.

        Returns:
            The cached value, or MISS
        """

    @abstractmethod
    async def _size(self) -> int:
        """Number of entries currently tracked."""

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a value from the cache.

        Args:
            key: Cache key
            default: Returned on a miss

        Returns:
            Cached value if found and not expired, ``default`` otherwise
        """
        value = await self._fetch(key)
        if value is MISS:
            self._misses += 1
            return default
        self._hits += 1
        self._emit(CacheEventType.GET, key, value)
        return value

    async def has(self, key: str) -> bool:
        """
        Check whether ``key`` holds a live entry.

        Same expiry check and recency renewal as ``get``.
        """
        return await self._fetch(key) is not MISS

    @abstractmethod
    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        """
        Store a value in the cache.

        Args:
            key: Cache key
            value: Value to cache (must be serializable for persistent adapters)
            options: Per-call options merged over the adapter defaults

        Raises:
            StorageFullError: If the medium rejects the write after repair-and-retry
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key from the cache. Idempotent.

        Returns:
            True if an entry was removed, False if the key didn't exist
        """

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry of this adapter's namespace and reset the access order."""

    async def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics (hits, misses, size, etc.)
        """
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "backend": self.backend_name,
            "size": await self._size(),
            "max_entries": self.options.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "deletes": self._deletes,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }

    async def close(self) -> None:
        """Release resources held by the adapter."""
        logger.debug(f"{self.backend_name} cache backend closed")

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        """
        Retrieve multiple values from the cache.

        Returns:
            Dictionary mapping keys to values (missing keys are omitted)
        """
        result = {}
        for key in keys:
            value = await self._fetch(key)
            if value is MISS:
                self._misses += 1
                continue
            self._hits += 1
            self._emit(CacheEventType.GET, key, value)
            result[key] = value
        return result

    async def set_many(self, items: dict[str, Any], options: CacheOptions | None = None) -> int:
        """
        Store multiple values in the cache.

        Returns:
            Number of items stored
        """
        for key, value in items.items():
            await self.set(key, value, options)
        return len(items)

    async def delete_many(self, keys: list[str]) -> int:
        """
        Delete multiple keys from the cache.

        Returns:
            Number of keys actually removed
        """
        count = 0
        for key in keys:
            if await self.delete(key):
                count += 1
        return count
