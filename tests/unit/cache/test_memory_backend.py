"""
Stash — Memory Cache Backend Tests

Test suite for the in-memory cache backend.
Tests LRU eviction, TTL support, statistics and all interface methods.
"""

import asyncio
from typing import Any

import pytest

from stash.cache.backends.memory import MemoryCacheBackend
from stash.cache.models import CacheOptions


class TestMemoryCacheBackend:
    """Test suite for MemoryCacheBackend."""

    @pytest.fixture
    async def cache(self, clock: Any) -> MemoryCacheBackend:
        """Create a fresh memory cache instance for each test."""
        return MemoryCacheBackend(options=CacheOptions(max_entries=100), clock=clock)

    async def test_initialization(self) -> None:
        """Test cache initialization with custom options."""
        cache = MemoryCacheBackend(options=CacheOptions(ttl=1800, max_entries=100))
        assert cache.options.max_entries == 100
        assert cache.options.ttl == 1800

        stats = await cache.get_stats()
        assert stats["backend"] == "memory"
        assert stats["hits"] == 0
        assert stats["misses"] == 0
        assert stats["size"] == 0

    async def test_set_and_get(self, cache: MemoryCacheBackend) -> None:
        """Test basic set and get operations."""
        await cache.set("key1", "value1")
        assert await cache.get("key1") == "value1"

        stats = await cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 0
        assert stats["sets"] == 1

    async def test_get_nonexistent_key(self, cache: MemoryCacheBackend) -> None:
        """Test getting a key that doesn't exist."""
        assert await cache.get("nonexistent") is None

        stats = await cache.get_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 0

    async def test_values_are_stored_by_reference(self, cache: MemoryCacheBackend) -> None:
        """Memory backend does not serialize: non-JSON values survive as-is."""
        marker = object()
        await cache.set("obj", marker)
        await cache.set("tuple", (1, 2))

        assert await cache.get("obj") is marker
        assert await cache.get("tuple") == (1, 2)

    async def test_ttl_expiration_removes_entry(self, cache: MemoryCacheBackend, clock: Any) -> None:
        """Expired entries are purged on access, not just hidden."""
        await cache.set("key1", "value1", CacheOptions(ttl=1000))
        clock.advance(1000)

        assert await cache.get("key1") is None
        stats = await cache.get_stats()
        assert stats["size"] == 0
        assert stats["expirations"] == 1

    async def test_ttl_with_real_clock(self) -> None:
        """Entries expire against the wall clock by default."""
        cache = MemoryCacheBackend()
        await cache.set("k", "v", CacheOptions(ttl=100))
        assert await cache.get("k") == "v"

        await asyncio.sleep(0.15)
        assert await cache.get("k") is None

    async def test_set_sweeps_expired_entries(self, cache: MemoryCacheBackend, clock: Any) -> None:
        """A write drops every expired entry, not only the written key."""
        for i in range(3):
            await cache.set(f"short{i}", i, CacheOptions(ttl=10))
        clock.advance(10)

        await cache.set("fresh", "value")
        stats = await cache.get_stats()
        assert stats["size"] == 1
        assert stats["expirations"] == 3

    async def test_lru_eviction(self) -> None:
        """Test LRU eviction when max_entries is reached."""
        cache = MemoryCacheBackend(options=CacheOptions(max_entries=10))

        # Fill the cache to max_entries (10)
        for i in range(10):
            await cache.set(f"key{i}", f"value{i}")

        stats = await cache.get_stats()
        assert stats["size"] == 10
        assert stats["evictions"] == 0

        # Access key0 to make it recently used
        await cache.get("key0")

        # Add one more item (should evict key1, the least recently used)
        await cache.set("key10", "value10")

        stats = await cache.get_stats()
        assert stats["size"] == 10
        assert stats["evictions"] == 1

        assert await cache.has("key1") is False
        assert await cache.has("key0") is True
        assert await cache.has("key10") is True

    async def test_eviction_is_one_entry_per_set(self) -> None:
        """Lowering max_entries per call evicts only the single oldest entry."""
        cache = MemoryCacheBackend()
        for i in range(5):
            await cache.set(f"key{i}", i)

        await cache.set("key5", 5, CacheOptions(max_entries=2))

        stats = await cache.get_stats()
        assert stats["evictions"] == 1
        assert stats["size"] == 5
        assert await cache.has("key0") is False
        assert await cache.has("key1") is True

    async def test_get_many(self, cache: MemoryCacheBackend) -> None:
        """Test batch get operation."""
        for i in range(5):
            await cache.set(f"key{i}", f"value{i}")

        result = await cache.get_many(["key0", "key2", "key4", "nonexistent"])

        assert result == {
            "key0": "value0",
            "key2": "value2",
            "key4": "value4",
        }

    async def test_set_many_with_ttl(self, cache: MemoryCacheBackend, clock: Any) -> None:
        """Test batch set with TTL."""
        items = {
            "key1": "value1",
            "key2": "value2",
        }

        await cache.set_many(items, CacheOptions(ttl=1000))
        assert await cache.get("key1") == "value1"
        assert await cache.get("key2") == "value2"

        clock.advance(2000)
        assert await cache.get("key1") is None
        assert await cache.get("key2") is None

    async def test_get_stats(self, cache: MemoryCacheBackend) -> None:
        """Test statistics tracking."""
        stats = await cache.get_stats()
        assert stats["hits"] == 0
        assert stats["misses"] == 0
        assert stats["sets"] == 0
        assert stats["deletes"] == 0
        assert stats["evictions"] == 0
        assert stats["size"] == 0
        assert stats["hit_rate"] == 0.0

        await cache.set("key1", "value1")
        await cache.get("key1")  # hit
        await cache.get("key2")  # miss
        await cache.delete("key1")

        stats = await cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0
        assert stats["sets"] == 1
        assert stats["deletes"] == 1
        assert stats["size"] == 0

    async def test_instances_are_isolated(self) -> None:
        """Each adapter instance owns its own namespace."""
        cache1 = MemoryCacheBackend()
        cache2 = MemoryCacheBackend()

        await cache1.set("key1", "value1")
        await cache2.set("key1", "value2")

        assert await cache1.get("key1") == "value1"
        assert await cache2.get("key1") == "value2"

    async def test_close(self, cache: MemoryCacheBackend) -> None:
        """Cache still works after close (memory backend holds no resources)."""
        await cache.set("key1", "value1")
        await cache.close()
        assert await cache.get("key1") == "value1"

    async def test_listener_errors_do_not_break_operations(self, cache: MemoryCacheBackend) -> None:
        """A failing listener is logged; the operation and other listeners proceed."""
        received: list[str | None] = []

        def broken(event: Any) -> None:
            raise RuntimeError("listener failure")

        cache.add_event_listener("set", broken)
        cache.add_event_listener("set", lambda event: received.append(event.key))

        await cache.set("key1", "value1")
        assert received == ["key1"]
        assert await cache.get("key1") == "value1"

    async def test_remove_event_listener(self, cache: MemoryCacheBackend) -> None:
        received: list[Any] = []
        listener = received.append

        cache.add_event_listener("set", listener)
        await cache.set("a", 1)
        cache.remove_event_listener("set", listener)
        await cache.set("b", 2)

        assert [event.key for event in received] == ["a"]

    async def test_unknown_event_type_rejected(self, cache: MemoryCacheBackend) -> None:
        with pytest.raises(ValueError):
            cache.add_event_listener("evicted", print)

    async def test_empty_cache_operations(self, cache: MemoryCacheBackend) -> None:
        """Test operations on empty cache."""
        await cache.clear()
        assert await cache.get("key1") is None
        assert await cache.delete("key1") is False
        assert await cache.has("key1") is False
        assert await cache.get_many(["key1", "key2"]) == {}
        assert await cache.delete_many(["key1", "key2"]) == 0
