"""
Stash — Cache Module

Key/value caching with TTL expiry and LRU eviction over pluggable adapters.

Canonical exports:
- factory.py: cache creation from configuration
- facade.py: Cache facade with event republishing
- interface.py: abstract adapter interface all backends implement
- backends/: memory, key/value store and file system adapters

Usage:
    from stash.cache import create_cache, CacheOptions

    cache = create_cache()
    await cache.set("key", "value", CacheOptions(ttl=60_000))
    value = await cache.get("key")
"""

from .backends import FileSystemCacheBackend, KeyValueCacheBackend, MemoryCacheBackend
from .eviction import AccessOrder
from .facade import Cache, EnvironmentCapabilities
from .factory import (
    close_all_caches,
    create_adapter,
    create_cache,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
    select_backend,
)
from .interface import StorageAdapter
from .models import MISS, CacheEntry, CacheEvent, CacheEventType, CacheOptions
from .stores import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

__all__ = [
    # Factory functions
    "create_cache",
    "create_adapter",
    "select_backend",
    "get_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    # Facade and interface
    "Cache",
    "EnvironmentCapabilities",
    "StorageAdapter",
    # Backends
    "MemoryCacheBackend",
    "KeyValueCacheBackend",
    "FileSystemCacheBackend",
    # Stores
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    # Models
    "AccessOrder",
    "CacheEntry",
    "CacheEvent",
    "CacheEventType",
    "CacheOptions",
    "MISS",
]
