"""
Stash — TTL/LRU Key/Value Cache

Cross-environment cache with time-based expiry and least-recently-used
eviction over memory, key/value store and file system adapters, plus a
memoization decorator built on top.
"""

__version__ = "1.0.0"

from .cache import (
    Cache,
    CacheOptions,
    EnvironmentCapabilities,
    FileSystemCacheBackend,
    KeyValueCacheBackend,
    MemoryCacheBackend,
    create_cache,
)
from .memoize import memoize

__all__ = [
    "Cache",
    "CacheOptions",
    "EnvironmentCapabilities",
    "MemoryCacheBackend",
    "KeyValueCacheBackend",
    "FileSystemCacheBackend",
    "create_cache",
    "memoize",
]
