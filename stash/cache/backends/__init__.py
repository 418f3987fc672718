"""
Stash — Cache Backends

Exports the storage adapter implementations:
- memory: volatile in-process map
- keyvalue: synchronous key/value store (in-memory quota store or Redis)
- filesystem: one file per entry plus an access order index
"""

from .filesystem import FileSystemCacheBackend
from .keyvalue import KeyValueCacheBackend
from .memory import MemoryCacheBackend

__all__ = [
    "MemoryCacheBackend",
    "KeyValueCacheBackend",
    "FileSystemCacheBackend",
]
