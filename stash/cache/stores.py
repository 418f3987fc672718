"""
Stash — Key/Value Stores

Synchronous, string-keyed stores backing the key/value cache adapter.

- KeyValueStore: the protocol the adapter relies on (browser-storage shaped)
- InMemoryKeyValueStore: dict-backed store with an optional character quota,
  rejecting writes that do not fit (like a full localStorage)
- RedisKeyValueStore: redis-py synchronous client; writes rejected by the
  server (e.g. maxmemory OOM) surface as ordinary write failures

Requires: redis>=5.0 for RedisKeyValueStore
"""

import logging
import re
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from ..errors import StorageQuotaExceededError

logger = logging.getLogger(__name__)

try:
    from redis import Redis
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Synchronous string key/value store.

    ``set_item`` may raise when the store is full. ``get_item`` may return raw
    bytes; readers decode them and treat undecodable data as malformed.
    """

    def get_item(self, key: str) -> str | bytes | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> Iterable[str]: ...


class InMemoryKeyValueStore:
    """
    Dict-backed key/value store.

    ``quota`` bounds the total number of characters (keys plus values) held,
    mirroring the capacity limit of browser storage. None = unbounded.
    """

    def __init__(self, quota: int | None = None) -> None:
        self.quota = quota
        self._data: dict[str, str] = {}
        self._used = 0

    def __len__(self) -> int:
        return len(self._data)

    @property
    def used(self) -> int:
        """Characters currently stored."""
        return self._used

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        previous = self._data.get(key)
        freed = len(key) + len(previous) if previous is not None else 0
        required = self._used - freed + len(key) + len(value)
        if self.quota is not None and required > self.quota:
            raise StorageQuotaExceededError(self.quota, required)
        self._data[key] = value
        self._used = required

    def remove_item(self, key: str) -> None:
        value = self._data.pop(key, None)
        if value is not None:
            self._used -= len(key) + len(value)

    def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def clear(self) -> None:
        self._data.clear()
        self._used = 0


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisKeyValueStore:
    """
    Key/value store over a synchronous Redis client.

    Values are written as strings and read back as raw bytes; the cache
    adapter handles decoding, expiry and access order itself.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        client: Any | None = None,
        max_connections: int = 10,
        socket_timeout: int = 5,
    ) -> None:
        """
        Initialize the store.

        Args:
            redis_url: Connection URL, e.g. redis://localhost:6379/0
            client: Pre-built client (takes precedence over redis_url)
            max_connections: Connection pool size
            socket_timeout: Socket timeout in seconds
        """
        if client is None:
            if not redis_url:
                raise ValueError("redis_url or client is required")
            client = Redis.from_url(
                redis_url,
                decode_responses=False,
                max_connections=max_connections,
                socket_timeout=socket_timeout,
            )
        self._client = client

    def get_item(self, key: str) -> str | bytes | None:
        # Raw bytes: undecodable values become cache misses downstream instead of raising here
        return self._client.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def remove_item(self, key: str) -> None:
        self._client.delete(key)

    def keys(self, prefix: str = "") -> list[str]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        return [key.decode("utf-8") if isinstance(key, bytes) else key for key in self._client.scan_iter(match=pattern)]

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}", extra={"error": str(e)})
