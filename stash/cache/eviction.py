"""
Stash — LRU/TTL Eviction Policy

Backend-agnostic pieces of the eviction algorithm shared by all adapters:
- AccessOrder: ordered set of keys, oldest first (head = eviction candidate)
- create_entry / should_evict: the rules applied on every set
- now_ms: default millisecond clock

AccessOrder is built on OrderedDict so touch, discard, membership and
pop-oldest are all O(1).
"""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Iterable, Iterator
from typing import Any

from .models import CacheEntry

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def create_entry(value: Any, ttl: float | None, now: float, key: str | None = None) -> CacheEntry:
    """Build a brand new entry; ttl of None or 0 means the entry never expires."""
    expires_at = now + ttl if ttl else None
    return CacheEntry(key=key, value=value, created_at=now, expires_at=expires_at)


def should_evict(live_count: int, max_entries: int | None, key_present: bool) -> bool:
    """True when inserting a new key would exceed ``max_entries``."""
    if max_entries is None or key_present:
        return False
    return live_count >= max_entries


class AccessOrder:
    """
    Recency order of cache keys, oldest first.

    Each key appears at most once. ``touch`` marks a key most-recently-used,
    appending it when it is not tracked yet.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys: OrderedDict[str, None] = OrderedDict()
        for key in keys:
            self.touch(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __repr__(self) -> str:
        return f"AccessOrder({list(self._keys)!r})"

    def touch(self, key: str) -> None:
        """Move ``key`` to the tail (most recently used)."""
        self._keys[key] = None
        self._keys.move_to_end(key)

    def discard(self, key: str) -> bool:
        """Remove ``key`` if tracked. Returns True if it was present."""
        if key in self._keys:
            del self._keys[key]
            return True
        return False

    def oldest(self) -> str | None:
        """Head of the order (next eviction candidate), or None if empty."""
        return next(iter(self._keys), None)

    def pop_oldest(self) -> str | None:
        """Remove and return the head of the order, or None if empty."""
        if not self._keys:
            return None
        key, _ = self._keys.popitem(last=False)
        return key

    def clear(self) -> None:
        self._keys.clear()

    def reconcile(self, survivors: Iterable[str]) -> "AccessOrder":
        """
        Return a new order matching exactly ``survivors``.

        Tracked keys keep their relative order; untracked survivors are
        appended in the order given. Tracked keys that did not survive are dropped.
        """
        alive = list(dict.fromkeys(survivors))
        alive_set = set(alive)
        order = AccessOrder(key for key in self._keys if key in alive_set)
        for key in alive:
            if key not in order:
                order.touch(key)
        return order

    def to_document(self) -> str:
        """Serialize to a JSON list (oldest first)."""
        return json.dumps(list(self._keys), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_document(cls, document: str | bytes | None) -> "AccessOrder":
        """Parse a JSON list document. Missing or malformed documents load as empty."""
        if document is None:
            return cls()
        try:
            keys = json.loads(document)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(
                f"Discarding malformed access order document: {e}",
                extra={"error": str(e)},
            )
            return cls()
        if not isinstance(keys, list):
            logger.warning("Discarding access order document that is not a list")
            return cls()
        return cls(key for key in keys if isinstance(key, str))
