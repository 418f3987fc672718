"""
Stash — Key/Value Cache Backend

Cache adapter over a synchronous, capacity-bounded string store
(browser-storage shaped, see ``stores.KeyValueStore``) with:
- Serialized entry envelopes under ``<prefix><key>``
- The access order as one JSON document under ``<prefix>__access_order``
- Repair-and-retry when the store rejects a write

The access order is a single read-modify-write document. Concurrent writers
sharing the same store and prefix race on it (last write wins); the next
repair pass reconciles it against the stored entries.

Example:
    store = InMemoryKeyValueStore(quota=5_000_000)
    cache = KeyValueCacheBackend(store, prefix="app:", options=CacheOptions(max_entries=100))
    await cache.set("greeting", {"msg": "hello"}, CacheOptions(ttl=60_000))
    val = await cache.get("greeting")
"""

import logging
from collections.abc import Callable
from typing import Any

from ...errors import StorageFullError
from ..eviction import AccessOrder, create_entry, should_evict
from ..interface import StorageAdapter
from ..models import MISS, CacheEntry, CacheEventType, CacheOptions
from ..serialization import Deserializer, Serializer, decode_entry, encode_entry, json_dumps, json_loads
from ..stores import KeyValueStore

logger = logging.getLogger(__name__)

ACCESS_ORDER_KEY = "__access_order"


class KeyValueCacheBackend(StorageAdapter):
    """
    Key/value store cache backend with LRU eviction and TTL.

    Notes:
    - Only keys carrying the configured prefix belong to this adapter;
      ``clear`` never touches anything else in the store.
    - Malformed stored entries are treated as expired: removed and reported as a miss.
    - A write that fails twice (before and after repair) raises StorageFullError.
    """

    backend_name = "keyvalue"

    def __init__(
        self,
        store: KeyValueStore,
        prefix: str = "cache:",
        options: CacheOptions | None = None,
        clock: Callable[[], float] | None = None,
        serializer: Serializer = json_dumps,
        deserializer: Deserializer = json_loads,
    ) -> None:
        """
        Initialize key/value cache backend.

        Args:
            store: Backing key/value store
            prefix: Namespace prefix for every key written by this adapter
            options: Default cache options
            clock: Millisecond clock (for tests)
            serializer: Entry envelope -> string
            deserializer: String -> entry envelope
        """
        super().__init__(options, clock)
        self.store = store
        self.prefix = prefix
        self.access_order_key = f"{prefix}{ACCESS_ORDER_KEY}"
        self._serializer = serializer
        self._deserializer = deserializer

    # ------------ Helpers ------------

    def _full_key(self, key: str) -> str:
        """Create prefixed store key."""
        return f"{self.prefix}{key}"

    def _load(self, key: str) -> CacheEntry | None:
        return decode_entry(self.store.get_item(self._full_key(key)), self._deserializer)

    def _read_order(self) -> AccessOrder:
        return AccessOrder.from_document(self.store.get_item(self.access_order_key))

    def _save_order_quietly(self, order: AccessOrder) -> None:
        """Persist the access order on read/delete paths, where failures must not raise."""
        try:
            self.store.set_item(self.access_order_key, order.to_document())
        except Exception as e:
            logger.warning(
                f"Failed to persist access order (will be repaired on next write): {e}",
                extra={"prefix": self.prefix, "error": str(e)},
            )

    def _forget(self, key: str) -> None:
        """Remove an entry and its access order membership."""
        self.store.remove_item(self._full_key(key))
        order = self._read_order()
        if order.discard(key):
            self._save_order_quietly(order)

    def _evict_oldest(self, order: AccessOrder) -> None:
        evicted_key = order.pop_oldest()
        if evicted_key is None:
            return
        self.store.remove_item(self._full_key(evicted_key))
        self._evictions += 1
        logger.debug(f"Evicted key from key/value cache: {evicted_key}")

    def _purge_expired(self, order: AccessOrder, now: float) -> None:
        """Drop tracked keys whose entries are expired, malformed or missing."""
        for key in list(order):
            entry = self._load(key)
            if entry is not None and not entry.is_expired(now):
                continue
            self.store.remove_item(self._full_key(key))
            order.discard(key)
            if entry is not None:
                self._expired(key)

    def _write_entry(self, key: str, payload: str, max_entries: int | None) -> AccessOrder | None:
        """
        Write an entry with one repair-and-retry.

        Returns:
            The repaired access order if a repair ran, None otherwise
        """
        full_key = self._full_key(key)
        try:
            self.store.set_item(full_key, payload)
            return None
        except Exception as e:
            logger.warning(
                f"Write rejected for key '{key}', repairing and retrying: {e}",
                extra={"key": key, "prefix": self.prefix, "error": str(e)},
            )

        order = self.repair(max_entries, incoming_key=key)
        try:
            self.store.set_item(full_key, payload)
        except Exception as e:
            logger.error(
                f"Write for key '{key}' failed again after repair: {e}",
                extra={"key": key, "prefix": self.prefix, "error": str(e)},
                exc_info=True,
            )
            raise StorageFullError(self.backend_name, key, {"error": str(e)}) from e
        return order

    def _write_order(self, order: AccessOrder, key: str, max_entries: int | None) -> None:
        """Persist the access order after a set, with one repair-and-retry."""
        try:
            self.store.set_item(self.access_order_key, order.to_document())
            return
        except Exception as e:
            logger.warning(
                f"Access order write rejected, repairing and retrying: {e}",
                extra={"key": key, "prefix": self.prefix, "error": str(e)},
            )

        order = self.repair(max_entries)
        order.touch(key)
        try:
            self.store.set_item(self.access_order_key, order.to_document())
        except Exception as e:
            logger.error(
                f"Access order write failed again after repair: {e}",
                extra={"key": key, "prefix": self.prefix, "error": str(e)},
                exc_info=True,
            )
            raise StorageFullError(self.backend_name, key, {"error": str(e)}) from e

    # ------------ Repair ------------

    def repair(self, max_entries: int | None = None, incoming_key: str | None = None) -> AccessOrder:
        """
        Reconcile stored entries with the access order.

        Scans every prefixed key, drops malformed and expired entries, rebuilds
        the access order to match exactly the survivors, then evicts from the
        head until there is room for ``incoming_key`` within ``max_entries``.

        Args:
            max_entries: Capacity bound (defaults to the adapter option)
            incoming_key: Key about to be written; dropped from the order with a slot reserved for it

        Returns:
            The reconciled access order (already persisted when possible)
        """
        if max_entries is None:
            max_entries = self.options.max_entries
        now = self._now()

        survivors: list[str] = []
        dropped = 0
        for full_key in list(self.store.keys(self.prefix)):
            if full_key == self.access_order_key or not full_key.startswith(self.prefix):
                continue
            key = full_key[len(self.prefix) :]
            entry = decode_entry(self.store.get_item(full_key), self._deserializer)
            if entry is None:
                self.store.remove_item(full_key)
                dropped += 1
            elif entry.is_expired(now):
                self.store.remove_item(full_key)
                self._expired(key)
                dropped += 1
            else:
                survivors.append(key)

        order = self._read_order().reconcile(survivors)

        # The incoming key is re-added by the caller once its write succeeds
        if incoming_key is not None:
            order.discard(incoming_key)

        if max_entries is not None:
            limit = max_entries - 1 if incoming_key is not None else max_entries
            while len(order) > max(limit, 0):
                self._evict_oldest(order)

        self._save_order_quietly(order)
        logger.info(
            f"Repaired key/value cache '{self.prefix}': {len(order)} live, {dropped} dropped",
            extra={"prefix": self.prefix, "live": len(order), "dropped": dropped},
        )
        return order

    # ------------ Core Interface ------------

    async def _fetch(self, key: str) -> Any:
        raw = self.store.get_item(self._full_key(key))
        if raw is None:
            return MISS

        entry = decode_entry(raw, self._deserializer)
        if entry is None:
            self._forget(key)
            return MISS

        if entry.is_expired(self._now()):
            self._forget(key)
            self._expired(key)
            return MISS

        order = self._read_order()
        order.touch(key)
        self._save_order_quietly(order)
        return entry.value

    async def _size(self) -> int:
        return len(self._read_order())

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        """Store value in the key/value store."""
        if key == ACCESS_ORDER_KEY:
            raise ValueError(f"'{ACCESS_ORDER_KEY}' is reserved for the access order document")

        opts = self._resolve_options(options)
        now = self._now()

        # Encode before anything is evicted; a value the serializer rejects must not cost a live entry
        payload = encode_entry(create_entry(value, opts.ttl, now), self._serializer)

        order = self._read_order()
        self._purge_expired(order, now)

        if should_evict(len(order), opts.max_entries, key in order):
            self._evict_oldest(order)

        repaired = self._write_entry(key, payload, opts.max_entries)
        if repaired is not None:
            order = repaired

        order.touch(key)
        self._write_order(order, key, opts.max_entries)
        self._sets += 1
        self._emit(CacheEventType.SET, key, value)

    async def delete(self, key: str) -> bool:
        """Delete key from the store. Missing keys are not an error."""
        existed = self.store.get_item(self._full_key(key)) is not None
        self._forget(key)
        if existed:
            self._deletes += 1
        self._emit(CacheEventType.DELETE, key)
        return existed

    async def clear(self) -> None:
        """Remove every key under this adapter's prefix (and only those)."""
        keys = [k for k in self.store.keys(self.prefix) if k.startswith(self.prefix)]
        for full_key in keys:
            self.store.remove_item(full_key)
        self.store.remove_item(self.access_order_key)
        logger.info(f"Cleared {len(keys)} keys from key/value cache namespace '{self.prefix}'")
        self._emit(CacheEventType.CLEAR)

    async def get_stats(self) -> dict[str, Any]:
        stats = await super().get_stats()
        stats["prefix"] = self.prefix
        return stats

    async def close(self) -> None:
        """Close the backing store if it supports closing."""
        close = getattr(self.store, "close", None)
        if callable(close):
            close()
        await super().close()
