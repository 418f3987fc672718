"""
Stash — File System Cache Backend

Directory-backed cache with LRU eviction and TTL support:
- One JSON file per entry, named by the SHA-256 of the key
  (``<directory>/<sha256(key)>.json``), holding the entry envelope and its key
- The access order as one JSON document (``<directory>/__access_order.json``)
- Atomic per-file writes (temporary sibling + os.replace)
- A cleanup pass before every set that reconciles files and access order
- Only ``<64 hex chars>.json`` files and the index are managed; other files
  in the directory are never read or removed

File I/O goes through aiofiles. Adapters sharing a directory race on the
access order file (last write wins); cleanup repairs it from the entry files.
"""

import contextlib
import hashlib
import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiofiles
import aiofiles.os

from ...errors import StorageFullError
from ..eviction import AccessOrder, create_entry, should_evict
from ..interface import StorageAdapter
from ..models import MISS, CacheEventType, CacheOptions
from ..serialization import Deserializer, Serializer, decode_entry, encode_entry, json_dumps, json_loads

logger = logging.getLogger(__name__)

INDEX_FILE = "__access_order.json"
ENTRY_SUFFIX = ".json"

# sha256 hex digest + ".json"
_ENTRY_NAME = re.compile(r"^[0-9a-f]{64}\.json$")


class FileSystemCacheBackend(StorageAdapter):
    """
    File system cache backend.

    The directory is created lazily. Missing files during delete or eviction
    are not errors, and corrupt files (including invalid UTF-8) read as misses.
    """

    backend_name = "filesystem"

    def __init__(
        self,
        directory: str | Path | None = None,
        options: CacheOptions | None = None,
        clock: Callable[[], float] | None = None,
        serializer: Serializer = json_dumps,
        deserializer: Deserializer = json_loads,
    ) -> None:
        """
        Initialize file system cache backend.

        Args:
            directory: Cache directory (default: ./.cache)
            options: Default cache options
            clock: Millisecond clock (for tests)
            serializer: Entry envelope -> string
            deserializer: String -> entry envelope
        """
        super().__init__(options, clock)
        self.directory = Path(directory) if directory else Path.cwd() / ".cache"
        self.index_path = self.directory / INDEX_FILE
        self._serializer = serializer
        self._deserializer = deserializer

        # Latest generation per key with a set in flight; older overlapping sets skip their write
        self._set_counter = 0
        self._latest_set: dict[str, int] = {}

    # ------------ File helpers ------------

    @staticmethod
    def hash_key(key: str) -> str:
        """Filesystem-safe, collision-resistant name for ``key``."""
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{self.hash_key(key)}{ENTRY_SUFFIX}"

    async def _ensure_directory(self) -> None:
        await aiofiles.os.makedirs(self.directory, exist_ok=True)

    @staticmethod
    async def _read_bytes(path: Path) -> bytes | None:
        """Read a file's raw bytes; None if it does not exist. Decoding is left to the parsers."""
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None

    async def _write_text(self, path: Path, text: str, commit: Callable[[], bool] | None = None) -> bool:
        """
        Write atomically: temporary sibling, then replace.

        ``commit`` is checked right before the replace; when it returns False
        the temporary file is discarded and the target is left untouched.

        Returns:
            True if the target was replaced
        """
        await self._ensure_directory()
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(text)
            if commit is not None and not commit():
                await aiofiles.os.remove(tmp_path)
                return False
            await aiofiles.os.replace(tmp_path, path)
            return True
        except OSError:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(tmp_path)
            raise

    @staticmethod
    async def _remove(path: Path) -> bool:
        """Delete a file. Returns False if it was already gone or is not a regular file."""
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError:
            # EISDIR on Linux, EPERM on macOS
            if not await aiofiles.os.path.isdir(path):
                raise
            logger.warning(f"Not removing directory in cache location: {path}", extra={"path": str(path)})
            return False

    # ------------ Access order helpers ------------

    async def _read_order(self) -> AccessOrder:
        try:
            return AccessOrder.from_document(await self._read_bytes(self.index_path))
        except OSError as e:
            logger.warning(
                f"Failed to read access order, treating as empty: {e}",
                extra={"directory": str(self.directory), "error": str(e)},
            )
            return AccessOrder()

    async def _save_order_quietly(self, order: AccessOrder) -> None:
        """Persist the access order where failures must not raise (reads, deletes, cleanup)."""
        try:
            await self._write_text(self.index_path, order.to_document())
        except OSError as e:
            logger.warning(
                f"Failed to persist access order (will be repaired on next write): {e}",
                extra={"directory": str(self.directory), "error": str(e)},
            )

    async def _forget(self, key: str) -> None:
        """Remove an entry file and its access order membership."""
        await self._remove(self._entry_path(key))
        order = await self._read_order()
        if order.discard(key):
            await self._save_order_quietly(order)

    async def _evict_oldest(self, order: AccessOrder) -> str | None:
        evicted_key = order.pop_oldest()
        if evicted_key is None:
            return None
        await self._remove(self._entry_path(evicted_key))
        self._evictions += 1
        logger.debug(f"Evicted key from file system cache: {evicted_key}")
        return evicted_key

    async def _write_entry(
        self,
        key: str,
        payload: str,
        max_entries: int | None,
        commit: Callable[[], bool] | None = None,
    ) -> bool:
        """
        Write an entry file with one cleanup-and-retry.

        Returns:
            False if ``commit`` declined the write, True once the file is in place
        """
        path = self._entry_path(key)
        try:
            return await self._write_text(path, payload, commit)
        except OSError as e:
            logger.warning(
                f"Write failed for key '{key}', cleaning up and retrying: {e}",
                extra={"key": key, "directory": str(self.directory), "error": str(e)},
            )

        await self.cleanup(max_entries, incoming_key=key)
        try:
            return await self._write_text(path, payload, commit)
        except OSError as e:
            logger.error(
                f"Write for key '{key}' failed again after cleanup: {e}",
                extra={"key": key, "directory": str(self.directory), "error": str(e)},
                exc_info=True,
            )
            raise StorageFullError(self.backend_name, key, {"error": str(e)}) from e

    async def _write_order(self, order: AccessOrder, key: str, max_entries: int | None) -> None:
        """Persist the access order after a set, with one cleanup-and-retry."""
        try:
            await self._write_text(self.index_path, order.to_document())
            return
        except OSError as e:
            logger.warning(
                f"Access order write failed, cleaning up and retrying: {e}",
                extra={"key": key, "directory": str(self.directory), "error": str(e)},
            )

        order = await self.cleanup(max_entries)
        order.touch(key)
        try:
            await self._write_text(self.index_path, order.to_document())
        except OSError as e:
            logger.error(
                f"Access order write failed again after cleanup: {e}",
                extra={"key": key, "directory": str(self.directory), "error": str(e)},
                exc_info=True,
            )
            raise StorageFullError(self.backend_name, key, {"error": str(e)}) from e

    # ------------ Cleanup ------------

    async def cleanup(self, max_entries: int | None = None, incoming_key: str | None = None) -> AccessOrder:
        """
        Reconcile entry files with the access order.

        Deletes entry files that fail to parse, are expired or do not match
        their key's hash; adds untracked survivors to the access order (oldest
        first by creation time) and drops tracked keys without a file; evicts
        from the head while over ``max_entries`` (reserving a slot for
        ``incoming_key``); persists the result. Files not named like an entry
        are never touched.

        Returns:
            The reconciled access order
        """
        if max_entries is None:
            max_entries = self.options.max_entries
        await self._ensure_directory()
        now = self._now()

        survivors: list[tuple[float, str]] = []
        dropped = 0
        for name in await aiofiles.os.listdir(self.directory):
            if not _ENTRY_NAME.match(name):
                continue
            path = self.directory / name
            try:
                raw = await self._read_bytes(path)
            except OSError as e:
                logger.warning(f"Skipping unreadable cache file {name}: {e}", extra={"file": name, "error": str(e)})
                continue
            if raw is None:
                # Removed concurrently
                continue

            entry = decode_entry(raw, self._deserializer)
            if entry is None or entry.key is None or self._entry_path(entry.key).name != name:
                await self._remove(path)
                dropped += 1
            elif entry.is_expired(now):
                await self._remove(path)
                self._expired(entry.key)
                dropped += 1
            else:
                survivors.append((entry.created_at, entry.key))

        survivors.sort(key=lambda item: item[0])
        order = (await self._read_order()).reconcile(key for _, key in survivors)

        # The incoming key is re-added by the caller once its write succeeds
        if incoming_key is not None:
            order.discard(incoming_key)

        if max_entries is not None:
            limit = max_entries - 1 if incoming_key is not None else max_entries
            while len(order) > max(limit, 0):
                await self._evict_oldest(order)

        await self._save_order_quietly(order)
        logger.debug(
            f"Cleaned up file system cache {self.directory}: {len(order)} live, {dropped} dropped",
            extra={"directory": str(self.directory), "live": len(order), "dropped": dropped},
        )
        return order

    # ------------ Core Interface ------------

    async def _fetch(self, key: str) -> Any:
        try:
            await self._ensure_directory()
            raw = await self._read_bytes(self._entry_path(key))
        except OSError as e:
            logger.warning(
                f"Failed to read key '{key}' from file system cache: {e}",
                extra={"key": key, "directory": str(self.directory), "error": str(e)},
            )
            return MISS
        if raw is None:
            return MISS

        entry = decode_entry(raw, self._deserializer)
        if entry is None or entry.key != key:
            await self._forget(key)
            return MISS

        if entry.is_expired(self._now()):
            await self._forget(key)
            self._expired(key)
            return MISS

        order = await self._read_order()
        order.touch(key)
        await self._save_order_quietly(order)
        return entry.value

    async def _size(self) -> int:
        return len(await self._read_order())

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        """
        Store value as a file in the cache directory.

        Overlapping sets on the same key resolve to the one started last: an
        earlier call overtaken before its file is in place skips its write.
        """
        opts = self._resolve_options(options)
        self._set_counter += 1
        generation = self._set_counter
        self._latest_set[key] = generation

        def is_current() -> bool:
            return self._latest_set.get(key) == generation

        try:
            # Encode before anything is evicted; a value the serializer rejects must not cost a live entry
            entry = create_entry(value, opts.ttl, self._now(), key=key)
            payload = encode_entry(entry, self._serializer)

            order = await self.cleanup(opts.max_entries)
            evicted_key = None
            if is_current() and should_evict(len(order), opts.max_entries, key in order):
                evicted_key = await self._evict_oldest(order)

            written = await self._write_entry(key, payload, opts.max_entries, is_current)

            # Re-read so order updates from overlapping operations are kept
            order = await self._read_order()
            if evicted_key is not None:
                order.discard(evicted_key)
            if written:
                order.touch(key)
                await self._write_order(order, key, opts.max_entries)
            else:
                logger.debug(f"Skipped superseded write for key '{key}'", extra={"key": key})
                if evicted_key is not None:
                    await self._save_order_quietly(order)
        finally:
            if is_current():
                del self._latest_set[key]

        self._sets += 1
        self._emit(CacheEventType.SET, key, value)

    async def delete(self, key: str) -> bool:
        """Delete the key's file. Missing files are not an error."""
        existed = await self._remove(self._entry_path(key))
        order = await self._read_order()
        if order.discard(key):
            await self._save_order_quietly(order)
        if existed:
            self._deletes += 1
        self._emit(CacheEventType.DELETE, key)
        return existed

    async def clear(self) -> None:
        """Remove every entry file and the access order. Other files in the directory are kept."""
        try:
            names = await aiofiles.os.listdir(self.directory)
        except FileNotFoundError:
            names = []

        removed = 0
        for name in names:
            if _ENTRY_NAME.match(name) and await self._remove(self.directory / name):
                removed += 1
        await self._remove(self.index_path)
        logger.info(f"Cleared {removed} entries from file system cache {self.directory}")
        self._emit(CacheEventType.CLEAR)

    async def get_stats(self) -> dict[str, Any]:
        stats = await super().get_stats()
        stats["directory"] = str(self.directory)
        return stats
