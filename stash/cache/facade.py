"""
Stash — Cache Facade

Thin orchestration layer over a single storage adapter:
- explicit backend selection (given adapter, capability probe, or config)
- default options merged under per-call options
- event republishing to the facade's own listeners

Usage:
    cache = Cache(MemoryCacheBackend(), CacheOptions(ttl=60_000))
    cache.add_event_listener("set", print)
    await cache.set("key", "value")
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..config import CacheConfig
from .eviction import now_ms
from .interface import StorageAdapter
from .models import MISS, CacheEvent, CacheEventListener, CacheEventType, CacheOptions
from .stores import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentCapabilities:
    """
    Capabilities of the host environment, supplied by the caller.

    Used to pick a backend without inspecting globals: a key/value store wins,
    then a usable filesystem, then memory.
    """

    key_value_store: KeyValueStore | None = None
    filesystem: bool = False


class Cache:
    """
    Cache facade over one storage adapter.

    Adapters that support listeners have their events forwarded; for any other
    adapter the facade emits set/get/delete/clear itself.
    """

    def __init__(
        self,
        adapter: StorageAdapter | None = None,
        options: CacheOptions | None = None,
        *,
        capabilities: EnvironmentCapabilities | None = None,
        config: CacheConfig | None = None,
    ) -> None:
        """
        Initialize the facade.

        Args:
            adapter: Storage adapter to use (takes precedence)
            options: Default options merged under per-call options
            capabilities: Environment probe used to select a backend when no adapter is given
            config: Cache configuration used to build the adapter when no adapter is given
        """
        self.options = options or CacheOptions()
        self._listeners: dict[CacheEventType, list[CacheEventListener]] = {t: [] for t in CacheEventType}

        if adapter is None:
            # Lazy import: factory depends on this module
            from .factory import create_adapter, select_backend

            config = config or CacheConfig()
            if capabilities is not None:
                config = config.model_copy(update={"backend": select_backend(capabilities)})
            store = capabilities.key_value_store if capabilities is not None else None
            adapter = create_adapter(config, store=store, options=self.options)

        self.adapter = adapter
        self._forwarding = callable(getattr(adapter, "add_event_listener", None))
        if self._forwarding:
            for event_type in CacheEventType:
                adapter.add_event_listener(event_type, self._emit)

        logger.debug(
            f"Cache facade created over {getattr(adapter, 'backend_name', type(adapter).__name__)} adapter",
            extra={"forwarding_events": self._forwarding},
        )

    # ------------ Events ------------

    def _emit(self, event: CacheEvent) -> None:
        for listener in list(self._listeners[event.type]):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Cache event listener failed for '{event.type.value}': {e}",
                    extra={"event_type": event.type.value, "key": event.key, "error": str(e)},
                    exc_info=True,
                )

    def _emit_own(self, event_type: CacheEventType, key: str | None = None, value: Any = None) -> None:
        """Emit an event for adapters that cannot emit their own."""
        if not self._forwarding:
            self._emit(CacheEvent(type=event_type, timestamp=now_ms(), key=key, value=value))

    def add_event_listener(self, event_type: CacheEventType | str, listener: CacheEventListener) -> None:
        """Register ``listener`` for ``event_type``."""
        listeners = self._listeners[CacheEventType(event_type)]
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event_type: CacheEventType | str, listener: CacheEventListener) -> None:
        """Unregister ``listener``; unknown listeners are ignored."""
        listeners = self._listeners[CacheEventType(event_type)]
        if listener in listeners:
            listeners.remove(listener)

    # ------------ Operations ------------

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss."""
        value = await self.adapter.get(key, MISS)
        if value is MISS:
            return default
        self._emit_own(CacheEventType.GET, key, value)
        return value

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        """Store ``value`` with the facade defaults merged under ``options``."""
        await self.adapter.set(key, value, self.options.merge(options))
        self._emit_own(CacheEventType.SET, key, value)

    async def delete(self, key: str) -> bool:
        """Delete ``key``; idempotent."""
        existed = await self.adapter.delete(key)
        self._emit_own(CacheEventType.DELETE, key)
        return existed

    async def clear(self) -> None:
        """Remove every entry of the adapter's namespace."""
        await self.adapter.clear()
        self._emit_own(CacheEventType.CLEAR)

    async def has(self, key: str) -> bool:
        """True if ``key`` holds a live entry."""
        return await self.adapter.has(key)

    async def get_stats(self) -> dict[str, Any]:
        return await self.adapter.get_stats()

    async def close(self) -> None:
        """Detach from the adapter and close it."""
        if self._forwarding:
            for event_type in CacheEventType:
                self.adapter.remove_event_listener(event_type, self._emit)
        await self.adapter.close()
