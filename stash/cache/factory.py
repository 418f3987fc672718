"""
Stash — Cache Factory

Canonical factory for creating cache instances based on configuration.

Key points:
- Backend is chosen explicitly: CACHE_BACKEND=memory|keyvalue|filesystem,
  or from an EnvironmentCapabilities probe supplied by the caller
- The key/value backend uses Redis when REDIS_URL is set, otherwise an
  in-memory store bounded by CACHE_KV_QUOTA
- All configuration is typed and validated via Pydantic models

Examples:
    from stash.cache.factory import create_cache, get_cache

    # Uses env-configured backend (memory by default)
    cache = create_cache()

    # Or explicitly supply a CacheConfig (e.g., for tests)
    from stash.config import CacheConfig, CacheBackend
    cfg = CacheConfig(backend=CacheBackend.FILESYSTEM, directory="/tmp/stash", max_entries=500)
    file_cache = create_cache(cfg, name="files")
"""

from __future__ import annotations

import logging

from ..config import CacheBackend, CacheConfig, get_config
from ..errors import ConfigurationError
from .backends.filesystem import FileSystemCacheBackend
from .backends.keyvalue import KeyValueCacheBackend
from .backends.memory import MemoryCacheBackend
from .facade import Cache, EnvironmentCapabilities
from .interface import StorageAdapter
from .models import CacheOptions
from .stores import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

logger = logging.getLogger(__name__)

# Global cache instances registry
_cache_instances: dict[str, Cache] = {}


def select_backend(capabilities: EnvironmentCapabilities) -> CacheBackend:
    """Pick the most persistent backend the environment supports."""
    if capabilities.key_value_store is not None:
        return CacheBackend.KEYVALUE
    if capabilities.filesystem:
        return CacheBackend.FILESYSTEM
    return CacheBackend.MEMORY


def options_from_config(config: CacheConfig) -> CacheOptions:
    """Default CacheOptions described by a CacheConfig."""
    return CacheOptions(ttl=config.ttl_ms or None, max_entries=config.max_entries)


def _create_store(config: CacheConfig) -> KeyValueStore:
    """Internal helper to construct the key/value store for the keyvalue backend."""
    if config.redis_url:
        return RedisKeyValueStore(
            redis_url=config.redis_url,
            max_connections=config.redis_max_connections,
            socket_timeout=config.redis_socket_timeout,
        )
    return InMemoryKeyValueStore(quota=config.kv_quota)


def create_adapter(
    config: CacheConfig,
    store: KeyValueStore | None = None,
    options: CacheOptions | None = None,
) -> StorageAdapter:
    """
    Build a storage adapter for ``config.backend``.

    Args:
        config: Cache configuration
        store: Key/value store to use instead of the configured one
        options: Options merged over the ones derived from ``config``

    Raises:
        ConfigurationError: If the backend is unknown
    """
    adapter_options = options_from_config(config).merge(options)

    if config.backend == CacheBackend.MEMORY:
        return MemoryCacheBackend(options=adapter_options)
    if config.backend == CacheBackend.KEYVALUE:
        return KeyValueCacheBackend(
            store if store is not None else _create_store(config),
            prefix=config.prefix,
            options=adapter_options,
        )
    if config.backend == CacheBackend.FILESYSTEM:
        return FileSystemCacheBackend(directory=config.directory, options=adapter_options)

    raise ConfigurationError(
        f"Unknown cache backend: {config.backend}",
        details={
            "backend": str(config.backend),
            "supported": [b.value for b in CacheBackend],
        },
    )


def create_cache(
    config: CacheConfig | None = None,
    name: str = "default",
    capabilities: EnvironmentCapabilities | None = None,
) -> Cache:
    """
    Create a cache instance based on configuration.

    Args:
        config: Cache configuration (uses global config if not provided)
        name: Cache instance name (for multiple cache instances)
        capabilities: Environment probe; when given it selects the backend

    Returns:
        Configured Cache facade

    Raises:
        ConfigurationError: If cache configuration is invalid or backend unavailable
    """
    # Return existing instance if already created
    if name in _cache_instances:
        logger.debug("Returning existing cache instance: %s", name)
        return _cache_instances[name]

    # Use global config if not provided
    if config is None:
        config = get_config().cache

    store = None
    if capabilities is not None:
        config = config.model_copy(update={"backend": select_backend(capabilities)})
        store = capabilities.key_value_store

    logger.info(
        "Creating cache instance '%s' with backend: %s",
        name,
        config.backend,
        extra={"cache_name": name, "backend": str(config.backend)},
    )

    try:
        adapter = create_adapter(config, store=store)
    except ConfigurationError:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error creating cache instance '%s': %s",
            name,
            e,
            extra={"cache_name": name, "backend": str(config.backend), "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to create cache instance '{name}': {e}",
            details={"cache_name": name, "backend": str(config.backend), "error": str(e)},
        ) from e

    cache = Cache(adapter)
    _cache_instances[name] = cache

    logger.info(
        "Cache instance '%s' created successfully",
        name,
        extra={"cache_name": name, "backend": str(config.backend)},
    )
    return cache


def get_cache(name: str = "default") -> Cache:
    """
    Get an existing cache instance by name.

    If the instance doesn't exist, it will be created automatically
    using the global configuration.
    """
    if name not in _cache_instances:
        logger.debug("Cache instance '%s' not found, creating new instance", name)
        return create_cache(name=name)

    return _cache_instances[name]


async def close_all_caches() -> None:
    """
    Close all cache instances and release resources.

    Call during graceful shutdown.
    """
    if not _cache_instances:
        logger.debug("No cache instances to close")
        return

    logger.info("Closing %d cache instance(s)...", len(_cache_instances))

    for name, cache in list(_cache_instances.items()):
        try:
            await cache.close()
            logger.info("Closed cache instance: %s", name)
        except Exception as e:
            logger.error(
                "Error closing cache instance '%s': %s",
                name,
                e,
                extra={"cache_name": name, "error": str(e)},
                exc_info=True,
            )

    _cache_instances.clear()
    logger.info("All cache instances closed")


def reset_cache_factory() -> None:
    """
    Reset the cache factory by clearing all instance references.

    Does NOT call close() on instances - use close_all_caches() for proper cleanup.
    Only use this in testing contexts.
    """
    count = len(_cache_instances)
    _cache_instances.clear()
    logger.debug("Reset cache factory, cleared %d instance reference(s)", count)


def list_cache_instances() -> list[str]:
    """List all registered cache instance names."""
    return list(_cache_instances.keys())
