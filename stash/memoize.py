"""
Stash — Memoization Decorator

Cache-aside wrapper: look the call up in a cache, otherwise run the function
and store its result.

Usage:
    @memoize(ttl=60_000, max_entries=256)
    async def fetch_user(user_id: int) -> dict: ...

    @memoize
    def slow_square(x: int) -> int: ...

    await slow_square(4)  # the wrapper is always a coroutine function
"""

import functools
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .cache.backends.memory import MemoryCacheBackend
from .cache.facade import Cache
from .cache.interface import StorageAdapter
from .cache.models import MISS, CacheOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyResolver = Callable[..., str]


def default_key_resolver(*args: Any, **kwargs: Any) -> str:
    """JSON of the call arguments; non-JSON values fall back to repr()."""
    return json.dumps([list(args), kwargs], sort_keys=True, default=repr, separators=(",", ":"))


def memoize(
    func: Callable[..., Any] | None = None,
    *,
    cache: StorageAdapter | Cache | None = None,
    ttl: float | None = None,
    max_entries: int | None = None,
    key_resolver: KeyResolver | None = None,
) -> Any:
    """
    Memoize a sync or async callable.

    Args:
        func: Function to wrap (when used without parentheses)
        cache: Adapter or Cache facade to store results in (default: a new memory backend)
        ttl: Lifetime of memoized results in milliseconds
        max_entries: Capacity bound for memoized results
        key_resolver: Maps call arguments to a cache key

    Returns:
        Async wrapper exposing the backing store as ``.cache``
    """
    # Only explicitly given options override the cache's own defaults
    overrides = {"ttl": ttl, "max_entries": max_entries}
    options = CacheOptions(**{name: value for name, value in overrides.items() if value is not None})
    resolve_key = key_resolver or default_key_resolver

    def decorator(fn: Callable[..., T | Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        store = cache if cache is not None else MemoryCacheBackend(options)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            key = resolve_key(*args, **kwargs)

            cached = await store.get(key, MISS)
            if cached is not MISS:
                return cached  # type: ignore[no-any-return]

            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result

            await store.set(key, result, options)
            logger.debug(f"Memoized result of {fn.__qualname__}", extra={"function": fn.__qualname__})
            return result  # type: ignore[return-value]

        wrapper.cache = store  # type: ignore[attr-defined]
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
