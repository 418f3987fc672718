"""
Stash — Memoization Decorator Tests
"""

from typing import Any

import pytest

from stash.cache.backends import MemoryCacheBackend
from stash.cache.facade import Cache
from stash.memoize import default_key_resolver, memoize


class TestMemoize:
    """Test suite for the memoize decorator."""

    async def test_sync_function_called_once_per_arguments(self) -> None:
        calls: list[int] = []

        @memoize
        def square(x: int) -> int:
            calls.append(x)
            return x * x

        assert await square(3) == 9
        assert await square(3) == 9
        assert await square(4) == 16
        assert calls == [3, 4]

    async def test_async_function(self) -> None:
        calls = 0

        @memoize()
        async def fetch(user_id: int) -> dict[str, Any]:
            nonlocal calls
            calls += 1
            return {"id": user_id}

        assert await fetch(1) == {"id": 1}
        assert await fetch(1) == {"id": 1}
        assert calls == 1

    async def test_none_result_is_cached(self) -> None:
        calls = 0

        @memoize
        def lookup(key: str) -> None:
            nonlocal calls
            calls += 1
            return None

        assert await lookup("a") is None
        assert await lookup("a") is None
        assert calls == 1

    async def test_keyword_order_does_not_matter(self) -> None:
        calls = 0

        @memoize
        def combine(a: int = 0, b: int = 0) -> int:
            nonlocal calls
            calls += 1
            return a + b

        assert await combine(a=1, b=2) == 3
        assert await combine(b=2, a=1) == 3
        assert calls == 1

    async def test_ttl_expires_results(self, clock: Any) -> None:
        calls = 0

        @memoize(cache=MemoryCacheBackend(clock=clock), ttl=100)
        def now_ish() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await now_ish() == 1
        clock.advance(99)
        assert await now_ish() == 1
        clock.advance(1)
        assert await now_ish() == 2

    async def test_max_entries_evicts_least_recent(self) -> None:
        calls: list[int] = []

        @memoize(max_entries=2)
        def ident(x: int) -> int:
            calls.append(x)
            return x

        await ident(1)
        await ident(2)
        await ident(3)
        await ident(1)

        assert calls == [1, 2, 3, 1]
        assert (await ident.cache.get_stats())["evictions"] == 2

    async def test_custom_key_resolver(self) -> None:
        calls = 0

        @memoize(key_resolver=lambda user, **_: f"user:{user['id']}")
        def profile(user: dict[str, Any], verbose: bool = False) -> str:
            nonlocal calls
            calls += 1
            return user["name"]

        assert await profile({"id": 7, "name": "Ada"}) == "Ada"
        assert await profile({"id": 7, "name": "changed"}, verbose=True) == "Ada"
        assert calls == 1
        assert await profile.cache.has("user:7") is True

    async def test_shared_cache_facade(self) -> None:
        shared = Cache(MemoryCacheBackend())

        @memoize(cache=shared)
        def double(x: int) -> int:
            return x * 2

        assert await double(21) == 42
        assert await shared.get(default_key_resolver(21)) == 42
        assert double.cache is shared

    async def test_exceptions_are_not_cached(self) -> None:
        attempts = 0

        @memoize
        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("first call fails")
            return "ok"

        with pytest.raises(RuntimeError):
            await flaky()
        assert await flaky() == "ok"
        assert attempts == 2

    async def test_wrapper_preserves_metadata(self) -> None:
        @memoize
        def documented(x: int) -> int:
            """Return x."""
            return x

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Return x."


class TestDefaultKeyResolver:
    """Test suite for default_key_resolver."""

    def test_positional_and_keyword_arguments_differ(self) -> None:
        assert default_key_resolver(1, 2) != default_key_resolver(1, b=2)

    def test_kwargs_sorted(self) -> None:
        assert default_key_resolver(a=1, b=2) == default_key_resolver(b=2, a=1)

    def test_non_json_values_use_repr(self) -> None:
        class Point:
            def __repr__(self) -> str:
                return "Point(1, 2)"

        assert "Point(1, 2)" in default_key_resolver(Point())
