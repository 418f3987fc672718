"""
Stash — Configuration Loader Tests

Tests environment parsing, .env loading and validation failures.
"""

from pathlib import Path

import pytest

import stash.config.loader as loader_module
from stash.config import CacheBackend, CacheConfig, get_config, load_config, reload_config
from stash.errors import ConfigurationError

CACHE_VARS = [
    "CACHE_BACKEND",
    "CACHE_TTL_MS",
    "CACHE_MAX_ENTRIES",
    "CACHE_PREFIX",
    "CACHE_DIRECTORY",
    "CACHE_KV_QUOTA",
    "REDIS_URL",
]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Start every test without a loaded config, cache variables or a .env file in reach."""
    monkeypatch.setattr(loader_module, "_config_instance", None)
    monkeypatch.chdir(tmp_path)
    for name in CACHE_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Test suite for load_config."""

    def test_defaults(self) -> None:
        config = load_config()

        assert config.environment == "test"
        assert config.cache.backend == CacheBackend.MEMORY
        assert config.cache.ttl_ms == 0
        assert config.cache.max_entries is None
        assert config.cache.prefix == "cache:"
        assert config.cache.redis_url is None

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_BACKEND", "filesystem")
        monkeypatch.setenv("CACHE_TTL_MS", "60000")
        monkeypatch.setenv("CACHE_MAX_ENTRIES", "250")
        monkeypatch.setenv("CACHE_DIRECTORY", "/var/cache/stash")

        config = load_config()

        assert config.cache.backend == CacheBackend.FILESYSTEM
        assert config.cache.ttl_ms == 60000
        assert config.cache.max_entries == 250
        assert config.cache.directory == "/var/cache/stash"

    def test_loads_env_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        # Registered with monkeypatch so the value written by the .env file is undone afterwards
        monkeypatch.setenv("CACHE_PREFIX", "placeholder")
        env_file = tmp_path / "stash.env"
        env_file.write_text("CACHE_PREFIX=from-file:\n", encoding="utf-8")

        config = load_config(env_file=str(env_file))

        assert config.cache.prefix == "from-file:"

    def test_config_is_cached_until_reload(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = load_config()
        monkeypatch.setenv("CACHE_MAX_ENTRIES", "7")

        assert load_config() is first
        assert get_config() is first

        reloaded = reload_config()
        assert reloaded is not first
        assert reloaded.cache.max_entries == 7

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("CACHE_MAX_ENTRIES", "many"),
            ("CACHE_TTL_MS", "soon"),
            ("CACHE_BACKEND", "tape"),
            ("CACHE_MAX_ENTRIES", "0"),
            ("REDIS_URL", "http://localhost:6379"),
        ],
    )
    def test_invalid_values_raise_configuration_error(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError):
            load_config()


class TestCacheConfig:
    """Test suite for the CacheConfig schema."""

    def test_empty_redis_url_normalized(self) -> None:
        assert CacheConfig(redis_url="").redis_url is None

    def test_blank_directory_rejected(self) -> None:
        with pytest.raises(ValueError):
            CacheConfig(directory="   ")
