"""
Stash — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated at load time.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class CacheBackend(str, Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    KEYVALUE = "keyvalue"
    FILESYSTEM = "filesystem"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Cache configuration."""

    backend: CacheBackend = Field(default=CacheBackend.MEMORY, description="Cache backend to use")
    ttl_ms: float = Field(default=0, ge=0, description="Default TTL in milliseconds (0 = no expiry)")
    max_entries: int | None = Field(default=None, ge=1, description="Max cache entries (None = unbounded)")

    # Key/value backend settings
    prefix: str = Field(default="cache:", description="Key prefix (key/value backend namespace)")
    kv_quota: int | None = Field(default=None, ge=1, description="Character quota of the in-memory key/value store")
    redis_url: str | None = Field(default=None, description="Redis URL; when set the key/value backend uses Redis")
    redis_max_connections: int = Field(default=10, ge=1, description="Redis connection pool size")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    # File system backend settings
    directory: str = Field(default="./.cache", description="Cache directory (file system backend)")

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: str) -> str:
        """Reject an empty directory path."""
        if not v.strip():
            raise ValueError("directory must not be empty")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None) -> str | None:
        """Ensure redis_url looks like a Redis URL when provided."""
        if v and not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must start with redis://, rediss:// or unix://")
        return v or None


class StashConfig(BaseModel):
    """Root configuration for Stash."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
