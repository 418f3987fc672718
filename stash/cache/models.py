"""
Stash — Cache Data Models

Typed models shared by every storage adapter:
- CacheEntry: the value + timestamp + expiry envelope
- CacheOptions: per-adapter defaults and per-call overrides (ttl, max_entries)
- CacheEvent / CacheEventType: notifications emitted by adapters and the facade
- MISS: sentinel returned internally for "no value"

All timestamps are epoch milliseconds.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class _Miss:
    """Sentinel type for a cache miss (distinct from a cached ``None``)."""

    _instance: "_Miss | None" = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Any = _Miss()


class CacheEntry(BaseModel):
    """
    Immutable cache entry envelope.

    ``key`` is recorded by the persistent adapters so a stored document can be
    mapped back to its key during repair; the memory adapter leaves it unset.
    """

    model_config = ConfigDict(frozen=True)

    key: str | None = None
    value: Any = None
    created_at: float
    expires_at: float | None = None

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry":
        if self.expires_at is not None and self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: float) -> bool:
        """True once ``now`` reaches ``expires_at`` (boundary inclusive)."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def to_document(self) -> dict[str, Any]:
        """Plain dict form handed to the serializer."""
        doc: dict[str, Any] = {
            "value": self.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }
        if self.key is not None:
            doc["key"] = self.key
        return doc


class CacheOptions(BaseModel):
    """Cache behaviour options (ttl in milliseconds; 0 or None = no expiry)."""

    model_config = ConfigDict(populate_by_name=True)

    ttl: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("ttl", "time_to_live", "timeToLive"),
        description="Entry lifetime in milliseconds",
    )
    max_entries: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("max_entries", "max_size", "maxEntries", "maxSize"),
        description="Capacity bound triggering LRU eviction (None = unbounded)",
    )

    def merge(self, other: "CacheOptions | None") -> "CacheOptions":
        """Return a copy with the explicitly set fields of ``other`` applied on top."""
        if other is None:
            return self
        return self.model_copy(update={name: getattr(other, name) for name in other.model_fields_set})


class CacheEventType(str, Enum):
    """Event types emitted by adapters and the facade."""

    SET = "set"
    GET = "get"
    DELETE = "delete"
    CLEAR = "clear"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CacheEvent:
    """A single cache notification."""

    type: CacheEventType
    timestamp: float
    key: str | None = None
    value: Any = field(default=None)


CacheEventListener = Callable[[CacheEvent], None]
