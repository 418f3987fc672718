"""
Stash — Entry Serialization

The persistent adapters store entries as strings. The codec is a pluggable
pair of callables (``serializer: document -> str``, ``deserializer: str -> document``)
applied to the entry envelope; the default is compact JSON.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from .models import CacheEntry

logger = logging.getLogger(__name__)

Serializer = Callable[[Any], str]
Deserializer = Callable[[str], Any]


def json_dumps(document: Any) -> str:
    """Serialize a document to a compact JSON string."""
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


def json_loads(data: str) -> Any:
    """Deserialize a JSON string."""
    return json.loads(data)


def encode_entry(entry: CacheEntry, serializer: Serializer = json_dumps) -> str:
    """Serialize an entry envelope."""
    return serializer(entry.to_document())


def decode_entry(raw: str | bytes | None, deserializer: Deserializer = json_loads) -> CacheEntry | None:
    """
    Deserialize an entry envelope.

    Returns None when ``raw`` is missing or malformed; malformed data is a
    miss, never an error. Whatever a custom deserializer raises on bad input
    counts as malformed.
    """
    if raw is None:
        return None
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        document = deserializer(raw)
        if not isinstance(document, dict):
            raise ValueError(f"expected an object, got {type(document).__name__}")
        return CacheEntry.model_validate(document)
    except Exception as e:
        logger.warning(
            f"Failed to decode cache entry: {e}",
            extra={"data_preview": raw[:100] if isinstance(raw, str) else None, "error": str(e)},
        )
        return None
