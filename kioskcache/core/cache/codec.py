"""Serialization of cache entries to the persisted JSON envelope.

The envelope layout is shared with every other reader of the durable store::

    {"data": <payload>, "timestamp": <epoch millis>, "refreshCount": <int>}

``refreshCount`` is omitted on the first write of a key.
"""

import json
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from kioskcache.core.cache.models import CacheEntry
from kioskcache.core.errors import CorruptEntryError


def _prepare_for_serialization(value: Any) -> Any:
    """Convert models and other rich values into JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if isinstance(value, dict):
        return {str(k): _prepare_for_serialization(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_prepare_for_serialization(v) for v in value]
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value


def encode_entry(entry: CacheEntry) -> str:
    """Encode ``entry`` as a JSON envelope string.

    Raises:
        TypeError: If the payload is not JSON serializable
    """
    envelope: dict[str, Any] = {
        "data": _prepare_for_serialization(entry.payload),
        "timestamp": entry.stored_at_ms,
    }
    if entry.refresh_count is not None:
        envelope["refreshCount"] = entry.refresh_count
    return json.dumps(envelope, separators=(",", ":"))


def decode_entry(raw: str | bytes) -> CacheEntry:
    """Decode a JSON envelope string.

    Raises:
        CorruptEntryError: If ``raw`` is not a well-formed envelope
    """
    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorruptEntryError(f"Cache entry is not valid JSON: {e}") from e

    if not isinstance(envelope, dict) or "data" not in envelope:
        raise CorruptEntryError("Cache entry is missing the 'data' field")

    timestamp = envelope.get("timestamp")
    # bool is an int subclass but never a valid timestamp
    if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
        raise CorruptEntryError("Cache entry has no numeric 'timestamp'")

    refresh_count = envelope.get("refreshCount")
    if refresh_count is not None and (
        isinstance(refresh_count, bool) or not isinstance(refresh_count, int)
    ):
        raise CorruptEntryError("Cache entry has a non-integer 'refreshCount'")

    return CacheEntry(
        payload=envelope["data"],
        stored_at_ms=int(timestamp),
        refresh_count=refresh_count,
    )


def encoded_size(raw: str | bytes) -> int:
    """Size of a persisted value as counted against the storage quota."""
    return len(raw)
