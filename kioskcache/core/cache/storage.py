"""Durable key-value stores holding encoded cache envelopes."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

import diskcache  # type: ignore[import-untyped]

from kioskcache.core.errors import StorageError, StorageQuotaExceededError


logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """Synchronous string key-value store with a byte quota."""

    def get(self, key: str) -> str | None:
        """Return the stored string or None when absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store ``value``.

        Raises:
            StorageQuotaExceededError: If the write would exceed the quota
            StorageError: On any other backend failure
        """
        ...

    def remove(self, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""
        ...

    def keys(self) -> Iterator[str]:
        """Iterate over a snapshot of the stored keys."""
        ...

    def usage_bytes(self) -> int:
        """Summed key and value lengths of every stored entry."""
        ...


def _entry_size(key: str, value: str) -> int:
    return len(key) + len(value)


class MemoryKeyValueStore:
    """Dict-backed store with browser-storage quota semantics."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._used = 0

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Only strings can be stored, got {type(value)}")

        previous = self._data.get(key)
        freed = _entry_size(key, previous) if previous is not None else 0
        required = _entry_size(key, value)
        if (
            self.quota_bytes is not None
            and self._used - freed + required > self.quota_bytes
        ):
            raise StorageQuotaExceededError(key, required, self.quota_bytes)

        self._data[key] = value
        self._used += required - freed

    def remove(self, key: str) -> None:
        value = self._data.pop(key, None)
        if value is not None:
            self._used -= _entry_size(key, value)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))

    def usage_bytes(self) -> int:
        return self._used

    def __len__(self) -> int:
        return len(self._data)


class DiskKeyValueStore:
    """DiskCache-backed durable store.

    DiskCache provides SQLite-backed persistent storage that survives restarts
    and is safe to share between processes. The quota is enforced on the
    summed key and value lengths, the same measure the in-memory store uses.
    Usage is counted once when the store opens and kept up to date by this
    instance's writes.
    """

    def __init__(
        self,
        directory: Path | str,
        quota_bytes: int | None = None,
        timeout: int = 30,
    ) -> None:
        """Initialize the store.

        Args:
            directory: Directory for the SQLite database
            quota_bytes: Maximum summed entry size (None for unlimited)
            timeout: SQLite lock timeout in seconds
        """
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self.directory.mkdir(parents=True, exist_ok=True)

        # No size_limit: eviction is driven by cache policies, not by DiskCache
        self._cache = diskcache.Cache(
            directory=str(self.directory),
            timeout=timeout,
            eviction_policy="none",
        )
        self._used = self._measure_usage()
        logger.debug(
            "DiskKeyValueStore initialized at %s (%d bytes used)",
            self.directory,
            self._used,
        )

    def get(self, key: str) -> str | None:
        try:
            value = self._cache.get(key, default=None)
        except Exception as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Only strings can be stored, got {type(value)}")

        previous = self.get(key)
        freed = _entry_size(key, previous) if previous is not None else 0
        required = _entry_size(key, value)
        if (
            self.quota_bytes is not None
            and self._used - freed + required > self.quota_bytes
        ):
            raise StorageQuotaExceededError(key, required, self.quota_bytes)

        try:
            self._cache.set(key, value)
        except Exception as e:
            raise StorageError(f"Failed to write {key}: {e}") from e
        self._used += required - freed

    def remove(self, key: str) -> None:
        previous = self.get(key)
        try:
            self._cache.delete(key)
        except Exception as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e
        if previous is not None:
            self._used -= _entry_size(key, previous)

    def keys(self) -> Iterator[str]:
        try:
            return iter([k for k in self._cache.iterkeys() if isinstance(k, str)])
        except Exception as e:
            raise StorageError(f"Failed to list keys: {e}") from e

    def usage_bytes(self) -> int:
        return self._used

    def _measure_usage(self) -> int:
        total = 0
        for key in self.keys():
            value = self.get(key)
            if value is not None:
                total += _entry_size(key, value)
        return total

    def close(self) -> None:
        self._cache.close()

    def __len__(self) -> int:
        return len(self._cache)
