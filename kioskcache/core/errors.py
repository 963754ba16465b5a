"""Exception hierarchy for kioskcache."""

from typing import Any


class KioskCacheError(Exception):
    """Base error for every failure raised by kioskcache."""


class ConfigError(KioskCacheError):
    """Invalid or unreadable cache configuration."""


class StorageError(KioskCacheError):
    """Durable key-value store operation failed."""


class StorageQuotaExceededError(StorageError):
    """Write rejected because the store quota would be exceeded."""

    def __init__(self, key: str, required_bytes: int, quota_bytes: int) -> None:
        super().__init__(
            f"Storing {key!r} needs {required_bytes} bytes, quota is {quota_bytes}"
        )
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class CorruptEntryError(KioskCacheError):
    """Persisted cache envelope could not be decoded."""


class DataSourceError(KioskCacheError):
    """Data source failed to return a record."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OptimizationInProgressError(KioskCacheError):
    """A smart optimization pass is already running."""


class OptimizationError(KioskCacheError):
    """A smart optimization stage failed after earlier stages completed.

    The ``partial_result`` attribute carries the counts accumulated by the
    stages that finished before the failure.
    """

    def __init__(self, message: str, partial_result: Any) -> None:
        super().__init__(message)
        self.partial_result = partial_result
