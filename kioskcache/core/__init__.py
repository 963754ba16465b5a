from .errors import (
    ConfigError,
    CorruptEntryError,
    DataSourceError,
    KioskCacheError,
    OptimizationError,
    OptimizationInProgressError,
    StorageError,
    StorageQuotaExceededError,
)
from .logging import setup_logging, setup_logging_from_config


__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "KioskCacheError",
    "ConfigError",
    "StorageError",
    "StorageQuotaExceededError",
    "CorruptEntryError",
    "DataSourceError",
    "OptimizationError",
    "OptimizationInProgressError",
]
