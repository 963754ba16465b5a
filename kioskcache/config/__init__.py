"""Cache configuration for kioskcache."""

from .cache_config import CacheConfig, create_cache_config
from .models import CacheContext, CacheSettings, LoggingConfig


__all__ = [
    "CacheConfig",
    "CacheContext",
    "CacheSettings",
    "LoggingConfig",
    "create_cache_config",
]
