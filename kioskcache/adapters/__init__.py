"""Concrete collaborators for the cache layer."""

from kioskcache.adapters.image_cache_adapter import (
    FilesystemImageCache,
    ImageCacheStats,
    NullImageCache,
)
from kioskcache.adapters.json_data_source import JsonFileDataSource
from kioskcache.adapters.network_status_adapter import (
    HttpNetworkStatus,
    StaticNetworkStatus,
)
from kioskcache.adapters.rest_data_source import RestDataSource


__all__ = [
    "FilesystemImageCache",
    "HttpNetworkStatus",
    "ImageCacheStats",
    "JsonFileDataSource",
    "NullImageCache",
    "RestDataSource",
    "StaticNetworkStatus",
]
