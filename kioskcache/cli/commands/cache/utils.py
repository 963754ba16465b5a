"""Shared helpers for the cache CLI commands."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer

from kioskcache.adapters import (
    FilesystemImageCache,
    JsonFileDataSource,
    RestDataSource,
)
from kioskcache.config import CacheConfig
from kioskcache.core.cache import CacheStack, create_cache_service, create_cache_stack
from kioskcache.protocols import DataSourceProtocol


T = TypeVar("T")


def get_cache_config(ctx: typer.Context) -> CacheConfig:
    return ctx.obj.cache_config  # type: ignore[no-any-return]


def build_cache_stack(
    ctx: typer.Context, data_source: DataSourceProtocol | None = None
) -> CacheStack:
    """Wire the cache components against the configured cache path.

    The image cache reports the durable store usage together with its own
    blobs, so storage pressure covers both. Both are closed with the command
    context.
    """
    config = get_cache_config(ctx)
    settings = config.settings
    service = create_cache_service(config=config)
    image_cache = FilesystemImageCache(
        settings.cache_path / "images",
        quota_bytes=settings.storage_quota_bytes,
        clock=service.clock,
        extra_usage=service.usage_bytes,
    )
    stack = create_cache_stack(
        service=service, data_source=data_source, image_cache=image_cache
    )
    ctx.call_on_close(stack.close)
    return stack


def create_data_source(source: str, api_key: str | None = None) -> DataSourceProtocol:
    """HTTP(S) sources are REST endpoints, anything else a fixture file."""
    if source.startswith(("http://", "https://")):
        return RestDataSource(source, api_key=api_key)
    return JsonFileDataSource(source)


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def format_size(size_bytes: float) -> str:
    """Format size in human readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} TB"


def format_age(age_ms: int) -> str:
    seconds = age_ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h {seconds % 3600 // 60}m"
    return f"{seconds // 86400}d {seconds % 86400 // 3600}h"
