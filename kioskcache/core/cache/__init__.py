"""Two-tier kiosk cache.

A bounded in-memory tier sits in front of a durable key-value store. The
coordinator adds per-domain policies, event-driven invalidation, memory
pressure eviction and background refresh; the enhanced manager reports
health and runs staged optimizations; the preloader warms the cache when a
kiosk starts.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from kioskcache.config.cache_config import CacheConfig, create_cache_config
from kioskcache.core.cache.cache_service import CacheService
from kioskcache.core.cache.coordinator import CacheCoordinator
from kioskcache.core.cache.enhanced_manager import EnhancedCacheManager
from kioskcache.core.cache.memory_tier import MemoryTier
from kioskcache.core.cache.models import (
    CacheEntry,
    CacheHealth,
    CacheMetrics,
    EntryState,
    MemoryPressure,
    OptimizationResult,
    PreloadResult,
    Priority,
    StorageEstimate,
)
from kioskcache.core.cache.policies import DEFAULT_POLICIES, CachePolicy, PolicyTable
from kioskcache.core.cache.preloader import StartupPreloader
from kioskcache.core.cache.storage import (
    DiskKeyValueStore,
    KeyValueStoreProtocol,
    MemoryKeyValueStore,
)
from kioskcache.core.clock import ClockProtocol


if TYPE_CHECKING:
    from kioskcache.protocols.data_source_protocol import DataSourceProtocol
    from kioskcache.protocols.image_cache_protocol import ImageCacheProtocol
    from kioskcache.protocols.network_status_protocol import NetworkStatusProtocol


@dataclass
class CacheStack:
    """Wired set of cache components sharing one service and config."""

    config: CacheConfig
    service: CacheService
    coordinator: CacheCoordinator
    manager: EnhancedCacheManager
    preloader: StartupPreloader | None = None

    def start(self) -> None:
        """Arm the periodic optimizations on the running loop."""
        self.coordinator.start()
        self.manager.start()

    async def shutdown(self) -> None:
        await self.manager.shutdown()
        await self.coordinator.shutdown()

    def close(self) -> None:
        """Release the durable store and image cache handles."""
        for resource in (self.service.store, self.coordinator.image_cache):
            close = getattr(resource, "close", None)
            if close is not None:
                close()


def create_disk_store(config: CacheConfig) -> DiskKeyValueStore:
    """Create the durable store under the configured cache path."""
    settings = config.settings
    return DiskKeyValueStore(
        settings.cache_path / "store", quota_bytes=settings.storage_quota_bytes
    )


def create_cache_service(
    config: CacheConfig | None = None,
    store: KeyValueStoreProtocol | None = None,
    clock: ClockProtocol | None = None,
) -> CacheService:
    """Create a cache service.

    Args:
        config: Cache configuration, loaded from the usual sources when omitted
        store: Durable store, a DiskCache store under ``cache_path`` by default
        clock: Time source

    Returns:
        Configured cache service
    """
    config = config or create_cache_config()
    return CacheService(
        store=store if store is not None else create_disk_store(config),
        config=config,
        clock=clock,
    )


def create_cache_stack(
    config: CacheConfig | None = None,
    store: KeyValueStoreProtocol | None = None,
    data_source: "DataSourceProtocol | None" = None,
    image_cache: "ImageCacheProtocol | None" = None,
    network_status: "NetworkStatusProtocol | None" = None,
    clock: ClockProtocol | None = None,
    policies: PolicyTable = DEFAULT_POLICIES,
    service: CacheService | None = None,
) -> CacheStack:
    """Create a coordinator, manager and optional preloader around one service.

    When a data source is given, the preloader also becomes the coordinator's
    background refresher.
    """
    if service is not None:
        config = service.config
    else:
        config = config or create_cache_config()
        service = create_cache_service(config=config, store=store, clock=clock)
    coordinator = CacheCoordinator(
        cache_service=service,
        config=config,
        image_cache=image_cache,
        network_status=network_status,
        policies=policies,
        clock=service.clock,
    )

    preloader = None
    if data_source is not None:
        preloader = StartupPreloader(coordinator, data_source)
        coordinator.set_refresher(preloader.refresh_key)

    manager = EnhancedCacheManager(coordinator, preloader=preloader)
    return CacheStack(
        config=config,
        service=service,
        coordinator=coordinator,
        manager=manager,
        preloader=preloader,
    )


_default_coordinator: CacheCoordinator | None = None


def get_default_coordinator() -> CacheCoordinator:
    """Process-wide coordinator built from the default configuration."""
    global _default_coordinator
    if _default_coordinator is None:
        _default_coordinator = create_cache_stack().coordinator
    return _default_coordinator


def set_default_coordinator(coordinator: CacheCoordinator | None) -> None:
    """Replace the process-wide coordinator; None resets it."""
    global _default_coordinator
    _default_coordinator = coordinator


async def get_cached_data(key: str, restaurant_id: str, is_admin: bool = False) -> Any:
    return await get_default_coordinator().get(key, restaurant_id, is_admin)


async def set_cached_data(
    key: str, data: Any, restaurant_id: str, is_admin: bool = False
) -> bool:
    return await get_default_coordinator().set(key, data, restaurant_id, is_admin)


async def invalidate_cache(
    event: str, restaurant_id: str, metadata: dict[str, Any] | None = None
) -> int:
    return await get_default_coordinator().invalidate(event, restaurant_id, metadata)


__all__ = [
    # Components
    "CacheService",
    "CacheCoordinator",
    "EnhancedCacheManager",
    "StartupPreloader",
    "MemoryTier",
    "CacheStack",
    # Stores
    "KeyValueStoreProtocol",
    "DiskKeyValueStore",
    "MemoryKeyValueStore",
    # Policies
    "CachePolicy",
    "PolicyTable",
    "DEFAULT_POLICIES",
    # Models
    "CacheEntry",
    "CacheHealth",
    "CacheMetrics",
    "EntryState",
    "MemoryPressure",
    "OptimizationResult",
    "PreloadResult",
    "Priority",
    "StorageEstimate",
    # Factories
    "create_disk_store",
    "create_cache_service",
    "create_cache_stack",
    "get_default_coordinator",
    "set_default_coordinator",
    # Convenience
    "get_cached_data",
    "set_cached_data",
    "invalidate_cache",
]
