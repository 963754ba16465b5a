"""Tests for cache factory functions and the module-level helpers."""

import asyncio
from unittest.mock import Mock

from kioskcache.adapters import FilesystemImageCache
from kioskcache.config import CacheConfig
from kioskcache.core.cache import (
    DiskKeyValueStore,
    MemoryKeyValueStore,
    create_cache_service,
    create_cache_stack,
    get_cached_data,
    get_default_coordinator,
    invalidate_cache,
    set_cached_data,
    set_default_coordinator,
)
from tests.fakes import FakeClock, FakeDataSource, FakeImageCache


class TestFactories:
    """Test wiring of the cache components."""

    def test_cache_service_uses_disk_store(self, cache_config: CacheConfig):
        service = create_cache_service(config=cache_config)
        try:
            assert isinstance(service.store, DiskKeyValueStore)
            assert service.store.directory == cache_config.settings.cache_path / "store"
        finally:
            service.store.close()

    def test_stack_shares_one_service(
        self, cache_config: CacheConfig, clock: FakeClock
    ):
        stack = create_cache_stack(
            config=cache_config,
            store=MemoryKeyValueStore(),
            image_cache=FakeImageCache(),
            clock=clock,
        )

        assert stack.coordinator.cache_service is stack.service
        assert stack.manager.coordinator is stack.coordinator
        assert stack.preloader is None
        assert stack.coordinator.refresher is None
        assert stack.coordinator.clock is clock

    def test_data_source_becomes_refresher(
        self, cache_config: CacheConfig, clock: FakeClock
    ):
        """Test that the preloader refreshes aging entries when wired in."""
        stack = create_cache_stack(
            config=cache_config,
            store=MemoryKeyValueStore(),
            data_source=FakeDataSource(),
            clock=clock,
        )

        assert stack.preloader is not None
        assert stack.coordinator.refresher == stack.preloader.refresh_key
        assert stack.manager.preloader is stack.preloader

    def test_stack_lifecycle(self, cache_config: CacheConfig):
        stack = create_cache_stack(config=cache_config, store=MemoryKeyValueStore())

        async def scenario():
            stack.start()
            await stack.shutdown()

        asyncio.run(scenario())

    def test_close_releases_store_and_images(self, cache_config: CacheConfig):
        stack = create_cache_stack(config=cache_config, store=MemoryKeyValueStore())
        store = Mock(spec=DiskKeyValueStore)
        images = Mock(spec=FilesystemImageCache)
        stack.service.store = store
        stack.coordinator.image_cache = images

        stack.close()

        store.close.assert_called_once_with()
        images.close.assert_called_once_with()


class TestDefaultCoordinator:
    """Test the process-wide convenience helpers."""

    def test_helpers_use_default_coordinator(
        self, cache_config: CacheConfig, clock: FakeClock
    ):
        stack = create_cache_stack(
            config=cache_config, store=MemoryKeyValueStore(), clock=clock
        )
        set_default_coordinator(stack.coordinator)

        async def scenario():
            await set_cached_data("menu", [1], "rest-1")
            cached = await get_cached_data("menu", "rest-1")
            removed = await invalidate_cache("menu_update", "rest-1")
            return cached, removed

        assert get_default_coordinator() is stack.coordinator
        assert asyncio.run(scenario()) == ([1], 1)

    def test_default_coordinator_is_built_lazily(self):
        """Test that the default coordinator is created once from the defaults."""
        coordinator = get_default_coordinator()
        try:
            assert get_default_coordinator() is coordinator
            assert isinstance(coordinator.cache_service.store, DiskKeyValueStore)
        finally:
            coordinator.cache_service.store.close()
