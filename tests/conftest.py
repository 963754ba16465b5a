"""Core test fixtures for the kioskcache project."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from kioskcache.adapters import StaticNetworkStatus
from kioskcache.config import CacheConfig, CacheSettings
from kioskcache.core.cache import (
    CacheCoordinator,
    CacheService,
    EnhancedCacheManager,
    MemoryKeyValueStore,
    StartupPreloader,
    set_default_coordinator,
)
from tests.fakes import MB, FakeClock, FakeDataSource, FakeImageCache


# ---- Environment isolation ----


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Keep host config files, env vars and cache dirs out of every test."""
    for name in list(os.environ):
        if name.startswith("KIOSKCACHE_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.chdir(tmp_path)

    set_default_coordinator(None)
    yield
    set_default_coordinator(None)


# ---- Base fixtures ----


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_settings(tmp_path: Path) -> CacheSettings:
    return CacheSettings(
        cache_path=tmp_path / "cache", preload_retry_base_delay_ms=0
    )


@pytest.fixture
def cache_config(cache_settings: CacheSettings) -> CacheConfig:
    return CacheConfig(settings=cache_settings)


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore(quota_bytes=10 * MB)


@pytest.fixture
def cache_service(
    memory_store: MemoryKeyValueStore, cache_config: CacheConfig, clock: FakeClock
) -> CacheService:
    return CacheService(memory_store, cache_config, clock=clock)


@pytest.fixture
def image_cache() -> FakeImageCache:
    return FakeImageCache()


@pytest.fixture
def network_status() -> StaticNetworkStatus:
    return StaticNetworkStatus(online=True)


@pytest.fixture
def coordinator(
    cache_service: CacheService,
    cache_config: CacheConfig,
    image_cache: FakeImageCache,
    network_status: StaticNetworkStatus,
    clock: FakeClock,
) -> CacheCoordinator:
    return CacheCoordinator(
        cache_service=cache_service,
        config=cache_config,
        image_cache=image_cache,
        network_status=network_status,
        clock=clock,
    )


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def preloader(
    coordinator: CacheCoordinator, data_source: FakeDataSource
) -> StartupPreloader:
    return StartupPreloader(coordinator, data_source)


@pytest.fixture
def manager(coordinator: CacheCoordinator) -> EnhancedCacheManager:
    return EnhancedCacheManager(coordinator)
