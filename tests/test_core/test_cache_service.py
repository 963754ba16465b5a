"""Tests for the two-tier cache service."""

import json
import threading

from kioskcache.config import CacheConfig, CacheSettings
from kioskcache.config.models import CacheContext
from kioskcache.core.cache import CacheService, MemoryKeyValueStore, MemoryTier
from tests.fakes import FakeClock


DAY_MS = 24 * 60 * 60 * 1000


class TestKeys:
    """Test physical key layout."""

    def test_physical_key(self, cache_service: CacheService):
        physical_key = cache_service.physical_key("menu", "rest-1")
        assert physical_key == "kiosk_cache_rest-1_menu"
        assert cache_service.tenant_prefix("rest-1") == "kiosk_cache_rest-1_"

    def test_split_physical_key(self, cache_service: CacheService):
        """Test splitting with and without a known tenant."""
        assert cache_service.split_physical_key("kiosk_cache_rest-1_menu_item_5") == (
            "rest-1",
            "menu_item_5",
        )
        assert cache_service.split_physical_key(
            "kiosk_cache_rest-1_menu", "rest-1"
        ) == ("rest-1", "menu")
        assert cache_service.split_physical_key(
            "kiosk_cache_rest-1_menu", "rest-2"
        ) == (None, None)
        assert cache_service.split_physical_key("other_key") == (None, None)


class TestGetSet:
    """Test reads, writes and the hard TTL."""

    def test_set_then_get(self, cache_service: CacheService):
        """Test that a stored payload is returned."""
        assert cache_service.set("menu", {"items": [1, 2]}, "rest-1") is True
        assert cache_service.get("menu", "rest-1") == {"items": [1, 2]}

    def test_persisted_envelope(
        self,
        cache_service: CacheService,
        memory_store: MemoryKeyValueStore,
        clock: FakeClock,
    ):
        """Test that the durable store holds the JSON envelope."""
        cache_service.set("menu", [1], "rest-1")
        raw = memory_store.get("kiosk_cache_rest-1_menu")
        assert raw is not None
        assert json.loads(raw) == {"data": [1], "timestamp": clock.now_ms()}

    def test_refresh_count_increments(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that overwrites count refreshes starting at one."""
        cache_service.set("menu", 1, "rest-1")
        cache_service.set("menu", 2, "rest-1")
        entry = cache_service.peek("menu", "rest-1")
        assert entry is not None
        assert entry.refresh_count == 1

        cache_service.set("menu", 3, "rest-1")
        raw = memory_store.get("kiosk_cache_rest-1_menu")
        assert raw is not None
        assert json.loads(raw)["refreshCount"] == 2

    def test_ttl_boundary(
        self,
        cache_service: CacheService,
        memory_store: MemoryKeyValueStore,
        clock: FakeClock,
    ):
        """Test that an entry exactly at the TTL is served and one past it is not."""
        cache_service.set("menu", "data", "rest-1")

        clock.advance(DAY_MS)
        assert cache_service.get("menu", "rest-1") == "data"

        clock.advance(1)
        assert cache_service.get("menu", "rest-1") is None
        assert memory_store.get("kiosk_cache_rest-1_menu") is None
        assert cache_service.peek("menu", "rest-1") is None

    def test_missing_key(self, cache_service: CacheService):
        assert cache_service.get("menu", "rest-1") is None

    def test_corrupt_entry_is_removed(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that unreadable envelopes count as misses and are deleted."""
        memory_store.set("kiosk_cache_rest-1_menu", "{broken")
        assert cache_service.get("menu", "rest-1") is None
        assert memory_store.get("kiosk_cache_rest-1_menu") is None

    def test_unserializable_payload(self, cache_service: CacheService):
        """Test that an unserializable payload stays in the memory tier only."""
        payload = {"ratio": complex(1, 2)}
        assert cache_service.set("menu", payload, "rest-1") is True

        cached = cache_service.get("menu", "rest-1")
        assert cached == payload
        assert cached is not payload
        assert list(cache_service.scan()) == []

    def test_uncopyable_payload_is_rejected(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that a payload neither tier can hold drops the old entry."""
        cache_service.set("menu", "old", "rest-1")

        payload = {"lock": threading.Lock()}
        assert cache_service.set("menu", payload, "rest-1") is False
        assert cache_service.get("menu", "rest-1") is None
        assert memory_store.get("kiosk_cache_rest-1_menu") is None

    def test_caller_changes_after_set_are_not_cached(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that mutating the stored object does not change the entry."""
        menu = [{"id": "item-1", "price": 10}]
        cache_service.set("menu", menu, "rest-1")
        menu[0]["price"] = 99

        assert cache_service.get("menu", "rest-1") == [{"id": "item-1", "price": 10}]
        raw = memory_store.get("kiosk_cache_rest-1_menu")
        assert raw is not None
        assert json.loads(raw)["data"] == [{"id": "item-1", "price": 10}]

    def test_changes_to_returned_payload_are_not_cached(
        self, cache_service: CacheService
    ):
        """Test that every read hands out its own copy."""
        cache_service.set("menu", {"items": [1]}, "rest-1")

        first = cache_service.get("menu", "rest-1")
        first["items"].append(2)

        assert cache_service.get("menu", "rest-1") == {"items": [1]}

    def test_memory_tier_evicts_oldest_write_despite_reads(
        self,
        memory_store: MemoryKeyValueStore,
        cache_config: CacheConfig,
        clock: FakeClock,
    ):
        """Test that cache hits do not reorder the in-memory tier."""
        service = CacheService(
            memory_store, cache_config, clock=clock, memory_tier=MemoryTier(2)
        )
        service.set("menu", 1, "rest-1")
        service.set("auth", 2, "rest-1")
        assert service.get("menu", "rest-1") == 1
        service.set("categories", 3, "rest-1")

        assert list(service.memory_tier.keys()) == [
            "kiosk_cache_rest-1_auth",
            "kiosk_cache_rest-1_categories",
        ]
        assert service.get("menu", "rest-1") == 1

    def test_quota_failure_served_from_memory(
        self, cache_config: CacheConfig, clock: FakeClock
    ):
        """Test that a full durable store still serves the session from memory."""
        store = MemoryKeyValueStore(quota_bytes=10)
        service = CacheService(store, cache_config, clock=clock)

        assert service.set("menu", "x" * 100, "rest-1") is True
        assert len(store) == 0
        assert service.get("menu", "rest-1") == "x" * 100

    def test_durable_entry_promoted_to_memory(
        self,
        cache_service: CacheService,
        memory_store: MemoryKeyValueStore,
        cache_config: CacheConfig,
        clock: FakeClock,
    ):
        """Test that a fresh service reads persisted entries and promotes them."""
        cache_service.set("menu", "persisted", "rest-1")

        restarted = CacheService(memory_store, cache_config, clock=clock)
        assert "kiosk_cache_rest-1_menu" not in restarted.memory_tier
        assert restarted.get("menu", "rest-1") == "persisted"
        assert "kiosk_cache_rest-1_menu" in restarted.memory_tier

    def test_disabled_memory_tier(
        self,
        memory_store: MemoryKeyValueStore,
        cache_config: CacheConfig,
        clock: FakeClock,
    ):
        service = CacheService(
            memory_store, cache_config, clock=clock, memory_tier=MemoryTier(0)
        )
        service.set("menu", 1, "rest-1")
        assert len(service.memory_tier) == 0
        assert service.get("menu", "rest-1") == 1


class TestContextGate:
    """Test the per-context caching switches."""

    def test_admin_disabled_by_default(self, cache_service: CacheService):
        """Test that admin reads and writes bypass the cache."""
        assert cache_service.set("menu", 1, "rest-1", CacheContext.ADMIN) is False
        assert cache_service.get("menu", "rest-1", CacheContext.ADMIN) is None

        cache_service.set("menu", 1, "rest-1", CacheContext.KIOSK)
        assert cache_service.get("menu", "rest-1", "admin") is None
        assert cache_service.get("menu", "rest-1", "kiosk") == 1

    def test_master_switch(self, memory_store: MemoryKeyValueStore, clock: FakeClock):
        """Test that the master switch disables every context."""
        config = CacheConfig(settings=CacheSettings(enable_caching=False))
        service = CacheService(memory_store, config, clock=clock)

        assert service.set("menu", 1, "rest-1") is False
        assert len(memory_store) == 0
        assert service.get("menu", "rest-1") is None


class TestTenantIsolation:
    """Test that tenants never see each other's data."""

    def test_prefix_sharing_tenants(self, cache_service: CacheService):
        """Test that clearing rest-1 keeps rest-10 intact."""
        cache_service.set("menu", "one", "rest-1")
        cache_service.set("menu", "ten", "rest-10")

        assert cache_service.get("menu", "rest-1") == "one"
        assert cache_service.get("menu", "rest-10") == "ten"

        assert cache_service.clear("rest-1") == 1
        assert cache_service.get("menu", "rest-10") == "ten"

    def test_scan_by_tenant(self, cache_service: CacheService):
        cache_service.set("menu", 1, "rest-1")
        cache_service.set("auth", 2, "rest-1")
        cache_service.set("menu", 3, "rest-10")

        keys = sorted(s.domain_key for s in cache_service.scan("rest-1"))
        assert keys == ["auth", "menu"]
        assert len(list(cache_service.scan())) == 3


class TestClear:
    """Test clearing entries."""

    def test_clear_specific_key(self, cache_service: CacheService):
        cache_service.set("menu", 1, "rest-1")
        cache_service.set("auth", 2, "rest-1")

        assert cache_service.clear("rest-1", "menu") == 1
        assert cache_service.clear("rest-1", "menu") == 0
        assert cache_service.get("auth", "rest-1") == 2

    def test_clear_ignores_foreign_keys(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that keys outside the namespace are untouched."""
        memory_store.set("unrelated", "value")
        cache_service.set("menu", 1, "rest-1")

        assert cache_service.clear("rest-1") == 1
        assert memory_store.get("unrelated") == "value"

    def test_clear_matching_counts_bytes(
        self, cache_service: CacheService, memory_store: MemoryKeyValueStore
    ):
        """Test that bulk removal reports freed bytes."""
        cache_service.set("menu", 1, "rest-1")
        cache_service.set("auth", 2, "rest-1")
        menu_raw = memory_store.get("kiosk_cache_rest-1_menu")
        assert menu_raw is not None

        result = cache_service.clear_matching(lambda s: s.domain_key == "menu")

        assert result.entries == 1
        assert result.bytes == len(menu_raw)
        assert memory_store.get("kiosk_cache_rest-1_menu") is None
        assert cache_service.get("menu", "rest-1") is None

    def test_usage_bytes(self, cache_service: CacheService):
        assert cache_service.usage_bytes() == 0
        cache_service.set("menu", 1, "rest-1")
        assert cache_service.usage_bytes() > 0
