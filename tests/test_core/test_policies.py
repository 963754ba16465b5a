"""Tests for the per-domain cache policy table."""

import dataclasses

import pytest

from kioskcache.config.models import MINUTE_MS
from kioskcache.core.cache import DEFAULT_POLICIES, CachePolicy, PolicyTable, Priority


class TestPolicyLookup:
    """Test mapping cache keys to domains."""

    @pytest.mark.parametrize(
        ("key", "domain"),
        [
            ("menu", "menu"),
            ("menu_item_1", "menu"),
            ("restaurant", "restaurant"),
            ("categories", "categories"),
            ("category_7", "categories"),
            ("toppings_abc", "toppings"),
            ("topping_categories", "toppings"),
            ("image_logo", "images"),
            ("auth", "auth"),
            ("menus", "default"),
            ("settings", "default"),
        ],
    )
    def test_domain_for(self, key: str, domain: str):
        """Test that keys resolve to the domain of their prefix."""
        assert DEFAULT_POLICIES.domain_for(key) == domain

    def test_unknown_key_uses_default_policy(self):
        """Test that the default policy is low priority with a 30 minute TTL."""
        policy = DEFAULT_POLICIES.policy_for("whatever")
        assert policy is DEFAULT_POLICIES.default
        assert policy.priority == Priority.LOW
        assert policy.ttl_ms == 30 * MINUTE_MS

    def test_default_policies(self):
        """Test the shipped policy values."""
        assert list(DEFAULT_POLICIES) == [
            "menu",
            "restaurant",
            "categories",
            "toppings",
            "images",
            "auth",
        ]
        assert DEFAULT_POLICIES["images"].max_size_bytes == 50 * 1024 * 1024
        assert DEFAULT_POLICIES["toppings"].priority == Priority.MEDIUM
        assert DEFAULT_POLICIES["auth"].ttl_ms == 24 * 60 * MINUTE_MS


class TestInvalidationRules:
    """Test event to domain resolution."""

    def test_menu_update_hits_menu_and_categories(self):
        assert DEFAULT_POLICIES.domains_for_event("menu_update") == [
            "menu",
            "categories",
        ]

    def test_unknown_event(self):
        assert DEFAULT_POLICIES.domains_for_event("nothing_happened") == []


class TestImmutability:
    """Test that policies cannot be changed at runtime."""

    def test_policy_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_POLICIES["menu"].ttl_ms = 1  # type: ignore[misc]

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_POLICIES["menu"] = CachePolicy(  # type: ignore[index]
                priority=Priority.LOW, ttl_ms=1
            )

    def test_source_mapping_is_copied(self):
        """Test that mutating the source mapping does not change the table."""
        source = {"menu": CachePolicy(priority=Priority.HIGH, ttl_ms=1)}
        table = PolicyTable(source)
        source["extra"] = CachePolicy(priority=Priority.LOW, ttl_ms=1)
        assert list(table) == ["menu"]

    def test_to_dict_includes_default(self):
        table = DEFAULT_POLICIES.to_dict()
        assert table["default"]["priority"] == "low"
        assert table["menu"]["invalidation_rules"] == ["menu_update", "item_update"]
