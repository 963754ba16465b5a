"""Per-domain cache policies.

Each data domain (menu, restaurant, categories, ...) carries a priority used
during memory pressure, a refresh threshold, an optional size ceiling and the
invalidation events that clear it. A cache key belongs to a domain when it
equals one of the domain's prefixes or starts with ``prefix + "_"``.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from kioskcache.config.models import HOUR_MS, MINUTE_MS
from kioskcache.core.cache.models import Priority


DEFAULT_POLICY_NAME = "default"


@dataclass(frozen=True)
class CachePolicy:
    """Immutable caching rules for one data domain."""

    priority: Priority
    ttl_ms: int
    max_size_bytes: int | None = None
    invalidation_rules: tuple[str, ...] = ()
    key_prefixes: tuple[str, ...] = ()

    def matches(self, key: str) -> bool:
        """Check whether ``key`` belongs to this policy's domain."""
        return any(
            key == prefix or key.startswith(prefix + "_")
            for prefix in self.key_prefixes
        )

    def is_invalidated_by(self, event: str) -> bool:
        return event in self.invalidation_rules

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "ttl_ms": self.ttl_ms,
            "max_size_bytes": self.max_size_bytes,
            "invalidation_rules": list(self.invalidation_rules),
            "key_prefixes": list(self.key_prefixes),
        }


class PolicyTable(Mapping[str, CachePolicy]):
    """Read-only, ordered mapping of domain name to policy."""

    def __init__(
        self,
        policies: Mapping[str, CachePolicy],
        default: CachePolicy | None = None,
    ) -> None:
        self._policies = MappingProxyType(dict(policies))
        self._default = default or CachePolicy(
            priority=Priority.LOW, ttl_ms=30 * MINUTE_MS
        )

    def __getitem__(self, name: str) -> CachePolicy:
        if name == DEFAULT_POLICY_NAME:
            return self._default
        return self._policies[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._policies)

    def __len__(self) -> int:
        return len(self._policies)

    @property
    def default(self) -> CachePolicy:
        return self._default

    def domain_for(self, key: str) -> str:
        """Name of the first domain matching ``key`` in table order."""
        for name, policy in self._policies.items():
            if policy.matches(key):
                return name
        return DEFAULT_POLICY_NAME

    def policy_for(self, key: str) -> CachePolicy:
        return self[self.domain_for(key)]

    def domains_for_event(self, event: str) -> list[str]:
        return [
            name
            for name, policy in self._policies.items()
            if policy.is_invalidated_by(event)
        ]

    def to_dict(self) -> dict[str, dict[str, Any]]:
        table = {name: policy.to_dict() for name, policy in self._policies.items()}
        table[DEFAULT_POLICY_NAME] = self._default.to_dict()
        return table


DEFAULT_POLICIES = PolicyTable(
    {
        "menu": CachePolicy(
            priority=Priority.HIGH,
            ttl_ms=30 * MINUTE_MS,
            invalidation_rules=("menu_update", "item_update"),
            key_prefixes=("menu",),
        ),
        "restaurant": CachePolicy(
            priority=Priority.HIGH,
            ttl_ms=HOUR_MS,
            invalidation_rules=("restaurant_update",),
            key_prefixes=("restaurant",),
        ),
        "categories": CachePolicy(
            priority=Priority.HIGH,
            ttl_ms=45 * MINUTE_MS,
            invalidation_rules=("category_update", "menu_update"),
            key_prefixes=("categories", "category"),
        ),
        "toppings": CachePolicy(
            priority=Priority.MEDIUM,
            ttl_ms=45 * MINUTE_MS,
            invalidation_rules=("topping_update",),
            key_prefixes=("toppings", "topping"),
        ),
        "images": CachePolicy(
            priority=Priority.MEDIUM,
            ttl_ms=2 * HOUR_MS,
            max_size_bytes=50 * 1024 * 1024,
            key_prefixes=("images", "image"),
        ),
        "auth": CachePolicy(
            priority=Priority.HIGH,
            ttl_ms=24 * HOUR_MS,
            invalidation_rules=("auth_update",),
            key_prefixes=("auth",),
        ),
    }
)
