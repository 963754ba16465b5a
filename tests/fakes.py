"""Test doubles for the cache collaborators."""

import asyncio
from typing import Any

from kioskcache.core.cache import MemoryKeyValueStore, StorageEstimate
from kioskcache.core.errors import DataSourceError


MB = 1024 * 1024


class FakeClock:
    """Manually advanced clock in epoch milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.current_ms = start_ms

    def now_ms(self) -> int:
        return self.current_ms

    def advance(self, ms: int) -> None:
        self.current_ms += ms


class CountingStore(MemoryKeyValueStore):
    """In-memory store counting value reads."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self.reads = 0

    def get(self, key: str) -> str | None:
        self.reads += 1
        return super().get(key)


class FakeImageCache:
    """Image cache with settable storage usage.

    When ``gate`` is set, storage estimates wait for it, which lets tests hold
    an optimization pass in flight. Images are never downloaded; requested
    URLs are recorded in ``cached``.
    """

    def __init__(self, used: int = 0, quota: int = 10 * MB) -> None:
        self.used = used
        self.quota = quota
        self.cleanup_calls = 0
        self.cleanup_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.cached: list[tuple[str, str]] = []
        self.image_errors: dict[str, Exception] = {}

    def cache_image(self, url: str, restaurant_id: str) -> bool:
        if url in self.image_errors:
            raise self.image_errors[url]
        self.cached.append((url, restaurant_id))
        return True

    def cleanup_image_cache(self) -> int:
        self.cleanup_calls += 1
        if self.cleanup_error is not None:
            raise self.cleanup_error
        return 0

    async def get_storage_estimate(self) -> StorageEstimate:
        if self.gate is not None:
            await self.gate.wait()
        return StorageEstimate(used=self.used, quota=self.quota)


RESTAURANT = {"id": "rest-1", "slug": "pizza-place", "name": "Pizza Place"}

MENU_CATEGORIES = {
    "rest-1": [
        {"id": "cat-b", "name": "Drinks", "display_order": 2},
        {"id": "cat-a", "name": "Pizzas", "display_order": 1},
    ]
}

MENU_ITEMS = {
    "cat-a": [
        {"id": "item-2", "name": "Diavola", "display_order": 2},
        {"id": "item-1", "name": "Margherita", "display_order": 1},
    ],
    "cat-b": [{"id": "item-3", "name": "Lemonade", "display_order": 1}],
}

TOPPING_CATEGORIES = {"rest-1": [{"id": "tc-1", "name": "Cheese", "display_order": 1}]}

TOPPINGS = {
    "tc-1": [
        {"id": "top-2", "name": "Gorgonzola", "display_order": 2},
        {"id": "top-1", "name": "Mozzarella", "display_order": 1},
    ]
}


class FakeDataSource:
    """In-memory data source recording every call.

    Each fetch yields to the event loop once so concurrent preloads interleave.
    Method names listed in ``failing`` raise ``DataSourceError``, those in
    ``errors`` raise the given exception, and ``flaky`` counts down failures
    before a method starts answering. ``extra_fields`` is merged into the
    records with a matching id.
    """

    def __init__(self) -> None:
        self.calls: dict[str, list[str]] = {}
        self.failing: set[str] = set()
        self.errors: dict[str, Exception] = {}
        self.flaky: dict[str, int] = {}
        self.extra_fields: dict[str, dict[str, Any]] = {}

    async def _record(self, method: str, arg: str) -> None:
        self.calls.setdefault(method, []).append(arg)
        await asyncio.sleep(0)
        if method in self.errors:
            raise self.errors[method]
        if self.flaky.get(method, 0) > 0:
            self.flaky[method] -= 1
            raise DataSourceError(f"{method} flaked for {arg}", status_code=502)
        if method in self.failing:
            raise DataSourceError(f"{method} failed for {arg}", status_code=503)

    def _with_extra(self, record: dict[str, Any]) -> dict[str, Any]:
        return {**record, **self.extra_fields.get(record["id"], {})}

    def call_count(self, method: str) -> int:
        return len(self.calls.get(method, []))

    async def fetch_restaurant_by_slug(self, slug: str) -> dict[str, Any] | None:
        await self._record("fetch_restaurant_by_slug", slug)
        return self._with_extra(RESTAURANT) if slug == RESTAURANT["slug"] else None

    async def fetch_menu_categories(self, restaurant_id: str) -> list[dict[str, Any]]:
        await self._record("fetch_menu_categories", restaurant_id)
        return [dict(c) for c in MENU_CATEGORIES.get(restaurant_id, [])]

    async def fetch_menu_items(self, category_id: str) -> list[dict[str, Any]]:
        await self._record("fetch_menu_items", category_id)
        return [self._with_extra(i) for i in MENU_ITEMS.get(category_id, [])]

    async def fetch_topping_categories(
        self, restaurant_id: str
    ) -> list[dict[str, Any]]:
        await self._record("fetch_topping_categories", restaurant_id)
        return [dict(c) for c in TOPPING_CATEGORIES.get(restaurant_id, [])]

    async def fetch_toppings(self, category_id: str) -> list[dict[str, Any]]:
        await self._record("fetch_toppings", category_id)
        return [dict(t) for t in TOPPINGS.get(category_id, [])]

