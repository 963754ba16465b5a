"""Startup preloading of kiosk data into the cache."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any, TypeVar

from kioskcache.core.cache.coordinator import CacheCoordinator
from kioskcache.core.cache.models import PreloadProgress, PreloadResult


if TYPE_CHECKING:
    from kioskcache.protocols.data_source_protocol import DataSourceProtocol
    from kioskcache.protocols.image_cache_protocol import ImageCacheProtocol


logger = logging.getLogger(__name__)

T = TypeVar("T")

RESTAURANT_KEY = "restaurant"
CATEGORIES_KEY = "categories"
MENU_ITEM_PREFIX = "menu_item_"
CATEGORY_PREFIX = "category_"
TOPPING_CATEGORIES_KEY = "topping_categories"
TOPPINGS_PREFIX = "toppings_"
IMAGES_STAGE = "images"

PRELOAD_STEPS = 4

PreloadSubscriber = Callable[[PreloadProgress], None]


def _by_display_order(record: dict[str, Any]) -> Any:
    return record.get("display_order") or 0


def _with_ids(records: list[Any], what: str) -> list[dict[str, Any]]:
    valid = [r for r in records if isinstance(r, dict) and r.get("id") is not None]
    if len(valid) != len(records):
        logger.warning("Skipping %d %s without an id", len(records) - len(valid), what)
    return valid


class StartupPreloader:
    """Fetches a tenant's restaurant, menu and toppings and caches them.

    Reads are cached-first unless forced. Concurrent preloads of the same
    tenant share a single task. The restaurant record is cached under its
    slug, everything else under the restaurant id.

    Every fetch is retried with exponential backoff and then degrades to an
    empty result, so a failing data source never aborts kiosk startup. No
    preload starts while the coordinator reports the network offline.
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        data_source: "DataSourceProtocol",
        image_cache: "ImageCacheProtocol | None" = None,
    ) -> None:
        """Initialize the preloader.

        Args:
            coordinator: Coordinator the fetched data is written through
            data_source: Backend the records are read from
            image_cache: Image store for precaching, the coordinator's by default
        """
        self.coordinator = coordinator
        self.data_source = data_source
        self.config = coordinator.config
        self.image_cache = (
            image_cache if image_cache is not None else coordinator.image_cache
        )
        self._subscribers: list[PreloadSubscriber] = []
        self._inflight: dict[str, asyncio.Task[PreloadResult]] = {}
        self._refreshes: dict[tuple[str, str], asyncio.Task[Any]] = {}
        self._slugs: dict[str, str] = {}

    def subscribe(self, callback: PreloadSubscriber) -> Callable[[], None]:
        """Register a progress callback.

        Returns:
            Callable removing the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def is_preloading(self, restaurant_id: str) -> bool:
        task = self._inflight.get(restaurant_id)
        return task is not None and not task.done()

    def retry_delay_seconds(self, attempt: int) -> float:
        """Backoff before retry number ``attempt``, counted from 1."""
        settings = self.config.settings
        delay_ms = min(
            settings.preload_retry_base_delay_ms * 2 ** (attempt - 1),
            settings.preload_retry_max_delay_ms,
        )
        return delay_ms / 1000

    async def preload_restaurant_data(
        self,
        restaurant_id: str,
        slug: str,
        force: bool = False,
        skip_images: bool = False,
    ) -> PreloadResult:
        """Preload everything a kiosk needs for ``restaurant_id``.

        Returns an empty result when kiosk preloading is disabled, the network
        is offline or the restaurant itself cannot be fetched.
        """
        if not self.config.should_preload_on_kiosk_init():
            logger.debug("Preloading disabled by configuration")
            return PreloadResult()
        if self._is_offline(restaurant_id):
            return PreloadResult()

        self._slugs[restaurant_id] = slug
        return await self._run_shared(restaurant_id, slug, force, skip_images)

    async def refresh_restaurant_data(
        self, restaurant_id: str, slug: str | None = None
    ) -> PreloadResult:
        """Refetch the tenant's data, bypassing cached values."""
        if self._is_offline(restaurant_id):
            return PreloadResult()
        return await self._run_shared(
            restaurant_id, slug or self._slugs.get(restaurant_id), force=True
        )

    async def force_refresh(self, restaurant_id: str) -> PreloadResult:
        """Drop the tenant's cached data and fetch it again.

        The restaurant record is only refetched when its slug is known from an
        earlier preload. Nothing is dropped while offline.
        """
        if self._is_offline(restaurant_id):
            return PreloadResult()

        slug = self._slugs.get(restaurant_id)
        cache_service = self.coordinator.cache_service
        cleared = cache_service.clear(restaurant_id)
        if slug is not None:
            cleared += cache_service.clear(slug, RESTAURANT_KEY)
        logger.info("Force refresh of %s cleared %d entries", restaurant_id, cleared)
        return await self._run_shared(restaurant_id, slug, force=True)

    async def refresh_key(self, key: str, restaurant_id: str) -> None:
        """Refetch the data group behind a single cache key.

        Used as the coordinator's background refresher. Keys of the same
        group and tenant share one refetch while it runs.
        """
        loader: Callable[..., Coroutine[Any, Any, Any]]
        if key == RESTAURANT_KEY:
            group, loader = RESTAURANT_KEY, self._preload_restaurant
        elif key == CATEGORIES_KEY or key.startswith(
            (MENU_ITEM_PREFIX, CATEGORY_PREFIX)
        ):
            group, loader = CATEGORIES_KEY, self._preload_menu_categories
        elif key == TOPPING_CATEGORIES_KEY or key.startswith(TOPPINGS_PREFIX):
            group, loader = TOPPING_CATEGORIES_KEY, self._preload_topping_categories
        else:
            logger.debug("No refresh source for cache key %s", key)
            return

        pair = (group, restaurant_id)
        task = self._refreshes.get(pair)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                loader(restaurant_id, force=True)
            )
            self._refreshes[pair] = task
        else:
            logger.debug("Joining running %s refresh for %s", group, restaurant_id)
        try:
            await task
        finally:
            if self._refreshes.get(pair) is task and task.done():
                del self._refreshes[pair]

    def _is_offline(self, restaurant_id: str) -> bool:
        if self.coordinator.is_online():
            return False
        logger.warning("Network offline, not preloading %s", restaurant_id)
        self._notify(
            PreloadProgress(
                restaurant_id,
                "offline",
                PRELOAD_STEPS,
                PRELOAD_STEPS,
                ["Network is offline"],
            )
        )
        return True

    async def _run_shared(
        self,
        restaurant_id: str,
        slug: str | None,
        force: bool,
        skip_images: bool = False,
    ) -> PreloadResult:
        task = self._inflight.get(restaurant_id)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._perform_preload(restaurant_id, slug, force, skip_images)
            )
            self._inflight[restaurant_id] = task
        try:
            return await task
        finally:
            if self._inflight.get(restaurant_id) is task and task.done():
                del self._inflight[restaurant_id]

    async def _perform_preload(
        self,
        restaurant_id: str,
        slug: str | None,
        force: bool,
        skip_images: bool,
    ) -> PreloadResult:
        logger.info("Preloading data for restaurant %s (%s)", restaurant_id, slug)
        errors: list[str] = []
        total = PRELOAD_STEPS

        restaurant = None
        if slug is not None:
            self._notify(PreloadProgress(restaurant_id, RESTAURANT_KEY, 0, total))
            restaurant = await self._preload_restaurant(slug, force)
            if restaurant is None:
                errors.append(f"Restaurant {slug} could not be loaded")
                self._notify(
                    PreloadProgress(restaurant_id, "failed", total, total, errors)
                )
                return PreloadResult()

        self._notify(PreloadProgress(restaurant_id, CATEGORIES_KEY, 1, total))
        categories = await self._preload_menu_categories(restaurant_id, force)

        self._notify(PreloadProgress(restaurant_id, TOPPING_CATEGORIES_KEY, 2, total))
        topping_categories = await self._preload_topping_categories(
            restaurant_id, force
        )

        images_cached = 0
        if (
            not skip_images
            and self.config.settings.preload_images
            and self.image_cache is not None
        ):
            self._notify(PreloadProgress(restaurant_id, IMAGES_STAGE, 3, total))
            images_cached = await self._precache_images(
                restaurant_id, restaurant, categories
            )

        self._notify(PreloadProgress(restaurant_id, "complete", total, total, errors))
        logger.info(
            "Preloading complete for %s: %d categories, %d topping categories, "
            "%d images",
            restaurant_id,
            len(categories),
            len(topping_categories),
            images_cached,
        )
        return PreloadResult(
            restaurant=restaurant,
            categories=categories,
            topping_categories=topping_categories,
            images_cached=images_cached,
        )

    async def _fetch(self, what: str, fetch: Callable[[], Awaitable[T]]) -> T | None:
        """Run ``fetch`` with retries; returns None once every attempt failed."""
        attempts = self.config.settings.preload_max_retries + 1
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.retry_delay_seconds(attempt - 1))
                if not self.coordinator.is_online():
                    logger.warning("Lost network connection while fetching %s", what)
                    return None
            try:
                return await fetch()
            except Exception as e:
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s",
                    what,
                    attempt,
                    attempts,
                    e,
                )
        logger.error("Giving up on %s after %d attempts", what, attempts)
        return None

    async def _preload_restaurant(
        self, slug: str, force: bool = False
    ) -> dict[str, Any] | None:
        if not force:
            cached = await self.coordinator.get(RESTAURANT_KEY, slug)
            if cached:
                return cached  # type: ignore[no-any-return]

        restaurant = await self._fetch(
            f"restaurant {slug}",
            lambda: self.data_source.fetch_restaurant_by_slug(slug),
        )
        if not restaurant:
            logger.warning("Restaurant %s not available", slug)
            return None

        await self.coordinator.set(RESTAURANT_KEY, restaurant, slug)
        return restaurant

    async def _preload_menu_categories(
        self, restaurant_id: str, force: bool = False
    ) -> list[dict[str, Any]]:
        if not force:
            cached = await self.coordinator.get(CATEGORIES_KEY, restaurant_id)
            if cached:
                return cached  # type: ignore[no-any-return]

        fetched = await self._fetch(
            f"menu categories of {restaurant_id}",
            lambda: self.data_source.fetch_menu_categories(restaurant_id),
        )
        if fetched is None:
            return []
        categories = _with_ids(fetched, "menu categories")

        item_lists = await asyncio.gather(
            *(self._fetch_menu_items(str(c["id"])) for c in categories)
        )

        result = []
        for category, items in zip(categories, item_lists, strict=True):
            items = sorted(items, key=_by_display_order)
            for item in items:
                await self.coordinator.set(
                    f"{MENU_ITEM_PREFIX}{item['id']}", item, restaurant_id
                )
            result.append({**category, "items": items})

        result.sort(key=_by_display_order)
        await self.coordinator.set(CATEGORIES_KEY, result, restaurant_id)
        return result

    async def _fetch_menu_items(self, category_id: str) -> list[dict[str, Any]]:
        items = await self._fetch(
            f"items of category {category_id}",
            lambda: self.data_source.fetch_menu_items(category_id),
        )
        return _with_ids(items or [], "menu items")

    async def _preload_topping_categories(
        self, restaurant_id: str, force: bool = False
    ) -> list[dict[str, Any]]:
        if not force:
            cached = await self.coordinator.get(TOPPING_CATEGORIES_KEY, restaurant_id)
            if cached:
                return cached  # type: ignore[no-any-return]

        fetched = await self._fetch(
            f"topping categories of {restaurant_id}",
            lambda: self.data_source.fetch_topping_categories(restaurant_id),
        )
        if fetched is None:
            return []
        categories = _with_ids(fetched, "topping categories")

        topping_lists = await asyncio.gather(
            *(self._fetch_toppings(str(c["id"])) for c in categories)
        )

        result = []
        for category, toppings in zip(categories, topping_lists, strict=True):
            toppings = sorted(toppings, key=_by_display_order)
            await self.coordinator.set(
                f"{TOPPINGS_PREFIX}{category['id']}", toppings, restaurant_id
            )
            result.append({**category, "toppings": toppings})

        result.sort(key=_by_display_order)
        await self.coordinator.set(TOPPING_CATEGORIES_KEY, result, restaurant_id)
        return result

    async def _fetch_toppings(self, category_id: str) -> list[dict[str, Any]]:
        toppings = await self._fetch(
            f"toppings of category {category_id}",
            lambda: self.data_source.fetch_toppings(category_id),
        )
        return _with_ids(toppings or [], "toppings")

    async def _precache_images(
        self,
        restaurant_id: str,
        restaurant: dict[str, Any] | None,
        categories: list[dict[str, Any]],
    ) -> int:
        """Download the restaurant and menu item images.

        Returns:
            Number of images stored
        """
        urls = []
        if restaurant is not None:
            urls.append(restaurant.get("image_url"))
        for category in categories:
            for item in category.get("items", []):
                urls.append(item.get("image") or item.get("image_url"))

        unique = [u for u in dict.fromkeys(urls) if isinstance(u, str) and u]
        if not unique:
            return 0

        results = await asyncio.gather(
            *(self._cache_image(url, restaurant_id) for url in unique)
        )
        return sum(results)

    async def _cache_image(self, url: str, restaurant_id: str) -> bool:
        assert self.image_cache is not None
        try:
            return await asyncio.to_thread(
                self.image_cache.cache_image, url, restaurant_id
            )
        except Exception as e:
            logger.warning("Failed to precache image %s: %s", url, e)
            return False

    def _notify(self, progress: PreloadProgress) -> None:
        for callback in list(self._subscribers):
            try:
                callback(progress)
            except Exception as e:
                logger.error("Preload subscriber failed: %s", e)
