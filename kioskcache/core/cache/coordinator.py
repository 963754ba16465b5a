"""Cache coordinator: policies, metrics, invalidation and background refresh."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, replace
from typing import TYPE_CHECKING, Any

from kioskcache.config.cache_config import CacheConfig
from kioskcache.config.models import CacheContext
from kioskcache.core.cache.cache_service import CacheService
from kioskcache.core.cache.models import (
    CacheDiagnostics,
    CacheMetrics,
    EntryState,
    Priority,
    RemovalResult,
    StorageDiagnostics,
    StorageEstimate,
    StoredEntry,
)
from kioskcache.core.cache.policies import DEFAULT_POLICIES, CachePolicy, PolicyTable
from kioskcache.core.clock import ClockProtocol, SystemClock


if TYPE_CHECKING:
    from kioskcache.protocols.image_cache_protocol import ImageCacheProtocol
    from kioskcache.protocols.network_status_protocol import NetworkStatusProtocol


logger = logging.getLogger(__name__)

Refresher = Callable[[str, str], Awaitable[None]]

# Domain whose entries are shared across tenants when invalidated
GLOBAL_DOMAIN = "auth"

LOW_PRIORITY_MARKERS = ("_low_", "_temp_")

_MB = 1024 * 1024


class CacheCoordinator:
    """Front door of the cache for application code.

    Owns the policy table and the access metrics. Reads that hit an entry
    older than its domain refresh threshold schedule a deferred background
    refresh through the pluggable ``refresher`` coroutine.
    """

    def __init__(
        self,
        cache_service: CacheService,
        config: CacheConfig,
        image_cache: "ImageCacheProtocol | None" = None,
        network_status: "NetworkStatusProtocol | None" = None,
        policies: PolicyTable = DEFAULT_POLICIES,
        clock: ClockProtocol | None = None,
        refresher: Refresher | None = None,
    ) -> None:
        self.cache_service = cache_service
        self.config = config
        self.image_cache = image_cache
        self.network_status = network_status
        self.policies = policies
        self.clock = clock or SystemClock()
        self.refresher = refresher

        self._metrics = CacheMetrics()
        self._refresh_queue: set[tuple[str, str]] = set()
        self._refresh_tasks: set[asyncio.Task[None]] = set()
        self._optimization_task: asyncio.Task[None] | None = None

    @property
    def background_queue(self) -> frozenset[tuple[str, str]]:
        """Snapshot of ``(key, restaurant_id)`` pairs with a refresh in flight."""
        return frozenset(self._refresh_queue)

    def set_refresher(self, refresher: Refresher | None) -> None:
        self.refresher = refresher

    async def get(self, key: str, restaurant_id: str, is_admin: bool = False) -> Any:
        """Read through the cache service and record the access.

        Returns:
            Cached payload or None on a miss
        """
        context = CacheContext.ADMIN if is_admin else CacheContext.KIOSK
        data = self.cache_service.get(key, restaurant_id, context)
        hit = data is not None
        self._metrics.record_access(hit)

        if hit:
            age = self.cache_service.entry_age_ms(key, restaurant_id)
            policy = self.policies.policy_for(key)
            if age is not None and age > policy.ttl_ms:
                self._schedule_background_refresh(key, restaurant_id)

        return data

    async def set(
        self, key: str, data: Any, restaurant_id: str, is_admin: bool = False
    ) -> bool:
        """Write ``data`` after enforcing the domain size ceiling."""
        policy = self.policies.policy_for(key)
        if policy.max_size_bytes is not None:
            try:
                estimate = await self.get_storage_estimate()
            except Exception as e:
                logger.warning("Storage estimate failed before caching %s: %s", key, e)
            else:
                if estimate.used > policy.max_size_bytes:
                    logger.info(
                        "Storage use %d exceeds %s ceiling %d, optimizing first",
                        estimate.used,
                        key,
                        policy.max_size_bytes,
                    )
                    await self.perform_memory_optimization()

        context = CacheContext.ADMIN if is_admin else CacheContext.KIOSK
        stored = self.cache_service.set(key, data, restaurant_id, context)
        self._metrics.memory_usage_bytes = self.cache_service.usage_bytes()
        return stored

    async def invalidate(
        self,
        event: str,
        restaurant_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Clear every domain whose policy lists ``event``.

        Args:
            event: Invalidation event name such as ``menu_update``
            restaurant_id: Tenant whose entries are cleared
            metadata: Optional ``item_id`` / ``category_id`` naming single entries

        Returns:
            Number of entries removed
        """
        removed = 0
        for domain in self.policies.domains_for_event(event):
            policy = self.policies[domain]

            def in_domain(stored: StoredEntry, policy: CachePolicy = policy) -> bool:
                return stored.domain_key is not None and policy.matches(
                    stored.domain_key
                )

            scope = None if domain == GLOBAL_DOMAIN else restaurant_id
            result = self.cache_service.clear_matching(in_domain, scope)
            logger.debug(
                "Invalidated %d %s entries for %s", result.entries, domain, event
            )
            removed += result.entries

        if metadata:
            item_id = metadata.get("item_id", metadata.get("itemId"))
            if item_id is not None:
                removed += self.cache_service.clear(
                    restaurant_id, f"menu_item_{item_id}"
                )
            category_id = metadata.get("category_id", metadata.get("categoryId"))
            if category_id is not None:
                removed += self.cache_service.clear(
                    restaurant_id, f"category_{category_id}"
                )

        logger.info(
            "Cache invalidation %s for %s removed %d entries",
            event,
            restaurant_id,
            removed,
        )
        return removed

    async def perform_memory_optimization(self) -> RemovalResult:
        """Run the best-effort cleanup pipeline.

        Stages: expired and corrupt entries, the image cache, then low
        priority entries when storage use is above the configured threshold.
        A failing stage is logged and the next one still runs.
        """
        settings = self.config.settings
        total = RemovalResult()

        try:
            now = self.clock.now_ms()

            def is_expired(stored: StoredEntry) -> bool:
                if stored.entry is None:
                    return True
                return stored.entry.age_ms(now) > settings.max_entry_age_ms

            expired = self.cache_service.clear_matching(is_expired)
            total.merge(expired)
            logger.debug("Removed %d expired cache entries", expired.entries)
        except Exception as e:
            logger.error("Expired entry cleanup failed: %s", e, exc_info=True)

        if self.image_cache is not None:
            try:
                images = self.image_cache.cleanup_image_cache()
                logger.debug("Image cache cleanup removed %d images", images)
            except Exception as e:
                logger.error("Image cache cleanup failed: %s", e, exc_info=True)

        try:
            estimate = await self.get_storage_estimate()
            if estimate.usage_percentage > settings.low_priority_usage_threshold:
                low = self.cache_service.clear_matching(self.is_low_priority)
                total.merge(low)
                logger.info(
                    "Storage at %.1f%%, removed %d low priority entries",
                    estimate.usage_percentage,
                    low.entries,
                )
        except Exception as e:
            logger.error("Low priority cleanup failed: %s", e, exc_info=True)

        self._metrics.last_cleanup_ms = self.clock.now_ms()
        self._metrics.memory_usage_bytes = self.cache_service.usage_bytes()
        return total

    def is_low_priority(self, stored: StoredEntry) -> bool:
        if any(marker in stored.physical_key for marker in LOW_PRIORITY_MARKERS):
            return True
        if stored.domain_key is None:
            return False
        return self.policies.policy_for(stored.domain_key).priority == Priority.LOW

    def entry_state(self, key: str, restaurant_id: str) -> EntryState:
        """Classify the age of an entry without touching it."""
        age = self.cache_service.entry_age_ms(key, restaurant_id)
        if age is None:
            return EntryState.ABSENT
        if age > self.config.cache_duration_ms:
            return EntryState.STALE
        if age > self.policies.policy_for(key).ttl_ms:
            return EntryState.NEEDS_REFRESH
        return EntryState.FRESH

    async def get_storage_estimate(self) -> StorageEstimate:
        """Storage usage from the image cache, or the durable store otherwise."""
        if self.image_cache is not None:
            return await self.image_cache.get_storage_estimate()
        return StorageEstimate(
            used=self.cache_service.usage_bytes(),
            quota=self.config.settings.storage_quota_bytes,
        )

    def is_online(self) -> bool:
        if self.network_status is None:
            return True
        return self.network_status.is_online()

    def get_metrics(self) -> CacheMetrics:
        return replace(self._metrics)

    async def get_diagnostics(self) -> CacheDiagnostics:
        estimate = await self.get_storage_estimate()
        return CacheDiagnostics(
            metrics=asdict(self._metrics),
            storage=StorageDiagnostics(
                used_mb=round(estimate.used / _MB),
                quota_mb=round(estimate.quota / _MB),
                usage_percentage=round(estimate.usage_percentage),
            ),
            background_queue=len(self._refresh_queue),
            online_status=self.is_online(),
            policies=self.policies.to_dict(),
        )

    def start(self) -> None:
        """Arm the periodic memory optimization on the running loop."""
        if self._optimization_task is not None and not self._optimization_task.done():
            return
        self._optimization_task = asyncio.get_running_loop().create_task(
            self._optimization_loop()
        )
        logger.debug(
            "Periodic optimization every %ss",
            self.config.settings.optimization_interval_seconds,
        )

    async def shutdown(self) -> None:
        """Cancel the periodic optimization and drop queued refreshes."""
        task, self._optimization_task = self._optimization_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._refresh_queue.clear()
        logger.debug("Cache coordinator shut down")

    async def _optimization_loop(self) -> None:
        interval = self.config.settings.optimization_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.perform_memory_optimization()
            except Exception as e:
                logger.error("Periodic memory optimization failed: %s", e)

    def _schedule_background_refresh(self, key: str, restaurant_id: str) -> bool:
        pair = (key, restaurant_id)
        if pair in self._refresh_queue:
            return False
        if not self.is_online():
            logger.debug("Offline, not refreshing %s for %s", key, restaurant_id)
            return False

        self._refresh_queue.add(pair)
        task = asyncio.get_running_loop().create_task(
            self._run_background_refresh(key, restaurant_id)
        )
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
        logger.debug("Scheduled background refresh of %s for %s", key, restaurant_id)
        return True

    async def _run_background_refresh(self, key: str, restaurant_id: str) -> None:
        try:
            await asyncio.sleep(self.config.settings.background_refresh_delay_seconds)
            if self.refresher is None:
                logger.debug("No refresher configured for %s", key)
                return
            await self.refresher(key, restaurant_id)
            logger.debug("Background refresh of %s for %s done", key, restaurant_id)
        except Exception as e:
            logger.warning(
                "Background refresh of %s for %s failed: %s", key, restaurant_id, e
            )
        finally:
            self._refresh_queue.discard((key, restaurant_id))
