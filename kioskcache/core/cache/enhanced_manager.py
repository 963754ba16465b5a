"""Cache health reporting and smart optimization."""

import asyncio
import contextlib
import logging
import re
from collections import defaultdict
from typing import TYPE_CHECKING

from kioskcache.config.models import CacheSettings
from kioskcache.core.cache.cache_service import CacheService
from kioskcache.core.cache.coordinator import CacheCoordinator
from kioskcache.core.cache.models import (
    CacheHealth,
    MemoryPressure,
    OptimizationResult,
    OptimizationStatus,
    RemovalResult,
    StorageEstimate,
    StoredEntry,
)
from kioskcache.core.clock import ClockProtocol
from kioskcache.core.errors import OptimizationError, OptimizationInProgressError


if TYPE_CHECKING:
    from kioskcache.core.cache.preloader import StartupPreloader


logger = logging.getLogger(__name__)

REDUNDANT_MARKERS = ("toppings_", "categories_")
_NUMERIC_SUFFIX = re.compile(r"_\d+$")

HIGH_PRESSURE_PERCENT = 85.0
MEDIUM_PRESSURE_PERCENT = 60.0
STALE_CLEANUP_PERCENT = 30.0

EMERGENCY_TENANT_DOMAINS = frozenset({"menu", "categories", "toppings"})
EMERGENCY_GLOBAL_DOMAINS = frozenset({"images", "auth"})


def classify_memory_pressure(estimate: StorageEstimate) -> MemoryPressure:
    usage = estimate.usage_percentage
    if usage > HIGH_PRESSURE_PERCENT:
        return MemoryPressure.HIGH
    if usage > MEDIUM_PRESSURE_PERCENT:
        return MemoryPressure.MEDIUM
    return MemoryPressure.LOW


def redundancy_groups(entries: list[StoredEntry]) -> dict[str, list[StoredEntry]]:
    """Group topping and category entries sharing a key once numeric suffixes go.

    Physical keys carry the tenant, so groups never span restaurants.
    """
    groups: dict[str, list[StoredEntry]] = defaultdict(list)
    for stored in entries:
        key = stored.domain_key or ""
        if any(marker in key for marker in REDUNDANT_MARKERS):
            groups[_NUMERIC_SUFFIX.sub("", stored.physical_key)].append(stored)
    return groups


class EnhancedCacheManager:
    """Health snapshot and multi-stage optimization on top of the coordinator.

    Only one optimization runs at a time, and runs closer together than the
    configured cooldown are skipped unless forced.
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        preloader: "StartupPreloader | None" = None,
        clock: ClockProtocol | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.preloader = preloader
        self.clock = clock or coordinator.clock
        self._in_progress = False
        self._last_run_ms = 0
        self._periodic_task: asyncio.Task[None] | None = None

    @property
    def cache_service(self) -> CacheService:
        return self.coordinator.cache_service

    @property
    def settings(self) -> CacheSettings:
        return self.coordinator.config.settings

    async def get_cache_health(self) -> CacheHealth:
        """Compute the current health snapshot."""
        metrics = self.coordinator.get_metrics()
        estimate = await self.coordinator.get_storage_estimate()
        entries = list(self.cache_service.scan())

        return CacheHealth(
            total_size=estimate.used,
            hit_rate=metrics.hit_rate,
            miss_rate=metrics.miss_rate,
            stale_percentage=self._stale_percentage(entries),
            redundant_entries=self._count_redundant(entries),
            memory_pressure=classify_memory_pressure(estimate),
        )

    async def perform_smart_optimization(
        self, restaurant_id: str | None = None, force: bool = False
    ) -> OptimizationResult:
        """Run the staged optimization pass.

        Args:
            restaurant_id: Tenant to keep during an emergency cleanup
            force: Ignore the cooldown

        Raises:
            OptimizationInProgressError: If another pass is running
            OptimizationError: If a stage fails; carries the partial result
        """
        if self._in_progress:
            raise OptimizationInProgressError("Optimization already in progress")

        now = self.clock.now_ms()
        elapsed = now - self._last_run_ms
        cooldown = self.settings.smart_optimization_cooldown_ms
        if not force and self._last_run_ms and elapsed < cooldown:
            logger.debug("Smart optimization skipped, last run %d ms ago", elapsed)
            return OptimizationResult(
                optimizations=[f"Skipped: last optimization ran {elapsed} ms ago"]
            )

        self._in_progress = True
        self._last_run_ms = now
        result = OptimizationResult()
        try:
            health = await self.get_cache_health()

            if health.redundant_entries > 0:
                removed = self._clear_redundant_entries()
                result.add(
                    removed, f"Removed {removed.entries} redundant cache entries"
                )

            if health.memory_pressure == MemoryPressure.HIGH:
                removed = self._perform_emergency_cleanup(restaurant_id)
                result.add(removed, "Emergency memory cleanup performed")

            if health.stale_percentage > STALE_CLEANUP_PERCENT:
                removed = self._clear_stale_entries()
                result.add(removed, f"Cleared {removed.entries} stale cache entries")

            removed = await self.coordinator.perform_memory_optimization()
            result.add(removed, "Performed coordinated cache optimization")
        except Exception as e:
            logger.error("Smart optimization failed: %s", e)
            raise OptimizationError(
                f"Smart optimization failed: {e}", partial_result=result
            ) from e
        finally:
            self._in_progress = False

        logger.info(
            "Smart optimization cleared %d entries (%d bytes)",
            result.cleared_entries,
            result.freed_bytes,
        )
        return result

    async def force_full_optimization(self, restaurant_id: str) -> OptimizationResult:
        """Refetch the tenant's data, then optimize regardless of the cooldown."""
        if self.preloader is not None:
            await self.preloader.force_refresh(restaurant_id)
        return await self.perform_smart_optimization(restaurant_id, force=True)

    def get_optimization_status(self) -> OptimizationStatus:
        return OptimizationStatus(
            in_progress=self._in_progress, last_run_ms=self._last_run_ms
        )

    def should_run_optimization(self) -> bool:
        elapsed = self.clock.now_ms() - self._last_run_ms
        return (
            not self._in_progress
            and elapsed > self.settings.smart_optimization_cooldown_ms
            and self.coordinator.config.is_caching_enabled()
        )

    def start(self) -> None:
        """Arm the periodic smart optimization on the running loop."""
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        self._periodic_task = asyncio.get_running_loop().create_task(
            self._periodic_loop()
        )

    async def shutdown(self) -> None:
        task, self._periodic_task = self._periodic_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.smart_optimization_interval_seconds)
            if not self.should_run_optimization():
                continue
            try:
                await self.perform_smart_optimization()
            except OptimizationInProgressError:
                logger.debug("Periodic optimization overlapped a running pass")
            except OptimizationError as e:
                logger.error("Periodic smart optimization failed: %s", e)

    def _count_redundant(self, entries: list[StoredEntry]) -> int:
        return sum(
            max(0, len(group) - 1) for group in redundancy_groups(entries).values()
        )

    def _stale_percentage(self, entries: list[StoredEntry]) -> float:
        if not entries:
            return 0.0
        stale = sum(1 for stored in entries if self._is_stale(stored))
        return (stale / len(entries)) * 100.0

    def _is_stale(self, stored: StoredEntry) -> bool:
        if stored.entry is None:
            return True
        age = stored.entry.age_ms(self.clock.now_ms())
        return age > self.settings.stale_window_ms

    def _clear_redundant_entries(self) -> RemovalResult:
        """Keep only the newest entry of every redundancy group."""
        result = RemovalResult()
        for group in redundancy_groups(list(self.cache_service.scan())).values():
            if len(group) < 2:
                continue
            group.sort(
                key=lambda s: s.entry.stored_at_ms if s.entry is not None else 0,
                reverse=True,
            )
            for stored in group[1:]:
                result.add(self.cache_service.remove_physical(stored.physical_key))
        logger.debug("Removed %d redundant cache entries", result.entries)
        return result

    def _perform_emergency_cleanup(self, restaurant_id: str | None) -> RemovalResult:
        """Clear other tenants' menu data plus every image and auth entry."""
        policies = self.coordinator.policies

        def is_doomed(stored: StoredEntry) -> bool:
            if stored.domain_key is None:
                return False
            domain = policies.domain_for(stored.domain_key)
            if domain in EMERGENCY_GLOBAL_DOMAINS:
                return True
            return (
                restaurant_id is not None
                and domain in EMERGENCY_TENANT_DOMAINS
                and stored.restaurant_id != restaurant_id
            )

        result = self.cache_service.clear_matching(is_doomed)
        logger.warning(
            "Emergency cache cleanup removed %d entries (%d bytes)",
            result.entries,
            result.bytes,
        )
        return result

    def _clear_stale_entries(self) -> RemovalResult:
        result = self.cache_service.clear_matching(self._is_stale)
        logger.debug("Removed %d stale cache entries", result.entries)
        return result
