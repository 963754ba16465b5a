"""Cache data models and types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import Field

from kioskcache.models.base import KioskCacheBaseModel


class Priority(str, Enum):
    """Eviction priority of a cache domain."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MemoryPressure(str, Enum):
    """How close persisted cache usage is to its storage quota."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EntryState(str, Enum):
    """Age classification of a single entry, evaluated on read."""

    ABSENT = "absent"
    FRESH = "fresh"
    NEEDS_REFRESH = "needs_refresh"
    STALE = "stale"


@dataclass
class CacheEntry:
    """Envelope stored for every cached value."""

    payload: Any
    stored_at_ms: int
    refresh_count: int | None = None

    def age_ms(self, now_ms: int) -> int:
        """Get age of the entry relative to ``now_ms``."""
        return now_ms - self.stored_at_ms

    def is_expired(self, now_ms: int, ttl_ms: int) -> bool:
        """Check whether the entry is older than ``ttl_ms``."""
        return self.age_ms(now_ms) > ttl_ms


@dataclass
class StoredEntry:
    """A namespaced entry found while scanning the durable store."""

    physical_key: str
    restaurant_id: str | None
    domain_key: str | None
    entry: CacheEntry | None
    size_bytes: int

    @property
    def is_corrupt(self) -> bool:
        return self.entry is None


@dataclass
class RemovalResult:
    """Entries and bytes released by a removal sweep."""

    entries: int = 0
    bytes: int = 0

    def add(self, freed_bytes: int) -> None:
        self.entries += 1
        self.bytes += freed_bytes

    def merge(self, other: "RemovalResult") -> "RemovalResult":
        self.entries += other.entries
        self.bytes += other.bytes
        return self


@dataclass
class CacheMetrics:
    """Coordinator access statistics.

    Counters only grow; the rates are recomputed after every access.
    """

    hit_rate: float = 0.0
    miss_rate: float = 100.0
    memory_usage_bytes: int = 0
    last_cleanup_ms: int = 0
    total_requests: int = 0
    cache_hits: int = 0

    def record_access(self, hit: bool) -> None:
        """Count one request and recompute hit and miss rates."""
        self.total_requests += 1
        if hit:
            self.cache_hits += 1
        self.hit_rate = (
            (self.cache_hits / self.total_requests) * 100.0
            if self.total_requests > 0
            else 0.0
        )
        self.miss_rate = 100.0 - self.hit_rate


@dataclass(frozen=True)
class StorageEstimate:
    """Storage usage reported by the image cache collaborator."""

    used: int
    quota: int

    @property
    def usage_percentage(self) -> float:
        if self.quota <= 0:
            return 0.0
        return (self.used / self.quota) * 100.0


class CacheHealth(KioskCacheBaseModel):
    """Health snapshot computed by the enhanced cache manager."""

    total_size: int
    hit_rate: float
    miss_rate: float
    stale_percentage: float
    redundant_entries: int
    memory_pressure: MemoryPressure


class OptimizationResult(KioskCacheBaseModel):
    """Accumulated outcome of a smart optimization pass."""

    cleared_entries: int = 0
    freed_bytes: int = 0
    optimizations: list[str] = Field(default_factory=list)

    def add(self, removal: RemovalResult, message: str) -> None:
        self.cleared_entries += removal.entries
        self.freed_bytes += removal.bytes
        self.optimizations.append(message)


class OptimizationStatus(KioskCacheBaseModel):
    in_progress: bool
    last_run_ms: int


class StorageDiagnostics(KioskCacheBaseModel):
    used_mb: int
    quota_mb: int
    usage_percentage: int


class CacheDiagnostics(KioskCacheBaseModel):
    """Snapshot returned by :meth:`CacheCoordinator.get_diagnostics`."""

    metrics: dict[str, Any]
    storage: StorageDiagnostics
    background_queue: int
    online_status: bool
    policies: dict[str, dict[str, Any]]


class PreloadResult(KioskCacheBaseModel):
    """Data returned by a kiosk preload; empty parts mean the fetch failed."""

    restaurant: dict[str, Any] | None = None
    categories: list[dict[str, Any]] = Field(default_factory=list)
    topping_categories: list[dict[str, Any]] = Field(default_factory=list)
    images_cached: int = 0


@dataclass
class PreloadProgress:
    """Progress notification sent to preload subscribers."""

    restaurant_id: str
    stage: str
    completed: int
    total: int
    errors: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.completed >= self.total
