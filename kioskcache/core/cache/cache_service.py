"""Basic two-tier cache service.

Reads go to the in-memory tier first and then to the durable store; writes go
to both. Entries older than the configured cache duration are deleted when
they are read.
"""

import copy
import logging
from collections.abc import Callable, Iterator
from typing import Any

from kioskcache.config.cache_config import CacheConfig
from kioskcache.config.models import CacheContext
from kioskcache.core.cache.codec import decode_entry, encode_entry, encoded_size
from kioskcache.core.cache.memory_tier import MemoryTier
from kioskcache.core.cache.models import CacheEntry, RemovalResult, StoredEntry
from kioskcache.core.cache.storage import KeyValueStoreProtocol
from kioskcache.core.clock import ClockProtocol, SystemClock
from kioskcache.core.errors import CorruptEntryError, StorageError


logger = logging.getLogger(__name__)


class CacheService:
    """Physical read/write path of the cache with TTL enforcement.

    Physical keys have the form ``<namespace_prefix><restaurant_id>_<key>``.
    Restaurant ids are assumed not to contain ``_`` when a physical key has to
    be split without knowing its tenant.
    """

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        config: CacheConfig,
        clock: ClockProtocol | None = None,
        memory_tier: MemoryTier | None = None,
    ) -> None:
        """Initialize the cache service.

        Args:
            store: Durable key-value store
            config: Live cache configuration and context gate
            clock: Time source, defaults to the system clock
            memory_tier: In-memory tier, sized from the settings when omitted
        """
        self.store = store
        self.config = config
        self.clock = clock or SystemClock()
        self.memory_tier = memory_tier or MemoryTier(
            config.settings.memory_tier_size
        )

    @property
    def namespace_prefix(self) -> str:
        return self.config.settings.namespace_prefix

    def physical_key(self, key: str, restaurant_id: str) -> str:
        return f"{self.tenant_prefix(restaurant_id)}{key}"

    def tenant_prefix(self, restaurant_id: str) -> str:
        return f"{self.namespace_prefix}{restaurant_id}_"

    def split_physical_key(
        self, physical_key: str, restaurant_id: str | None = None
    ) -> tuple[str | None, str | None]:
        """Split a physical key into ``(restaurant_id, key)``.

        Returns ``(None, None)`` for keys outside the namespace.
        """
        if restaurant_id is not None:
            prefix = self.tenant_prefix(restaurant_id)
            if physical_key.startswith(prefix):
                return restaurant_id, physical_key[len(prefix) :]
            return None, None

        if not physical_key.startswith(self.namespace_prefix):
            return None, None
        rest = physical_key[len(self.namespace_prefix) :]
        tenant, sep, key = rest.partition("_")
        if not sep or not tenant or not key:
            return None, None
        return tenant, key

    def set(
        self,
        key: str,
        data: Any,
        restaurant_id: str,
        context: CacheContext | str | None = None,
    ) -> bool:
        """Store ``data`` under ``key`` for ``restaurant_id``.

        Storage failures are logged and the in-memory tier keeps the entry
        for the rest of the session.

        Returns:
            True if at least one tier accepted the write
        """
        if not self.config.is_caching_enabled(context):
            logger.debug("Caching disabled for %s, skipping set of %s", context, key)
            return False

        physical_key = self.physical_key(key, restaurant_id)
        previous = self._read_entry(physical_key)
        refresh_count = None
        if previous is not None:
            refresh_count = (previous.refresh_count or 0) + 1

        entry = CacheEntry(
            payload=data,
            stored_at_ms=self.clock.now_ms(),
            refresh_count=refresh_count,
        )

        persisted = False
        encoded = None
        try:
            encoded = encode_entry(entry)
            self.store.set(physical_key, encoded)
            persisted = True
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize cache entry %s: %s", physical_key, e)
        except StorageError as e:
            logger.warning("Failed to persist cache entry %s: %s", physical_key, e)

        # The memory tier never shares objects with the caller
        if encoded is not None:
            self.memory_tier.put(physical_key, decode_entry(encoded))
        else:
            try:
                self.memory_tier.put(physical_key, copy.deepcopy(entry))
            except (TypeError, copy.Error) as e:
                logger.warning("Cannot copy cache entry %s: %s", physical_key, e)
                self.remove_physical(physical_key)
        logger.debug(
            "Cached %s (persisted: %s, refresh count: %s)",
            physical_key,
            persisted,
            refresh_count,
        )
        return persisted or physical_key in self.memory_tier

    def get(
        self,
        key: str,
        restaurant_id: str,
        context: CacheContext | str | None = None,
    ) -> Any | None:
        """Return the cached payload or None.

        Expired and corrupt entries are deleted by the read.
        """
        if not self.config.is_caching_enabled(context):
            return None

        physical_key = self.physical_key(key, restaurant_id)
        entry = self._read_entry(physical_key)
        if entry is None:
            logger.debug("Cache miss for %s", physical_key)
            return None

        if entry.is_expired(self.clock.now_ms(), self.config.cache_duration_ms):
            logger.debug("Cache entry %s expired, removing", physical_key)
            self.remove_physical(physical_key)
            return None

        if physical_key not in self.memory_tier:
            self.memory_tier.put(physical_key, entry)
        logger.debug("Cache hit for %s", physical_key)
        return copy.deepcopy(entry.payload)

    def clear(self, restaurant_id: str, specific_key: str | None = None) -> int:
        """Remove one key, or every key, of ``restaurant_id``.

        Returns:
            Number of entries removed
        """
        if specific_key is not None:
            physical_key = self.physical_key(specific_key, restaurant_id)
            existed = (
                physical_key in self.memory_tier
                or self._raw(physical_key) is not None
            )
            self.remove_physical(physical_key)
            removed = 1 if existed else 0
        else:
            prefix = self.tenant_prefix(restaurant_id)
            doomed = {k for k in self._namespaced_keys() if k.startswith(prefix)}
            doomed.update(k for k in self.memory_tier.keys() if k.startswith(prefix))
            for physical_key in doomed:
                self.remove_physical(physical_key)
            removed = len(doomed)

        if removed:
            logger.info("Cleared %d cache entries for %s", removed, restaurant_id)
        return removed

    def peek(self, key: str, restaurant_id: str) -> CacheEntry | None:
        """Return the entry without gating, TTL checks or promotion."""
        return self._read_entry(self.physical_key(key, restaurant_id), repair=False)

    def entry_age_ms(self, key: str, restaurant_id: str) -> int | None:
        entry = self.peek(key, restaurant_id)
        if entry is None:
            return None
        return entry.age_ms(self.clock.now_ms())

    def scan(self, restaurant_id: str | None = None) -> Iterator[StoredEntry]:
        """Iterate over every persisted namespaced entry.

        Args:
            restaurant_id: Restrict the scan to one tenant
        """
        prefix = (
            self.tenant_prefix(restaurant_id)
            if restaurant_id is not None
            else self.namespace_prefix
        )
        for physical_key in self._namespaced_keys():
            if not physical_key.startswith(prefix):
                continue
            raw = self._raw(physical_key)
            if raw is None:
                continue
            try:
                entry: CacheEntry | None = decode_entry(raw)
            except CorruptEntryError:
                entry = None
            tenant, key = self.split_physical_key(physical_key, restaurant_id)
            yield StoredEntry(
                physical_key=physical_key,
                restaurant_id=tenant,
                domain_key=key,
                entry=entry,
                size_bytes=encoded_size(raw),
            )

    def clear_matching(
        self,
        predicate: Callable[[StoredEntry], bool],
        restaurant_id: str | None = None,
    ) -> RemovalResult:
        """Remove every entry accepted by ``predicate``.

        Entries only held by the in-memory tier, after a failed persist, are
        matched too and count as zero bytes.
        """
        result = RemovalResult()
        seen: set[str] = set()
        for stored in list(self.scan(restaurant_id)):
            seen.add(stored.physical_key)
            if predicate(stored):
                self.remove_physical(stored.physical_key)
                result.add(stored.size_bytes)

        for physical_key in self.memory_tier.keys():
            if physical_key in seen:
                continue
            tenant, key = self.split_physical_key(physical_key, restaurant_id)
            if tenant is None:
                continue
            stored = StoredEntry(
                physical_key=physical_key,
                restaurant_id=tenant,
                domain_key=key,
                entry=self.memory_tier.get(physical_key),
                size_bytes=0,
            )
            if predicate(stored):
                self.memory_tier.remove(physical_key)
                result.add(0)
        return result

    def remove_physical(self, physical_key: str) -> int:
        """Remove ``physical_key`` from both tiers.

        Returns:
            Bytes released in the durable store
        """
        self.memory_tier.remove(physical_key)
        raw = self._raw(physical_key)
        try:
            self.store.remove(physical_key)
        except StorageError as e:
            logger.warning("Failed to remove cache entry %s: %s", physical_key, e)
            return 0
        return encoded_size(raw) if raw is not None else 0

    def usage_bytes(self) -> int:
        """Bytes used in the durable store, as counted by the store itself."""
        try:
            return self.store.usage_bytes()
        except StorageError as e:
            logger.warning("Failed to read cache usage: %s", e)
            return 0

    def _namespaced_keys(self) -> list[str]:
        try:
            return [k for k in self.store.keys() if k.startswith(self.namespace_prefix)]
        except StorageError as e:
            logger.warning("Failed to list cache keys: %s", e)
            return []

    def _raw(self, physical_key: str) -> str | None:
        try:
            return self.store.get(physical_key)
        except StorageError as e:
            logger.warning("Failed to read cache entry %s: %s", physical_key, e)
            return None

    def _read_entry(self, physical_key: str, repair: bool = True) -> CacheEntry | None:
        entry = self.memory_tier.get(physical_key)
        if entry is not None:
            return entry

        raw = self._raw(physical_key)
        if raw is None:
            return None

        try:
            return decode_entry(raw)
        except CorruptEntryError as e:
            if repair:
                logger.warning("Removing corrupt cache entry %s: %s", physical_key, e)
                self.remove_physical(physical_key)
            return None
