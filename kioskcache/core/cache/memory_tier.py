"""Bounded in-memory tier in front of the durable store."""

import logging
from collections import OrderedDict
from collections.abc import Callable, Iterator

from kioskcache.core.cache.models import CacheEntry


logger = logging.getLogger(__name__)


class MemoryTier:
    """Insertion-ordered map of decoded entries keyed by physical key.

    When full, the oldest inserted entry is evicted. Re-inserting an existing
    key moves it to the newest position. Reads never reorder entries.
    """

    def __init__(self, max_entries: int = 100) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, physical_key: str) -> CacheEntry | None:
        return self._entries.get(physical_key)

    def put(self, physical_key: str, entry: CacheEntry) -> None:
        if self.max_entries <= 0:
            return

        if physical_key in self._entries:
            del self._entries[physical_key]
        elif len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Memory tier full, evicted %s", evicted)

        self._entries[physical_key] = entry

    def remove(self, physical_key: str) -> bool:
        return self._entries.pop(physical_key, None) is not None

    def remove_matching(self, predicate: Callable[[str], bool]) -> int:
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __contains__(self, physical_key: object) -> bool:
        return physical_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
