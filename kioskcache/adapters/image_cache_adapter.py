"""Image cache adapters.

Images are kept per restaurant for seven days. The storage estimate covers
the image blobs plus whatever else the caller reports through
``extra_usage``, typically the durable cache store.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import diskcache  # type: ignore[import-untyped]
import requests

from kioskcache.core.cache.models import StorageEstimate
from kioskcache.core.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)

IMAGE_CACHE_TTL_MS = 7 * 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class ImageCacheStats:
    count: int
    size_kb: int


def image_id_from_url(url: str) -> str:
    """Derive an image id from the last path segment of ``url``."""
    return url.rstrip("/").rsplit("/", 1)[-1] or url


class FilesystemImageCache:
    """Image blobs stored in a DiskCache directory."""

    def __init__(
        self,
        directory: Path | str,
        quota_bytes: int,
        ttl_ms: int = IMAGE_CACHE_TTL_MS,
        clock: ClockProtocol | None = None,
        extra_usage: Callable[[], int] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the image cache.

        Args:
            directory: Directory holding the image database
            quota_bytes: Quota reported by the storage estimate
            ttl_ms: Age after which images are neither served nor kept
            clock: Time source
            extra_usage: Callable adding other storage to the estimate
            session: HTTP session used by :meth:`cache_image`
        """
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self.ttl_ms = ttl_ms
        self.clock = clock or SystemClock()
        self.extra_usage = extra_usage
        self.session = session or requests.Session()

        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache = diskcache.Cache(directory=str(self.directory))
        logger.debug("Image cache initialized at %s", self.directory)

    @staticmethod
    def _entry_key(image_id: str, restaurant_id: str) -> str:
        return f"{restaurant_id}_{image_id}"

    def save_image(
        self, image_id: str, url: str, restaurant_id: str, blob: bytes
    ) -> None:
        self._cache.set(
            self._entry_key(image_id, restaurant_id),
            {
                "url": url,
                "restaurant_id": restaurant_id,
                "blob": blob,
                "timestamp": self.clock.now_ms(),
            },
        )

    def get_image(self, image_id: str, restaurant_id: str) -> bytes | None:
        """Return the image blob unless it is missing or older than the TTL."""
        entry = self._cache.get(self._entry_key(image_id, restaurant_id))
        if not isinstance(entry, dict):
            return None
        if entry.get("timestamp", 0) <= self.clock.now_ms() - self.ttl_ms:
            return None
        return entry.get("blob")

    def cache_image(self, url: str, restaurant_id: str, timeout: float = 30) -> bool:
        """Download ``url`` and store it for ``restaurant_id``.

        Inline ``data:`` and ``blob:`` URLs are skipped.

        Returns:
            True if the image was stored
        """
        if not url or url.startswith(("data:", "blob:")):
            return False

        try:
            response = self.session.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning("Failed to cache image from %s: %s", url, e)
            return False

        self.save_image(image_id_from_url(url), url, restaurant_id, response.content)
        return True

    def get_image_cache_stats(self, restaurant_id: str) -> ImageCacheStats:
        entries = [
            e for e in self._entries() if e.get("restaurant_id") == restaurant_id
        ]
        size = sum(len(e.get("blob") or b"") for e in entries)
        return ImageCacheStats(count=len(entries), size_kb=round(size / 1024))

    def clear_cached_images(self, restaurant_id: str) -> int:
        removed = 0
        for key in list(self._cache.iterkeys()):
            entry = self._cache.get(key)
            if isinstance(entry, dict) and entry.get("restaurant_id") == restaurant_id:
                self._cache.delete(key)
                removed += 1
        logger.info("Cleared %d cached images for %s", removed, restaurant_id)
        return removed

    def cleanup_image_cache(self) -> int:
        """Remove images older than the TTL."""
        cutoff = self.clock.now_ms() - self.ttl_ms
        removed = 0
        for key in list(self._cache.iterkeys()):
            entry = self._cache.get(key)
            if not isinstance(entry, dict) or entry.get("timestamp", 0) <= cutoff:
                self._cache.delete(key)
                removed += 1
        if removed:
            logger.debug("Removed %d expired images", removed)
        return removed

    def usage_bytes(self) -> int:
        return sum(len(e.get("blob") or b"") for e in self._entries())

    async def get_storage_estimate(self) -> StorageEstimate:
        used = self.usage_bytes()
        if self.extra_usage is not None:
            used += self.extra_usage()
        return StorageEstimate(used=used, quota=self.quota_bytes)

    def close(self) -> None:
        self._cache.close()

    def _entries(self) -> list[dict[str, Any]]:
        entries = []
        for key in self._cache.iterkeys():
            entry = self._cache.get(key)
            if isinstance(entry, dict):
                entries.append(entry)
        return entries


class NullImageCache:
    """Image cache for headless use; only reports storage."""

    def __init__(
        self,
        quota_bytes: int,
        usage: Callable[[], int] | None = None,
    ) -> None:
        self.quota_bytes = quota_bytes
        self.usage = usage

    def cache_image(self, url: str, restaurant_id: str) -> bool:
        return False

    def cleanup_image_cache(self) -> int:
        return 0

    async def get_storage_estimate(self) -> StorageEstimate:
        used = self.usage() if self.usage is not None else 0
        return StorageEstimate(used=used, quota=self.quota_bytes)
