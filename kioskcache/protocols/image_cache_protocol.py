"""Protocol for the image cache collaborator."""

from typing import Protocol, runtime_checkable

from kioskcache.core.cache.models import StorageEstimate


@runtime_checkable
class ImageCacheProtocol(Protocol):
    """Per-restaurant image store with storage reporting."""

    def cache_image(self, url: str, restaurant_id: str) -> bool:
        """Download and store ``url``; returns False when nothing was stored.

        Blocking; async callers run it in a worker thread.
        """
        ...

    def cleanup_image_cache(self) -> int:
        """Remove expired images and return how many were removed."""
        ...

    async def get_storage_estimate(self) -> StorageEstimate:
        """Return the current storage usage and quota in bytes."""
        ...
