"""Protocol definitions for kioskcache collaborators.

The cache layer reaches the backend, the image cache, the network and the
durable store only through these interfaces. They use ``typing.Protocol`` with
``@runtime_checkable`` so both static type checking and runtime
``isinstance()`` checks work.
"""

from kioskcache.core.cache.storage import KeyValueStoreProtocol
from kioskcache.core.clock import ClockProtocol

from .data_source_protocol import DataSourceProtocol
from .image_cache_protocol import ImageCacheProtocol
from .network_status_protocol import NetworkStatusProtocol


__all__ = [
    "ClockProtocol",
    "DataSourceProtocol",
    "ImageCacheProtocol",
    "KeyValueStoreProtocol",
    "NetworkStatusProtocol",
]
