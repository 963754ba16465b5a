"""kioskcache - cache coordination layer for restaurant kiosk clients."""

from importlib.metadata import PackageNotFoundError, distribution


try:
    __version__ = distribution(__package__ or "kioskcache").version
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["__version__"]
