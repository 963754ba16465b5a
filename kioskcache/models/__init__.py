"""Shared model base classes."""

from .base import KioskCacheBaseModel


__all__ = ["KioskCacheBaseModel"]
