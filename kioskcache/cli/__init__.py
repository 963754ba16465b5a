"""Command-line interface for kioskcache."""

from kioskcache.cli.app import app, main


__all__ = ["app", "main"]
