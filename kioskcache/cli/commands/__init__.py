"""CLI command modules."""

import typer

from kioskcache.cli.commands.cache import register_cache_commands


def register_all_commands(app: typer.Typer) -> None:
    """Register all CLI commands with the main app.

    Args:
        app: The main Typer app
    """
    register_cache_commands(app)
