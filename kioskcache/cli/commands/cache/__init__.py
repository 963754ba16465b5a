"""Cache management CLI commands."""

import typer

from .clear import cache_clear, cache_invalidate
from .optimize import cache_optimize
from .preload import cache_preload
from .show import cache_health, cache_show


cache_app = typer.Typer(help="Cache management commands", no_args_is_help=True)

cache_app.command(name="show")(cache_show)
cache_app.command(name="health")(cache_health)
cache_app.command(name="clear")(cache_clear)
cache_app.command(name="invalidate")(cache_invalidate)
cache_app.command(name="optimize")(cache_optimize)
cache_app.command(name="preload")(cache_preload)


def register_cache_commands(app: typer.Typer) -> None:
    """Register the cache command group once."""
    if any(group.name == "cache" for group in app.registered_groups):
        return
    app.add_typer(cache_app, name="cache")


__all__ = ["cache_app", "register_cache_commands"]
