"""Cache clear and invalidate CLI commands."""

import logging
from typing import Annotated, Any

import typer
from rich.console import Console

from .utils import build_cache_stack, run


logger = logging.getLogger(__name__)
console = Console()


def cache_clear(
    ctx: typer.Context,
    restaurant_id: Annotated[str, typer.Argument(help="Restaurant to clear")],
    key: Annotated[
        str | None,
        typer.Option("-k", "--key", help="Clear only this cache key"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Force deletion without confirmation"),
    ] = False,
) -> None:
    """Clear cached entries of a restaurant."""
    target = f"'{key}' of {restaurant_id}" if key else f"all entries of {restaurant_id}"
    if not force and not typer.confirm(f"Clear {target}?"):
        console.print("[yellow]Cancelled[/yellow]")
        return

    stack = build_cache_stack(ctx)
    removed = stack.service.clear(restaurant_id, key)
    if removed:
        console.print(f"[green]Cleared {removed} cache entries[/green]")
    else:
        console.print("[yellow]No matching cache entries[/yellow]")


def cache_invalidate(
    ctx: typer.Context,
    event: Annotated[str, typer.Argument(help="Event name, e.g. menu_update")],
    restaurant_id: Annotated[str, typer.Argument(help="Restaurant the event is for")],
    item_id: Annotated[
        str | None, typer.Option("--item-id", help="Changed menu item")
    ] = None,
    category_id: Annotated[
        str | None, typer.Option("--category-id", help="Changed category")
    ] = None,
) -> None:
    """Clear every cache domain invalidated by EVENT."""
    metadata: dict[str, Any] = {}
    if item_id is not None:
        metadata["item_id"] = item_id
    if category_id is not None:
        metadata["category_id"] = category_id

    stack = build_cache_stack(ctx)
    if not stack.coordinator.policies.domains_for_event(event) and not metadata:
        console.print(f"[yellow]No cache domain is invalidated by '{event}'[/yellow]")
        return

    removed = run(stack.coordinator.invalidate(event, restaurant_id, metadata))
    console.print(f"[green]Invalidated {removed} cache entries[/green]")
