"""Cache optimize CLI command."""

import logging
from typing import Annotated

import typer
from rich.console import Console

from kioskcache.core.errors import OptimizationError

from .utils import build_cache_stack, format_size, run


logger = logging.getLogger(__name__)
console = Console()


def cache_optimize(
    ctx: typer.Context,
    restaurant_id: Annotated[
        str | None,
        typer.Option(
            "-r", "--restaurant", help="Restaurant kept during emergency cleanup"
        ),
    ] = None,
    memory_only: Annotated[
        bool,
        typer.Option("--memory-only", help="Only run the expiry and pressure sweep"),
    ] = False,
) -> None:
    """Run a smart optimization pass over the cache."""
    stack = build_cache_stack(ctx)

    if memory_only:
        removed = run(stack.coordinator.perform_memory_optimization())
        console.print(
            f"[green]Removed {removed.entries} entries "
            f"({format_size(removed.bytes)})[/green]"
        )
        return

    try:
        result = run(
            stack.manager.perform_smart_optimization(restaurant_id, force=True)
        )
    except OptimizationError as e:
        partial = e.partial_result
        console.print(f"[red]Optimization failed: {e}[/red]")
        console.print(
            f"Completed stages removed {partial.cleared_entries} entries "
            f"({format_size(partial.freed_bytes)})"
        )
        raise typer.Exit(1) from e

    for message in result.optimizations:
        console.print(f"  • {message}")
    console.print(
        f"[green]Cleared {result.cleared_entries} entries "
        f"({format_size(result.freed_bytes)})[/green]"
    )
