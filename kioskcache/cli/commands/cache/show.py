"""Cache show and health CLI commands."""

import json
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from kioskcache.core.cache.models import MemoryPressure

from .utils import build_cache_stack, format_age, format_size, run


logger = logging.getLogger(__name__)
console = Console()

_PRESSURE_STYLES = {
    MemoryPressure.LOW.value: "green",
    MemoryPressure.MEDIUM.value: "yellow",
    MemoryPressure.HIGH.value: "red",
}


def cache_show(
    ctx: typer.Context,
    restaurant_id: Annotated[
        str | None,
        typer.Option("-r", "--restaurant", help="Only show this restaurant"),
    ] = None,
) -> None:
    """List persisted cache entries with their domain, age and state."""
    stack = build_cache_stack(ctx)
    service = stack.service
    coordinator = stack.coordinator
    now = service.clock.now_ms()

    entries = sorted(
        service.scan(restaurant_id),
        key=lambda s: (s.restaurant_id or "", s.physical_key),
    )
    if not entries:
        console.print("[yellow]No cache entries found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Restaurant", style="cyan")
    table.add_column("Key", style="white")
    table.add_column("Domain", style="magenta")
    table.add_column("Age", style="blue")
    table.add_column("Size", style="white")
    table.add_column("State", style="green")

    for stored in entries:
        key = stored.domain_key or stored.physical_key
        if stored.entry is None:
            age, state = "-", "[red]corrupt[/red]"
        else:
            age = format_age(stored.entry.age_ms(now))
            state = coordinator.entry_state(key, stored.restaurant_id or "").value
        table.add_row(
            stored.restaurant_id or "-",
            key,
            coordinator.policies.domain_for(key),
            age,
            format_size(stored.size_bytes),
            state,
        )

    console.print(table)
    console.print(
        f"[bold]Total:[/bold] {len(entries)} entries, "
        f"{format_size(sum(s.size_bytes for s in entries))}"
    )


def cache_health(
    ctx: typer.Context,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the health snapshot as JSON")
    ] = False,
) -> None:
    """Show cache health: size, hit rate, staleness, redundancy and pressure."""
    stack = build_cache_stack(ctx)
    health = run(stack.manager.get_cache_health())

    if as_json:
        typer.echo(json.dumps(health.to_dict(), indent=2))
        return

    pressure_style = _PRESSURE_STYLES.get(str(health.memory_pressure), "white")
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Total Size", format_size(health.total_size))
    table.add_row("Hit Rate", f"{health.hit_rate:.1f}%")
    table.add_row("Miss Rate", f"{health.miss_rate:.1f}%")
    table.add_row("Stale Entries", f"{health.stale_percentage:.1f}%")
    table.add_row("Redundant Entries", str(health.redundant_entries))
    table.add_row(
        "Memory Pressure",
        f"[{pressure_style}]{health.memory_pressure}[/{pressure_style}]",
    )
    console.print(table)
