"""Cache preload CLI command."""

import logging
from typing import Annotated

import typer
from rich.console import Console

from kioskcache.core.cache.models import PreloadProgress

from .utils import build_cache_stack, create_data_source, run


logger = logging.getLogger(__name__)
console = Console()


def cache_preload(
    ctx: typer.Context,
    restaurant_id: Annotated[str, typer.Argument(help="Restaurant id")],
    slug: Annotated[str, typer.Argument(help="Restaurant slug")],
    source: Annotated[
        str,
        typer.Option(
            "-s", "--source", help="Fixture file or PostgREST base URL to read from"
        ),
    ],
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", envvar="KIOSKCACHE_API_KEY", help="REST API key"),
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Ignore cached values")
    ] = False,
    skip_images: Annotated[
        bool, typer.Option("--skip-images", help="Do not download menu images")
    ] = False,
) -> None:
    """Fetch a restaurant's kiosk data and store it in the cache."""
    stack = build_cache_stack(ctx, data_source=create_data_source(source, api_key))
    preloader = stack.preloader
    assert preloader is not None

    def report(progress: PreloadProgress) -> None:
        console.print(
            f"[dim]{progress.stage} ({progress.completed}/{progress.total})[/dim]"
        )

    preloader.subscribe(report)
    result = run(
        preloader.preload_restaurant_data(
            restaurant_id, slug, force=force, skip_images=skip_images
        )
    )

    if result.restaurant is None:
        console.print(f"[red]Nothing preloaded for {restaurant_id}[/red]")
        raise typer.Exit(1)

    item_count = sum(len(c.get("items", [])) for c in result.categories)
    console.print(
        f"[green]Preloaded {result.restaurant.get('name', slug)}: "
        f"{len(result.categories)} categories, {item_count} items, "
        f"{len(result.topping_categories)} topping categories, "
        f"{result.images_cached} images[/green]"
    )
