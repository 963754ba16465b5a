"""Main CLI application for kioskcache."""

import logging
import sys
from typing import Annotated

import typer

from kioskcache import __version__
from kioskcache.config import CacheConfig, create_cache_config
from kioskcache.core.errors import ConfigError
from kioskcache.core.logging import setup_logging, setup_logging_from_config


__all__ = ["app", "main", "AppContext"]

logger = logging.getLogger(__name__)


class AppContext:
    """Application context for storing shared state."""

    def __init__(
        self,
        verbose: int = 0,
        log_file: str | None = None,
        config_file: str | None = None,
    ):
        """Initialize AppContext.

        Args:
            verbose: Verbosity level
            log_file: Path to log file
            config_file: Path to configuration file
        """
        self.verbose = verbose
        self.log_file = log_file
        self.config_file = config_file
        self._cache_config: CacheConfig | None = None

    @property
    def cache_config(self) -> CacheConfig:
        """Cache configuration, loaded on first use."""
        if self._cache_config is None:
            self._cache_config = create_cache_config(cli_config_path=self.config_file)
        return self._cache_config


app = typer.Typer(
    name="kioskcache",
    help=f"""kioskcache v{__version__}

Inspect and maintain the two-tier restaurant kiosk cache.

Common workflows:
  • Show entries:     kioskcache cache show --restaurant rest-1
  • Check health:     kioskcache cache health
  • Preload a kiosk:  kioskcache cache preload rest-1 pizza-place --source data.yaml
  • Invalidate:       kioskcache cache invalidate menu_update rest-1""",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity (-v=INFO, -vv=DEBUG)",
        ),
    ] = 0,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging (equivalent to -vv)"),
    ] = False,
    log_file: Annotated[
        str | None, typer.Option("--log-file", help="Log to file")
    ] = None,
    config_file: Annotated[
        str | None,
        typer.Option("-c", "--config", help="Path to configuration file"),
    ] = None,
    version: Annotated[
        bool, typer.Option("--version", help="Show version and exit")
    ] = False,
) -> None:
    """kioskcache command-line tool."""
    if version:
        print(f"kioskcache v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit()

    app_context = AppContext(
        verbose=verbose, log_file=log_file, config_file=config_file
    )
    ctx.obj = app_context

    try:
        cache_config = app_context.cache_config
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(2) from e

    # Explicit CLI flags win over the configured log level
    if debug or verbose >= 2:
        setup_logging(log_level_name="DEBUG", log_file=log_file)
    elif verbose == 1:
        setup_logging(log_level_name="INFO", log_file=log_file)
    elif log_file is not None:
        setup_logging(
            json_logs=cache_config.settings.logging.json_logs,
            log_level_name=cache_config.settings.logging.level,
            log_file=log_file,
        )
    else:
        setup_logging_from_config(cache_config.settings.logging)


def main() -> int:
    """Main CLI entry point."""
    exit_code = 0

    try:
        from kioskcache.cli.commands import register_all_commands

        register_all_commands(app)

        app()

    except SystemExit as e:
        exit_code = e.code if isinstance(e.code, int) else 0

    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
