"""
Cache configuration management for kioskcache.

Settings are resolved from multiple sources:
1. Environment variables (highest precedence)
2. Command-line provided config file
3. Config file in current directory
4. User's XDG config directory
5. Default values (lowest precedence)

The loaded settings double as the per-context gate deciding whether the kiosk,
admin and owner surfaces may use the cache at all.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from kioskcache.config.models import CacheContext, CacheSettings
from kioskcache.core.errors import ConfigError


logger = logging.getLogger(__name__)

ENV_PREFIX = "KIOSKCACHE_"


class CacheConfig:
    """Live, process-wide cache settings plus the per-context gate."""

    def __init__(
        self,
        settings: CacheSettings | None = None,
        cli_config_path: str | Path | None = None,
    ):
        """
        Initialize the cache configuration.

        Args:
            settings: Explicit settings; skips file discovery when given
            cli_config_path: Optional config file path provided via CLI
        """
        self._config_path: Path | None = None
        if settings is not None:
            self._settings = settings
        else:
            self._settings = self._load_settings(
                self._generate_config_paths(cli_config_path)
            )

    def _generate_config_paths(self, cli_config_path: str | Path | None) -> list[Path]:
        """Generate a list of config paths to search in order of precedence."""
        config_paths = []

        if cli_config_path:
            config_paths.append(Path(cli_config_path).expanduser().resolve())

        config_paths.extend(
            [Path.cwd() / "kioskcache.yaml", Path.cwd() / ".kioskcache.yml"]
        )

        xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
        config_home = (
            Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
        )
        config_paths.extend(
            [
                config_home / "kioskcache" / "config.yaml",
                config_home / "kioskcache" / "config.yml",
            ]
        )
        return config_paths

    def _load_settings(self, config_paths: list[Path]) -> CacheSettings:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Config search paths: %s", [str(p) for p in config_paths]
            )
            env_vars = [k for k in os.environ if k.startswith(ENV_PREFIX)]
            logger.debug("Found %d kioskcache environment variables", len(env_vars))

        for path in config_paths:
            if not path.is_file():
                continue
            data = self._read_yaml(path)
            self._config_path = path
            logger.debug("Loaded cache configuration from %s", path)
            try:
                return CacheSettings(**data)
            except ValidationError as e:
                raise ConfigError(f"Invalid cache configuration in {path}: {e}") from e

        logger.debug("No cache configuration file found, using defaults")
        try:
            return CacheSettings()
        except ValidationError as e:
            raise ConfigError(f"Invalid cache configuration: {e}") from e

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read cache configuration {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Cache configuration {path} must be a mapping")
        # Accept both a bare mapping and one nested under a "cache" section
        section = data.get("cache", data)
        if not isinstance(section, dict):
            raise ConfigError(f"'cache' section of {path} must be a mapping")
        return section

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def config_path(self) -> Path | None:
        """File the settings were loaded from, if any."""
        return self._config_path

    @property
    def cache_duration_ms(self) -> int:
        """Hard TTL applied to every entry."""
        return self._settings.cache_duration_ms

    def is_caching_enabled(self, context: CacheContext | str | None = None) -> bool:
        """Check if caching is enabled for ``context``.

        The master switch is AND-ed with the per-context switch. Without a
        context only the master switch is consulted.
        """
        if not self._settings.enable_caching:
            return False
        if context is None:
            return True

        try:
            resolved = CacheContext(context)
        except ValueError:
            logger.debug("Unknown cache context %r, using master switch", context)
            return True

        if resolved is CacheContext.KIOSK:
            return self._settings.enable_for_kiosk
        if resolved is CacheContext.ADMIN:
            return self._settings.enable_for_admin
        return self._settings.enable_for_owner

    def should_preload_on_kiosk_init(self) -> bool:
        """Check if preloading is enabled for kiosk initialization."""
        return (
            self.is_caching_enabled(CacheContext.KIOSK)
            and self._settings.preload_on_kiosk_init
        )

    def update(self, **changes: Any) -> CacheSettings:
        """Shallow-merge ``changes`` into the live settings.

        All values are validated before any of them is applied.

        Raises:
            ConfigError: If a key is unknown or a value fails validation
        """
        unknown = sorted(set(changes) - set(CacheSettings.model_fields))
        if unknown:
            raise ConfigError(f"Unknown cache configuration keys: {', '.join(unknown)}")

        candidate = self._settings.model_copy(deep=True)
        for key, value in changes.items():
            try:
                setattr(candidate, key, value)
            except ValidationError as e:
                raise ConfigError(f"Invalid value for {key}: {e}") from e

        self._settings = candidate
        logger.info("Cache configuration updated: %s", sorted(changes))
        return self._settings


def create_cache_config(
    cli_config_path: str | Path | None = None,
    settings: CacheSettings | None = None,
    **overrides: Any,
) -> CacheConfig:
    """
    Create a CacheConfig instance.

    Args:
        cli_config_path: Optional config file path provided via CLI
        settings: Explicit settings object (skips file discovery)
        **overrides: Values merged on top of the loaded settings

    Returns:
        Configured CacheConfig instance
    """
    config = CacheConfig(settings=settings, cli_config_path=cli_config_path)
    if overrides:
        config.update(**overrides)
    return config
