"""Configuration models for kioskcache."""

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kioskcache.models.base import KioskCacheBaseModel


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def _default_cache_path() -> Path:
    if "XDG_CACHE_HOME" in os.environ:
        return Path(os.environ["XDG_CACHE_HOME"]) / "kioskcache"
    return Path.home() / ".cache" / "kioskcache"


class LoggingConfig(KioskCacheBaseModel):
    """Logging options applied by ``setup_logging_from_config``."""

    level: str = Field(default="WARNING", description="Root log level")
    json_logs: bool = Field(default=False, description="Render console logs as JSON")
    file_path: Path | None = Field(
        default=None, description="Optional JSON-lines log file"
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper_v = v.strip().upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return upper_v

    @field_validator("file_path", mode="before")
    @classmethod
    def validate_file_path(cls, v: Any) -> Path | None:
        """Expand user directories in the log file path."""
        if v is None or v == "":
            return None
        return Path(v).expanduser()


class CacheSettings(BaseSettings):
    """Cache settings with automatic environment variable support.

    Precedence order (highest to lowest):
    1. Environment variables (``KIOSKCACHE_*``)
    2. Constructor arguments (file data)
    3. .env file
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="KIOSKCACHE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
        validate_assignment=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Environment variables override file configuration."""
        return (
            env_settings,
            init_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Context gate
    enable_caching: bool = Field(default=True, description="Master switch for caching")
    enable_for_kiosk: bool = Field(
        default=True, description="Cache data for customer-facing kiosk views"
    )
    enable_for_admin: bool = Field(
        default=False, description="Cache data for the admin dashboard"
    )
    enable_for_owner: bool = Field(
        default=False, description="Cache data for the restaurant owner dashboard"
    )
    preload_on_kiosk_init: bool = Field(
        default=True, description="Preload restaurant data when a kiosk view starts"
    )
    preload_images: bool = Field(
        default=True, description="Download restaurant and menu images on preload"
    )
    preload_max_retries: int = Field(
        default=2, ge=0, description="Retries of a failed preload fetch"
    )
    preload_retry_base_delay_ms: int = Field(
        default=1000, ge=0, description="First retry delay, doubled on every retry"
    )
    preload_retry_max_delay_ms: int = Field(
        default=5000, ge=0, description="Upper bound of the retry delay"
    )

    # Expiry
    cache_duration_ms: int = Field(
        default=24 * HOUR_MS, gt=0, description="Hard TTL of every cache entry"
    )
    max_entry_age_ms: int = Field(
        default=24 * HOUR_MS,
        gt=0,
        description="Entries older than this are removed by the optimization sweep",
    )
    stale_window_ms: int = Field(
        default=15 * MINUTE_MS,
        gt=0,
        description="Entries older than this count as stale in health reports",
    )

    # Storage layout
    namespace_prefix: str = Field(
        default="kiosk_cache_",
        min_length=1,
        description="Prefix of every physical key; changing it orphans old entries",
    )
    memory_tier_size: int = Field(
        default=100, ge=0, description="Entries kept in the in-memory tier (0 disables)"
    )
    storage_quota_bytes: int = Field(
        default=10 * 1024 * 1024, gt=0, description="Durable store quota"
    )
    cache_path: Path = Field(
        default_factory=_default_cache_path,
        description="Directory for the durable store and image cache",
    )

    # Scheduling
    optimization_interval_seconds: float = Field(
        default=600.0, gt=0, description="Period of the coordinator memory sweep"
    )
    smart_optimization_interval_seconds: float = Field(
        default=300.0, gt=0, description="Period of the manager smart optimization"
    )
    smart_optimization_cooldown_ms: int = Field(
        default=30 * 1000, ge=0, description="Minimum gap between smart optimizations"
    )
    background_refresh_delay_seconds: float = Field(
        default=0.1, ge=0, description="Delay before a scheduled background refresh"
    )
    low_priority_usage_threshold: float = Field(
        default=80.0,
        ge=0,
        le=100,
        description="Storage usage percent above which low-priority entries go",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("cache_path", mode="before")
    @classmethod
    def expand_cache_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class CacheContext(str, Enum):
    """Logical surface consuming the cache."""

    KIOSK = "kiosk"
    ADMIN = "admin"
    OWNER = "owner"
