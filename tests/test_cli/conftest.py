"""Test fixtures for CLI tests."""

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import yaml

from kioskcache.config import CacheConfig
from kioskcache.core.cache import CacheService, create_cache_service
from tests.fakes import (
    MENU_CATEGORIES,
    MENU_ITEMS,
    RESTAURANT,
    TOPPING_CATEGORIES,
    TOPPINGS,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    """Drop the handlers the CLI installs on the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """YAML config pointing the cache at a temporary directory."""
    path = tmp_path / "cli-config.yaml"
    path.write_text(
        yaml.safe_dump({"cache": {"cache_path": str(tmp_path / "cli-cache")}})
    )
    return path


@pytest.fixture
def seeded_service(config_file: Path) -> Generator[CacheService, None, None]:
    """Cache service on the CLI's durable store, for seeding and checking."""
    service = create_cache_service(config=CacheConfig(cli_config_path=config_file))
    yield service
    service.store.close()  # type: ignore[attr-defined]


@pytest.fixture
def fixture_file(tmp_path: Path) -> Path:
    """JSON data source fixture with one restaurant."""
    data = {
        "restaurants": [RESTAURANT],
        "menu_categories": [
            {**category, "restaurant_id": restaurant_id}
            for restaurant_id, categories in MENU_CATEGORIES.items()
            for category in categories
        ],
        "menu_items": [
            {**item, "category_id": category_id}
            for category_id, items in MENU_ITEMS.items()
            for item in items
        ],
        "topping_categories": [
            {**category, "restaurant_id": restaurant_id}
            for restaurant_id, categories in TOPPING_CATEGORIES.items()
            for category in categories
        ],
        "toppings": [
            {**topping, "category_id": category_id}
            for category_id, toppings in TOPPINGS.items()
            for topping in toppings
        ],
    }
    path = tmp_path / "kiosk-data.json"
    path.write_text(json.dumps(data))
    return path
