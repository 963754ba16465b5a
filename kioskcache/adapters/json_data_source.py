"""Data source reading a JSON or YAML fixture file."""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from kioskcache.core.errors import DataSourceError


logger = logging.getLogger(__name__)

TABLES = (
    "restaurants",
    "menu_categories",
    "menu_items",
    "topping_categories",
    "toppings",
)


def _display_order(row: dict[str, Any]) -> Any:
    return row.get("display_order") or 0


class JsonFileDataSource:
    """Serves records from a fixture file with one list per table.

    The file is read on first use. ``.yaml`` and ``.yml`` files are parsed
    as YAML, everything else as JSON.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._tables: dict[str, list[dict[str, Any]]] | None = None

    async def fetch_restaurant_by_slug(self, slug: str) -> dict[str, Any] | None:
        for row in self._table("restaurants"):
            if row.get("slug") == slug:
                return dict(row)
        return None

    async def fetch_menu_categories(self, restaurant_id: str) -> list[dict[str, Any]]:
        return self._rows("menu_categories", "restaurant_id", restaurant_id)

    async def fetch_menu_items(self, category_id: str) -> list[dict[str, Any]]:
        return self._rows("menu_items", "category_id", category_id)

    async def fetch_topping_categories(
        self, restaurant_id: str
    ) -> list[dict[str, Any]]:
        return self._rows("topping_categories", "restaurant_id", restaurant_id)

    async def fetch_toppings(self, category_id: str) -> list[dict[str, Any]]:
        return self._rows("toppings", "category_id", category_id)

    def _rows(self, table: str, column: str, value: str) -> list[dict[str, Any]]:
        rows = [
            dict(row) for row in self._table(table) if str(row.get(column)) == value
        ]
        return sorted(rows, key=_display_order)

    def _table(self, table: str) -> list[dict[str, Any]]:
        if self._tables is None:
            self._tables = self._load()
        return self._tables.get(table, [])

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        try:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(text) or {}
            else:
                data = json.loads(text)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise DataSourceError(f"Cannot read fixture {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise DataSourceError(f"Fixture {self.path} must be a mapping of tables")

        tables = {}
        for table in TABLES:
            rows = data.get(table, [])
            if not isinstance(rows, list):
                raise DataSourceError(f"Table {table} in {self.path} must be a list")
            tables[table] = [row for row in rows if isinstance(row, dict)]
        logger.debug(
            "Loaded fixture %s: %s",
            self.path,
            {table: len(rows) for table, rows in tables.items()},
        )
        return tables
