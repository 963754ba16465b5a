"""PostgREST-style HTTP data source."""

import asyncio
import logging
from typing import Any
from urllib.parse import urljoin

import requests

from kioskcache.core.errors import DataSourceError


logger = logging.getLogger(__name__)


class RestDataSource:
    """Reads restaurants, menus and toppings from a PostgREST API.

    Requests are blocking and run in a worker thread so the event loop is
    never held. Nothing is cached here.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the data source.

        Args:
            base_url: REST endpoint root, e.g. ``https://host/rest/v1/``
            api_key: Key sent as ``apikey`` and bearer token
            timeout: Request timeout in seconds
            session: HTTP session to reuse
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"accept": "application/json"})
        if api_key:
            self.session.headers.update(
                {"apikey": api_key, "authorization": f"Bearer {api_key}"}
            )

    async def fetch_restaurant_by_slug(self, slug: str) -> dict[str, Any] | None:
        rows = await self._select("restaurants", {"slug": f"eq.{slug}"}, order=None)
        return rows[0] if rows else None

    async def fetch_menu_categories(self, restaurant_id: str) -> list[dict[str, Any]]:
        return await self._select(
            "menu_categories", {"restaurant_id": f"eq.{restaurant_id}"}
        )

    async def fetch_menu_items(self, category_id: str) -> list[dict[str, Any]]:
        return await self._select("menu_items", {"category_id": f"eq.{category_id}"})

    async def fetch_topping_categories(
        self, restaurant_id: str
    ) -> list[dict[str, Any]]:
        return await self._select(
            "topping_categories", {"restaurant_id": f"eq.{restaurant_id}"}
        )

    async def fetch_toppings(self, category_id: str) -> list[dict[str, Any]]:
        return await self._select("toppings", {"category_id": f"eq.{category_id}"})

    async def _select(
        self,
        table: str,
        filters: dict[str, str],
        order: str | None = "display_order.asc",
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **filters}
        if order:
            params["order"] = order
        return await asyncio.to_thread(self._get, table, params)

    def _get(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        url = urljoin(self.base_url, table)
        logger.debug("GET %s %s", url, params)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DataSourceError(f"Network error fetching {table}: {e}") from e
        return self._handle_response(table, response)

    @staticmethod
    def _handle_response(
        table: str, response: requests.Response
    ) -> list[dict[str, Any]]:
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise DataSourceError(
                f"Request for {table} failed: {e}", status_code=response.status_code
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            preview = response.text[:200] if response.text else "(empty)"
            raise DataSourceError(
                f"Invalid JSON for {table}: {preview}",
                status_code=response.status_code,
            ) from e

        if not isinstance(data, list):
            raise DataSourceError(f"Expected a list of {table} rows")
        return data
