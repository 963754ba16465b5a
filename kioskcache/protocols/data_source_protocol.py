"""Protocol for the backend data source feeding the cache."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DataSourceProtocol(Protocol):
    """Async source of restaurant, menu and topping records.

    Implementations never cache. Not-found records are reported as None or an
    empty list; transport failures raise ``DataSourceError``.
    """

    async def fetch_restaurant_by_slug(self, slug: str) -> dict[str, Any] | None:
        """Fetch the restaurant identified by its public slug."""
        ...

    async def fetch_menu_categories(self, restaurant_id: str) -> list[dict[str, Any]]:
        """Fetch the menu categories of a restaurant."""
        ...

    async def fetch_menu_items(self, category_id: str) -> list[dict[str, Any]]:
        """Fetch the items of one menu category."""
        ...

    async def fetch_topping_categories(
        self, restaurant_id: str
    ) -> list[dict[str, Any]]:
        """Fetch the topping categories of a restaurant."""
        ...

    async def fetch_toppings(self, category_id: str) -> list[dict[str, Any]]:
        """Fetch the toppings of one topping category."""
        ...
