"""
Menu Service

Read side of the menu used by the POS grid, the public menu and the
menu chat's context.
"""

from typing import Any

from pos_gateway.backend import BaseBackendClient, OrderBy, eq
from pos_gateway.cache import QueryCache


class MenuService:
    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    async def available_items(self) -> list[dict[str, Any]]:
        """Available menu items ordered by category then display order."""
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "menu_items",
                filters=[eq("is_available", True)],
                order=[OrderBy("category"), OrderBy("display_order")],
            )

        return await self.cache.get_or_load(("menu-items",), load)

    async def active_categories(self) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "menu_categories",
                filters=[eq("is_active", True)],
                order=[OrderBy("display_order")],
            )

        return await self.cache.get_or_load(("menu-categories",), load)

    async def chat_items(self) -> list[dict[str, Any]]:
        """Available menu items in display order only, as the menu assistant lists them."""
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "menu_items",
                filters=[eq("is_available", True)],
                order=[OrderBy("display_order")],
            )

        return await self.cache.get_or_load(("menu-items", "chat"), load)
