"""
Inventory Service

Stock adjustments, low-stock alerts and recipe-based availability of
menu items. Stock changes go through the ``adjust_inventory_stock``
procedure so the backend applies them atomically and records the
movement.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pos_gateway.backend import BaseBackendClient, OrderBy, eq, in_
from pos_gateway.cache import QueryCache
from pos_gateway.exceptions import BackendError
from pos_gateway.schemas import InventoryItemCreate

logger = logging.getLogger(__name__)

RECIPE_STOCK_COLUMNS = (
    "menu_item_id, inventory_item_id, quantity, "
    "inventory_items(name_en, name_ar, current_stock)"
)


@dataclass
class StockAdjustmentResult:
    item_id: str
    quantity: float
    reason: str
    previous_stock: float
    new_stock: float

    @property
    def message(self) -> str:
        return f"Stock changed from {self.previous_stock:.2f} to {self.new_stock:.2f}"


@dataclass
class LowStockAlert:
    id: str
    name_en: str
    name_ar: str
    current_stock: float
    minimum_stock: float
    unit: str
    severity: str


@dataclass
class MenuItemStock:
    menu_item_id: str
    has_recipe: bool = False
    is_available: bool = True
    insufficient_ingredients: list[str] = field(default_factory=list)


def build_low_stock_alerts(items: list[dict[str, Any]]) -> list[LowStockAlert]:
    """
    Keep items below their minimum; below half the minimum is an error.
    """
    alerts = []
    for item in items:
        current = item.get("current_stock") or 0
        minimum = item.get("minimum_stock") or 0
        if current >= minimum:
            continue
        alerts.append(LowStockAlert(
            id=item["id"],
            name_en=item.get("name_en"),
            name_ar=item.get("name_ar"),
            current_stock=current,
            minimum_stock=minimum,
            unit=item.get("unit"),
            severity="error" if current < minimum / 2 else "warning",
        ))
    return alerts


def _ingredient(recipe: dict[str, Any]) -> tuple[float, str]:
    inventory = recipe.get("inventory_items") or {}
    return inventory.get("current_stock") or 0, inventory.get("name_en") or "Unknown"


class InventoryService:
    """Inventory operations against the hosted backend."""

    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    async def adjust_stock(
        self,
        item_id: str,
        quantity: float,
        reason: Optional[str] = None,
    ) -> StockAdjustmentResult:
        """
        Add (positive) or remove (negative) stock.

        Args:
            item_id: Inventory item
            quantity: Signed change in the item's unit
            reason: Free text; defaults to a manual increase/decrease label

        Raises:
            BackendError: The item is unknown or the stock would go negative
        """
        reason = reason or ("Manual stock increase" if quantity > 0 else "Manual stock decrease")

        data = await self.backend.rpc("adjust_inventory_stock", {
            "p_item_id": item_id,
            "p_quantity": quantity,
            "p_reason": reason,
        })
        # Payload may arrive as a JSON string
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, dict):
            raise BackendError("Unexpected response from adjust_inventory_stock")

        self.cache.invalidate(
            "inventory_items", "inventory_transactions", "low-stock-alerts", "menu-items-stock"
        )

        result = StockAdjustmentResult(
            item_id=item_id,
            quantity=quantity,
            reason=reason,
            previous_stock=float(data.get("previous_stock") or 0),
            new_stock=float(data.get("new_stock") or 0),
        )
        logger.info(f"Inventory {item_id}: {result.message} ({reason})")
        return result

    async def list_items(self) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select("inventory_items", order=[OrderBy("name_en")])

        return await self.cache.get_or_load(("inventory_items",), load)

    async def create_item(self, data: InventoryItemCreate) -> dict[str, Any]:
        item = await self.backend.insert("inventory_items", data.model_dump())
        logger.info(f"Inventory item created: {item['id']} ({data.name_en})")
        self.cache.invalidate("inventory_items", "low-stock-alerts")
        return item

    async def movement_history(self, item_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent stock movements of one item."""
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "inventory_transactions",
                filters=[eq("inventory_item_id", item_id)],
                order=[OrderBy("created_at", descending=True)],
                limit=limit,
            )

        return await self.cache.get_or_load(("inventory_transactions", item_id, limit), load)

    async def low_stock_alerts(self) -> list[LowStockAlert]:
        async def load() -> list[LowStockAlert]:
            # Two-column comparison, so the filtering happens here
            items = await self.backend.select(
                "inventory_items",
                "id, name_en, name_ar, current_stock, minimum_stock, unit",
                order=[OrderBy("current_stock")],
            )
            return build_low_stock_alerts(items)

        return await self.cache.get_or_load(("low-stock-alerts",), load)

    async def menu_items_stock(self, menu_item_ids: list[str]) -> list[MenuItemStock]:
        """Availability of each menu item given its recipe and current stock."""
        if not menu_item_ids:
            return []

        async def load() -> list[MenuItemStock]:
            recipes = await self.backend.select(
                "recipes",
                RECIPE_STOCK_COLUMNS,
                filters=[in_("menu_item_id", menu_item_ids)],
            )

            stock = {mid: MenuItemStock(menu_item_id=mid) for mid in menu_item_ids}
            for recipe in recipes:
                entry = stock.get(recipe.get("menu_item_id"))
                if entry is None:
                    continue
                entry.has_recipe = True
                current, name = _ingredient(recipe)
                if current < recipe["quantity"]:
                    entry.is_available = False
                    entry.insufficient_ingredients.append(name)
            return list(stock.values())

        return await self.cache.get_or_load(("menu-items-stock", tuple(menu_item_ids)), load)

    async def check_menu_item_stock(
        self,
        menu_item_id: str,
        quantity: int = 1,
    ) -> tuple[bool, list[str]]:
        """
        Check whether ``quantity`` portions of a menu item can be made.

        Items without a recipe need no inventory and are always available.

        Returns:
            (available, insufficient_ingredient_names)
        """
        recipes = await self.backend.select(
            "recipes",
            RECIPE_STOCK_COLUMNS,
            filters=[eq("menu_item_id", menu_item_id)],
        )

        insufficient = []
        for recipe in recipes:
            current, name = _ingredient(recipe)
            if current < recipe["quantity"] * quantity:
                insufficient.append(name)
        return not insufficient, insufficient
