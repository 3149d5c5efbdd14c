"""
Table Service

Dining tables are never removed: deleting one clears its ``is_active``
flag so historical orders keep their table number.
"""

import logging
from typing import Any

from pos_gateway.backend import BaseBackendClient, OrderBy, eq
from pos_gateway.cache import QueryCache
from pos_gateway.schemas import TableCreate, TableUpdate
from pos_gateway.timeutils import utcnow_iso

logger = logging.getLogger(__name__)

# Sentinel for "leave current_order_id as it is"
UNSET: Any = object()


class TableService:
    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    async def list_tables(self) -> list[dict[str, Any]]:
        """Active tables ordered by number."""
        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "restaurant_tables",
                filters=[eq("is_active", True)],
                order=[OrderBy("table_number")],
            )

        return await self.cache.get_or_load(("restaurant_tables",), load)

    async def create_table(self, data: TableCreate) -> dict[str, Any]:
        row = data.model_dump(mode="json")
        row.update({"is_active": True, "current_order_id": None})
        table = await self.backend.insert("restaurant_tables", row)
        logger.info(f"Table {data.table_number} created")
        self._invalidate()
        return table

    async def update_table(self, table_id: str, data: TableUpdate) -> dict[str, Any]:
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = utcnow_iso()
        table = await self.backend.update_one("restaurant_tables", values, [eq("id", table_id)])
        self._invalidate()
        return table

    async def delete_table(self, table_id: str) -> dict[str, Any]:
        table = await self.backend.update_one(
            "restaurant_tables",
            {"is_active": False, "updated_at": utcnow_iso()},
            [eq("id", table_id)],
        )
        logger.info(f"Table {table_id} deactivated")
        self._invalidate()
        return table

    async def update_status(
        self,
        table_id: str,
        status: str,
        order_id: Any = UNSET,
    ) -> dict[str, Any]:
        """
        Set a table's status.

        Args:
            table_id: Table to update
            status: available, occupied, reserved or cleaning
            order_id: New ``current_order_id`` (None clears it); omit to keep it
        """
        values: dict[str, Any] = {"status": status, "updated_at": utcnow_iso()}
        if order_id is not UNSET:
            values["current_order_id"] = order_id

        table = await self.backend.update_one("restaurant_tables", values, [eq("id", table_id)])
        logger.info(f"Table {table_id} -> {status}")
        self._invalidate()
        return table

    def _invalidate(self) -> None:
        self.cache.invalidate("restaurant_tables", "dashboard-stats")
