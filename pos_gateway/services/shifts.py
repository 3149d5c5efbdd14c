"""
Shift Service

Closing a cashier shift reconciles the drawer against the shift's sales.
The backend's ``close_shift_with_sales`` procedure totals the orders,
stores the closing cash and returns a summary.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pos_gateway.backend import BaseBackendClient, OrderBy, eq
from pos_gateway.cache import QueryCache
from pos_gateway.exceptions import ShiftCloseError
from pos_gateway.pricing import format_currency

logger = logging.getLogger(__name__)


@dataclass
class ShiftCloseResult:
    shift_id: str
    summary: dict[str, Any]

    @property
    def total_sales(self) -> float:
        return float(self.summary.get("total_sales") or 0)

    @property
    def message(self) -> str:
        return f"Shift closed • Total sales: {format_currency(self.total_sales)}"


class ShiftService:
    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    async def close_shift(
        self,
        shift_id: str,
        closing_cash: float,
        notes: Optional[str] = None,
    ) -> ShiftCloseResult:
        """
        Close a shift and return the sales summary.

        Raises:
            ShiftCloseError: The shift is unknown or already closed
        """
        result = await self.backend.rpc("close_shift_with_sales", {
            "p_shift_id": shift_id,
            "p_closing_cash": closing_cash,
            "p_notes": notes,
        })

        if not result or not result.get("success"):
            error = (result or {}).get("error") or "Failed to close shift"
            logger.warning(f"Shift {shift_id} close rejected: {error}")
            raise ShiftCloseError(error)

        close = ShiftCloseResult(shift_id=shift_id, summary=result.get("summary") or {})
        logger.info(f"Shift {shift_id} closed: {close.message}")

        self.cache.invalidate("shifts", "expenses")
        return close

    async def list_shifts(self, status: Optional[str] = None) -> list[dict[str, Any]]:
        filters = [eq("status", status)] if status else []

        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "shifts", filters=filters, order=[OrderBy("opened_at", descending=True)]
            )

        return await self.cache.get_or_load(("shifts", status), load)
