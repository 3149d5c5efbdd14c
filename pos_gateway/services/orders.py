"""
Order Service

Order entry, the kitchen workflow, payment status and order history.

The lifecycle (pending → preparing → ready → served/completed, or
cancelled) is owned by the backend's ``update_order_status`` procedure:
it validates the transition, checks the caller's expected version
(optimistic locking), returns stock on cancellation and frees the table
on completion. This service sends the request, interprets the
``{success, order?, error?}`` envelope and invalidates the cached
queries that depend on orders.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from pos_gateway.backend import BaseBackendClient, OrderBy, eq, gte, ilike, in_, lte
from pos_gateway.cache import QueryCache
from pos_gateway.core.config import get_settings
from pos_gateway.exceptions import OrderConflictError, OrderUpdateError
from pos_gateway.pricing import calculate_vat, generate_idempotency_key
from pos_gateway.schemas import (
    ACTIVE_KITCHEN_STATUSES,
    OnlineOrderCreate,
    OrderCreate,
    PaymentStatus,
    WorkflowStatus,
)
from pos_gateway.services.customers import CustomerService, compute_redemption
from pos_gateway.timeutils import end_of_day, start_of_day, utcnow_iso

logger = logging.getLogger(__name__)

ORDER_WITH_ITEMS = "*, order_items(*)"
HISTORY_COLUMNS = "*, order_items(id, dish_name, quantity, unit_price, total_price, notes)"

# Query families refreshed after a workflow change
WORKFLOW_QUERY_KEYS = (
    "orders",
    "order-history",
    "order-stats",
    "restaurant_tables",
    "inventory_items",
    "low-stock-alerts",
    "dashboard-stats",
    "daily-sales",
    "top-selling-items",
    "sales-analytics",
)

# Order creation also changes stock, menu availability and customers
ORDER_CREATION_QUERY_KEYS = WORKFLOW_QUERY_KEYS + (
    "menu-items",
    "menu-items-stock",
    "customer_stats",
)


@dataclass
class OrderCreationResult:
    """
    Outcome of ``create_order``.

    Attributes:
        order: Order row returned by the backend
        status: "created", or "existing" when the idempotency key was replayed
    """
    order: dict[str, Any]
    status: str

    @property
    def is_duplicate(self) -> bool:
        return self.status == "existing"

    @property
    def title(self) -> str:
        return "Order recovered" if self.is_duplicate else "Order placed successfully!"

    @property
    def message(self) -> str:
        number = self.order.get("order_number") or ""
        if self.is_duplicate:
            return f"Order {number or 'unknown'} already existed (idempotency check)."
        return f"Order {number} has been created" if number else "Order has been created"


@dataclass
class OnlineOrderResult:
    order: Any
    subtotal: float
    vat: float
    gross_total: float
    loyalty_discount: float = 0.0
    redeemed_points: int = 0

    @property
    def final_total(self) -> float:
        return round(self.gross_total - self.loyalty_discount, 2)


@dataclass
class OrderStats:
    total_orders: int
    total_revenue: float
    average_order_value: float
    status_counts: dict[str, int] = field(default_factory=dict)
    payment_status_counts: dict[str, int] = field(default_factory=dict)
    payment_method_counts: dict[str, int] = field(default_factory=dict)


def compute_order_stats(orders: list[dict[str, Any]]) -> OrderStats:
    """Aggregate order rows into counts and revenue."""
    total_orders = len(orders)
    total_revenue = sum(float(o.get("total") or 0) for o in orders)

    status_counts: dict[str, int] = {}
    payment_status_counts: dict[str, int] = {}
    payment_method_counts: dict[str, int] = {}
    for order in orders:
        status = order.get("status")
        status_counts[status] = status_counts.get(status, 0) + 1

        payment_status = order.get("payment_status") or PaymentStatus.UNPAID.value
        payment_status_counts[payment_status] = payment_status_counts.get(payment_status, 0) + 1

        method = order.get("payment_method")
        payment_method_counts[method] = payment_method_counts.get(method, 0) + 1

    return OrderStats(
        total_orders=total_orders,
        total_revenue=total_revenue,
        average_order_value=total_revenue / total_orders if total_orders else 0.0,
        status_counts=status_counts,
        payment_status_counts=payment_status_counts,
        payment_method_counts=payment_method_counts,
    )


class OrderService:
    """
    Order operations against the hosted backend.

    Example:
        >>> service = OrderService(get_backend(), get_query_cache())
        >>> order = await service.update_workflow_status("order-1", "preparing", 1)
        >>> order["version"]
        2
    """

    def __init__(
        self,
        backend: BaseBackendClient,
        cache: QueryCache,
        customers: Optional[CustomerService] = None,
    ):
        self.backend = backend
        self.cache = cache
        self.customers = customers or CustomerService(backend, cache)

    # =========================================================================
    # ORDER ENTRY
    # =========================================================================

    async def create_order(self, data: OrderCreate) -> OrderCreationResult:
        """
        Create a POS order through ``create_order_atomic``.

        The backend inserts the order and its items, deducts recipe stock and
        occupies the table in one transaction. Reusing an idempotency key
        returns the order created by the first attempt.
        """
        idempotency_key = data.idempotency_key or generate_idempotency_key()

        result = await self.backend.rpc("create_order_atomic", {
            "p_idempotency_key": idempotency_key,
            "p_order_type": data.order_type.value,
            "p_table_number": data.table_number or None,
            "p_subtotal": data.subtotal,
            "p_vat": data.vat,
            "p_discount": data.discount,
            "p_total": data.total,
            "p_payment_method": data.payment_method.value,
            "p_payment_status": PaymentStatus.UNPAID.value,
            "p_notes": data.notes or None,
            "p_items": [item.to_rpc() for item in data.items],
            "p_customer_id": data.customer_id or None,
        })

        # Wrapped ({"order": {...}}) and flat results are both in use
        order = result.get("order") or result
        is_duplicate = bool(result.get("is_duplicate") or order.get("is_duplicate"))
        status = "existing" if is_duplicate else "created"

        logger.info(
            f"Order {order.get('order_number', '?')} {status} "
            f"(key={idempotency_key[:8]}…, items={len(data.items)})"
        )

        self.cache.invalidate(*ORDER_CREATION_QUERY_KEYS)
        return OrderCreationResult(order=order, status=status)

    async def create_online_order(self, data: OnlineOrderCreate) -> OnlineOrderResult:
        """
        Create an order from the public menu, optionally redeeming points.

        Totals are recomputed from the cart lines; the backend applies the
        loyalty discount for the points sent.
        """
        settings = get_settings()

        subtotal = sum(item.price * item.quantity for item in data.items)
        vat = calculate_vat(subtotal, settings.vat_rate)
        gross_total = subtotal + vat

        discount, points = 0.0, 0
        if data.redeem_points:
            balance = await self.customers.loyalty_balance(data.customer_phone)
            if balance is not None:
                discount, points = compute_redemption(balance, gross_total)

        items = []
        for item in data.items:
            if data.lang == "ar":
                dish_name = item.name_ar or item.name_en or "Unknown Item"
            else:
                dish_name = item.name_en or item.name_ar or "Unknown Item"
            items.append({
                "menuItemId": item.menu_item_id,
                "dishName": dish_name,
                "quantity": item.quantity,
                "unitPrice": item.price,
                "totalPrice": item.price * item.quantity,
                "notes": "",
            })

        order = await self.backend.rpc("create_online_order", {
            "p_customer_name": data.customer_name,
            "p_customer_phone": data.customer_phone,
            "p_customer_address": (
                (data.customer_address or "") if data.order_type.value == "delivery" else ""
            ),
            "p_order_type": data.order_type.value,
            "p_payment_method": data.payment_method.value,
            "p_subtotal": subtotal,
            "p_vat": vat,
            "p_total": gross_total,
            "p_items": items,
            "p_notes": data.notes,
            "p_redeemed_points": points,
        })

        logger.info(
            f"Online order for {data.customer_phone}: total={gross_total:.2f} "
            f"redeemed_points={points}"
        )

        self.cache.invalidate(*ORDER_CREATION_QUERY_KEYS, "customers", "loyalty_balance")
        return OnlineOrderResult(
            order=order,
            subtotal=subtotal,
            vat=vat,
            gross_total=gross_total,
            loyalty_discount=discount,
            redeemed_points=points,
        )

    # =========================================================================
    # WORKFLOW
    # =========================================================================

    async def update_workflow_status(
        self,
        order_id: str,
        new_status: str,
        expected_version: int,
    ) -> dict[str, Any]:
        """
        Move an order to ``new_status`` if it is still at ``expected_version``.

        Args:
            order_id: Order to update
            new_status: Target workflow status
            expected_version: Version the caller last read

        Returns:
            The updated order row (with its new version)

        Raises:
            OrderConflictError: Another client updated the order first
            OrderUpdateError: The backend refused the transition
            BackendError: The call itself failed (permissions, network)
        """
        status = WorkflowStatus(new_status).value

        result = await self.backend.rpc("update_order_status", {
            "p_order_id": order_id,
            "p_new_status": status,
            "p_expected_version": expected_version,
        })

        if not result or not result.get("success"):
            error = (result or {}).get("error") or "Failed to update order status"
            logger.warning(f"Order {order_id} -> {status} rejected: {error}")
            if "conflict" in error.lower():
                raise OrderConflictError(error)
            raise OrderUpdateError(error)

        order = result.get("order") or {"id": order_id, "status": status}
        logger.info(
            f"Order {order_id} -> {status} (version {order.get('version', '?')})"
        )

        self.cache.invalidate(*WORKFLOW_QUERY_KEYS)
        return order

    async def update_payment_status(self, order_id: str, status: str) -> dict[str, Any]:
        """Mark an order paid or unpaid without touching the workflow status."""
        payment_status = PaymentStatus(status).value

        order = await self.backend.update_one(
            "orders",
            {"payment_status": payment_status, "updated_at": utcnow_iso()},
            [eq("id", order_id)],
        )
        logger.info(f"Order {order_id} payment status -> {payment_status}")

        self.cache.invalidate("order-history", "order-stats", "orders")
        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list_active_orders(self) -> list[dict[str, Any]]:
        """Orders the kitchen still has to work on, oldest first."""

        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "orders",
                ORDER_WITH_ITEMS,
                filters=[in_("status", ACTIVE_KITCHEN_STATUSES)],
                order=[OrderBy("created_at")],
            )

        return await self.cache.get_or_load(("orders",), load)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self.backend.select_one("orders", ORDER_WITH_ITEMS, [eq("id", order_id)])

    async def order_history(
        self,
        search: str = "",
        status: str = "all",
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[dict[str, Any]]:
        """
        Orders newest first, filtered by number, status and day range.

        A ``status`` of "paid" filters on the payment status instead of the
        workflow status.
        """
        filters = []
        if search:
            filters.append(ilike("order_number", f"%{search}%"))
        if status and status != "all":
            if status == PaymentStatus.PAID.value:
                filters.append(eq("payment_status", PaymentStatus.PAID.value))
            else:
                filters.append(eq("status", status))
        if start_date:
            filters.append(gte("created_at", start_of_day(start_date)))
        if end_date:
            filters.append(lte("created_at", end_of_day(end_date)))

        async def load() -> list[dict[str, Any]]:
            return await self.backend.select(
                "orders",
                HISTORY_COLUMNS,
                filters=filters,
                order=[OrderBy("created_at", descending=True)],
            )

        key = ("order-history", search, status, start_date, end_date)
        return await self.cache.get_or_load(key, load)

    async def order_stats(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> OrderStats:
        filters = []
        if start_date:
            filters.append(gte("created_at", start_of_day(start_date)))
        if end_date:
            filters.append(lte("created_at", end_of_day(end_date)))

        async def load() -> OrderStats:
            rows = await self.backend.select(
                "orders",
                "status, total, payment_method, payment_status",
                filters=filters,
            )
            return compute_order_stats(rows)

        return await self.cache.get_or_load(("order-stats", start_date, end_date), load)
