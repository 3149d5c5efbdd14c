"""
In-Memory Backend Implementation

Simulates the hosted backend without any network access.
Used in development mode (ENV_MODE=development) and by the test suite to:
    - Exercise the full order flow locally
    - Run kitchen-display races without a hosted project
    - Develop without internet connectivity

Behavior:
    - Tables are lists of dictionaries; filters, ordering and embedded
      relations are evaluated the same way the REST dialect defines them
    - The named remote procedures return the same envelopes as the
      hosted ones (version conflicts, stock shortages, closed shifts...)
    - Optional simulated latency, like the other mock services
"""

import asyncio
import copy
import math
import random
import re
import uuid
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from pos_gateway.backend.base import BaseBackendClient, Filter, OrderBy, parse_columns
from pos_gateway.exceptions import BackendError
from pos_gateway.timeutils import parse_timestamp, utcnow

logger = logging.getLogger(__name__)


# (table, embedded name) -> (target table, key column, cardinality)
# "many": target[key] == row["id"];  "one": target["id"] == row[key]
RELATIONS: dict[tuple[str, str], tuple[str, str, str]] = {
    ("orders", "order_items"): ("order_items", "order_id", "many"),
    ("order_items", "orders"): ("orders", "order_id", "one"),
    ("recipes", "inventory_items"): ("inventory_items", "inventory_item_id", "one"),
    ("recipes", "menu_items"): ("menu_items", "menu_item_id", "one"),
    ("menu_items", "recipes"): ("recipes", "menu_item_id", "many"),
    ("inventory_transactions", "inventory_items"): ("inventory_items", "inventory_item_id", "one"),
}

# Workflow transitions enforced by update_order_status
WORKFLOW_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"preparing", "cancelled"},
    "preparing": {"ready", "cancelled"},
    "ready": {"served", "completed", "cancelled"},
    "served": {"completed"},
    "completed": set(),
    "cancelled": set(),
}


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in pattern.replace("*", "%").split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _comparable(row_value: Any, filter_value: Any) -> tuple[Any, Any]:
    if isinstance(filter_value, datetime) and isinstance(row_value, str):
        return parse_timestamp(row_value), parse_timestamp(filter_value)
    if isinstance(filter_value, datetime) and isinstance(row_value, datetime):
        return parse_timestamp(row_value), parse_timestamp(filter_value)
    return row_value, filter_value


def matches(row: dict[str, Any], f: Filter) -> bool:
    """Evaluate one filter against a row."""
    value = row.get(f.column)

    if f.op == "is":
        return value is f.value if f.value is None else value == f.value
    if f.op == "in":
        return value in f.value
    if f.op == "ilike":
        return value is not None and bool(_like_to_regex(str(f.value)).match(str(value)))
    if f.op == "neq":
        return value != f.value
    if f.op == "eq":
        left, right = _comparable(value, f.value)
        return left == right

    if value is None:
        return False
    left, right = _comparable(value, f.value)
    if f.op == "gt":
        return left > right
    if f.op == "gte":
        return left >= right
    if f.op == "lt":
        return left < right
    if f.op == "lte":
        return left <= right
    raise BackendError(f"Unsupported filter operator: {f.op}", code="PGRST100")


class InMemoryBackend(BaseBackendClient):
    """
    In-memory implementation of the hosted backend.

    Attributes:
        tables: Mapping of table name to its rows
        loyalty_redemption_rate: Currency value of one loyalty point
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> backend = InMemoryBackend(seed={"inventory_items": [...]})
        >>> await backend.rpc("adjust_inventory_stock", {"p_item_id": "...", "p_quantity": 5})
    """

    def __init__(
        self,
        seed: Optional[dict[str, list[dict[str, Any]]]] = None,
        loyalty_redemption_rate: float = 0.10,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tables: dict[str, list[dict[str, Any]]] = copy.deepcopy(seed or {})
        self.loyalty_redemption_rate = loyalty_redemption_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._clock = clock or utcnow
        self._idempotency: dict[str, str] = {}
        self._order_counter = len(self.tables.get("orders", []))
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []

        self._procedures: dict[str, Callable[[dict[str, Any]], Any]] = {
            "create_order_atomic": self._rpc_create_order_atomic,
            "create_online_order": self._rpc_create_online_order,
            "update_order_status": self._rpc_update_order_status,
            "adjust_inventory_stock": self._rpc_adjust_inventory_stock,
            "close_shift_with_sales": self._rpc_close_shift_with_sales,
            "get_guest_loyalty_balance": self._rpc_get_guest_loyalty_balance,
        }

        logger.info(
            f"InMemoryBackend initialized "
            f"({sum(len(rows) for rows in self.tables.values())} seeded rows)"
        )

    @property
    def provider_name(self) -> str:
        return "memory"

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _find(self, table: str, row_id: Any) -> Optional[dict[str, Any]]:
        for row in self._rows(table):
            if row.get("id") == row_id:
                return row
        return None

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _project(self, table: str, row: dict[str, Any], columns: str) -> dict[str, Any]:
        plain, embeds = parse_columns(columns)
        if not plain or "*" in plain:
            result = dict(row)
        else:
            result = {c: row.get(c) for c in plain}

        for name, inner in embeds.items():
            relation = RELATIONS.get((table, name))
            if relation is None:
                raise BackendError(
                    f"Could not find a relationship between '{table}' and '{name}'",
                    code="PGRST200",
                )
            target, key, kind = relation
            inner_columns = ", ".join(inner) or "*"
            if kind == "many":
                result[name] = [
                    self._project(target, child, inner_columns)
                    for child in self._rows(target)
                    if child.get(key) == row.get("id")
                ]
            else:
                parent = self._find(target, row.get(key))
                result[name] = (
                    self._project(target, parent, inner_columns) if parent else None
                )
        return copy.deepcopy(result)

    # =========================================================================
    # TABLE CRUD
    # =========================================================================

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        await self._simulate_latency()

        rows = [r for r in self._rows(table) if all(matches(r, f) for f in filters or [])]

        # Apply sorts from last to first so the first one wins (stable sort)
        for o in reversed(list(order or [])):
            present = [r for r in rows if r.get(o.column) is not None]
            missing = [r for r in rows if r.get(o.column) is None]
            present.sort(key=lambda r: r[o.column], reverse=o.descending)
            rows = present + missing

        if limit is not None:
            rows = rows[:limit]

        return [self._project(table, r, columns) for r in rows]

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        await self._simulate_latency()
        stored = {"id": str(uuid.uuid4()), "created_at": self._now_iso(), **row}
        self._rows(table).append(stored)
        logger.debug(f"Memory: insert into {table} ({stored['id']})")
        return copy.deepcopy(stored)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        await self._simulate_latency()
        if not filters:
            raise BackendError(f"Refusing to update every row of {table}")
        updated = []
        for row in self._rows(table):
            if all(matches(row, f) for f in filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        await self._simulate_latency()
        params = params or {}
        self.rpc_calls.append((name, copy.deepcopy(params)))

        procedure = self._procedures.get(name)
        if procedure is None:
            raise BackendError(
                f"Could not find the function public.{name} in the schema cache",
                code="PGRST202",
                status=404,
            )
        logger.debug(f"Memory: rpc {name}")
        return copy.deepcopy(procedure(params))

    async def health_check(self) -> bool:
        logger.debug("Memory: Health check passed")
        return True

    # =========================================================================
    # STOCK & TABLE SIDE EFFECTS
    # =========================================================================

    def _record_transaction(
        self,
        item: dict[str, Any],
        quantity: float,
        previous: float,
        kind: str,
        reason: str,
        order_id: Optional[str] = None,
    ) -> None:
        self._rows("inventory_transactions").append({
            "id": str(uuid.uuid4()),
            "inventory_item_id": item["id"],
            "order_id": order_id,
            "transaction_type": kind,
            "quantity": quantity,
            "previous_stock": previous,
            "new_stock": item["current_stock"],
            "reason": reason,
            "created_at": self._now_iso(),
        })

    def _requirements(self, items: list[dict[str, Any]]) -> dict[str, float]:
        """Total ingredient quantities needed by a list of order items."""
        needed: dict[str, float] = {}
        for item in items:
            menu_item_id = item.get("menuItemId") or item.get("menu_item_id")
            if not menu_item_id:
                continue
            for recipe in self._rows("recipes"):
                if recipe.get("menu_item_id") == menu_item_id:
                    key = recipe["inventory_item_id"]
                    needed[key] = needed.get(key, 0) + recipe["quantity"] * item["quantity"]
        return needed

    def _deduct_stock(self, items: list[dict[str, Any]], order_id: str) -> None:
        needed = self._requirements(items)
        for inventory_id, quantity in needed.items():
            inventory = self._find("inventory_items", inventory_id)
            if inventory is None or inventory["current_stock"] < quantity:
                name = inventory.get("name_en") if inventory else inventory_id
                raise BackendError(f"Insufficient stock for {name}", code="P0001")
        for inventory_id, quantity in needed.items():
            inventory = self._find("inventory_items", inventory_id)
            previous = inventory["current_stock"]
            inventory["current_stock"] = previous - quantity
            self._record_transaction(inventory, -quantity, previous, "sale", "Order", order_id)

    def _return_stock(self, order_id: str) -> None:
        items = [
            {"menu_item_id": i.get("menu_item_id"), "quantity": i["quantity"]}
            for i in self._rows("order_items")
            if i.get("order_id") == order_id
        ]
        for inventory_id, quantity in self._requirements(items).items():
            inventory = self._find("inventory_items", inventory_id)
            if inventory is None:
                continue
            previous = inventory["current_stock"]
            inventory["current_stock"] = previous + quantity
            self._record_transaction(
                inventory, quantity, previous, "return", "Order cancelled", order_id
            )

    def _set_table(self, table_number: Optional[str], status: str, order_id: Optional[str]) -> None:
        if not table_number:
            return
        for table in self._rows("restaurant_tables"):
            if table.get("table_number") == table_number:
                table["status"] = status
                table["current_order_id"] = order_id

    # =========================================================================
    # REMOTE PROCEDURES
    # =========================================================================

    def _create_order(self, params: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
        items = params.get("p_items") or []
        if not items:
            raise BackendError("Order must contain at least one item", code="P0001")

        order_id = str(uuid.uuid4())
        self._deduct_stock(items, order_id)

        self._order_counter += 1
        now = self._now_iso()
        order = {
            "id": order_id,
            "order_number": f"ORD-{self._order_counter:04d}",
            "order_type": params.get("p_order_type"),
            "table_number": params.get("p_table_number"),
            "subtotal": params.get("p_subtotal", 0),
            "vat": params.get("p_vat", 0),
            "discount": params.get("p_discount", 0),
            "total": params.get("p_total", 0),
            "payment_method": params.get("p_payment_method"),
            "payment_status": params.get("p_payment_status") or "unpaid",
            "status": "pending",
            "version": 1,
            "notes": params.get("p_notes"),
            "customer_id": params.get("p_customer_id"),
            "created_at": now,
            "updated_at": now,
            **extra,
        }
        self._rows("orders").append(order)

        for item in items:
            self._rows("order_items").append({
                "id": str(uuid.uuid4()),
                "order_id": order_id,
                "menu_item_id": item.get("menuItemId"),
                "dish_name": item.get("dishName"),
                "quantity": item["quantity"],
                "unit_price": item.get("unitPrice", 0),
                "total_price": item.get("totalPrice", 0),
                "notes": item.get("notes"),
                "created_at": now,
            })

        if order["order_type"] == "dine-in":
            self._set_table(order["table_number"], "occupied", order_id)
        return order

    def _rpc_create_order_atomic(self, params: dict[str, Any]) -> dict[str, Any]:
        key = params.get("p_idempotency_key")
        if key and key in self._idempotency:
            existing = self._find("orders", self._idempotency[key])
            return {"order": {**existing, "is_duplicate": True}, "is_duplicate": True}

        order = self._create_order(params, {"idempotency_key": key, "source": "pos"})
        if key:
            self._idempotency[key] = order["id"]
        return {"order": order, "is_duplicate": False}

    def _rpc_create_online_order(self, params: dict[str, Any]) -> dict[str, Any]:
        name = (params.get("p_customer_name") or "").strip()
        phone = (params.get("p_customer_phone") or "").strip()
        if not name or not phone:
            raise BackendError("Customer name and phone are required", code="P0001")

        customer = next(
            (c for c in self._rows("customers") if c.get("phone") == phone), None
        )
        customer_id = customer["id"] if customer else str(uuid.uuid4())
        balance = int(customer.get("loyalty_points") or 0) if customer else 0

        total = float(params.get("p_total") or 0)
        redeemed = int(params.get("p_redeemed_points") or 0)
        discount = 0.0
        if redeemed > 0:
            if balance < redeemed:
                raise BackendError("Insufficient loyalty points", code="P0001")
            discount = min(round(redeemed * self.loyalty_redemption_rate, 2), total)

        # Customer and points change only once the order itself went through
        payable = round(total - discount, 2)
        order = self._create_order(
            {**params, "p_discount": discount, "p_total": payable, "p_customer_id": customer_id},
            {
                "source": "online",
                "customer_name": name,
                "customer_phone": phone,
                "customer_address": params.get("p_customer_address") or None,
                "redeemed_points": redeemed,
            },
        )

        if customer is None:
            customer = {
                "id": customer_id,
                "name": name,
                "phone": phone,
                "loyalty_points": 0,
                "created_at": self._now_iso(),
            }
            self._rows("customers").append(customer)
        customer["loyalty_points"] = balance - redeemed + math.floor(payable)
        return order

    def _rpc_update_order_status(self, params: dict[str, Any]) -> dict[str, Any]:
        order = self._find("orders", params.get("p_order_id"))
        if order is None:
            return {"success": False, "error": "Order not found"}

        expected = params.get("p_expected_version")
        if expected is not None and expected != order["version"]:
            return {
                "success": False,
                "error": (
                    "Conflict: Order has been updated by someone else "
                    f"(expected version {expected}, current {order['version']})"
                ),
            }

        current = order["status"]
        new_status = params.get("p_new_status")
        if new_status not in WORKFLOW_TRANSITIONS.get(current, set()):
            return {
                "success": False,
                "error": f"Invalid status transition from {current} to {new_status}",
            }

        if new_status == "cancelled":
            self._return_stock(order["id"])
        if new_status in ("completed", "cancelled"):
            self._set_table(order.get("table_number"), "available", None)

        order["status"] = new_status
        order["version"] += 1
        order["updated_at"] = self._now_iso()
        return {"success": True, "order": order}

    def _rpc_adjust_inventory_stock(self, params: dict[str, Any]) -> dict[str, Any]:
        item = self._find("inventory_items", params.get("p_item_id"))
        if item is None:
            raise BackendError("Inventory item not found", code="P0002")

        quantity = float(params.get("p_quantity") or 0)
        previous = item["current_stock"]
        new_stock = previous + quantity
        if new_stock < 0:
            raise BackendError(
                f"Insufficient stock: {previous} available, {abs(quantity)} requested",
                code="P0001",
            )

        item["current_stock"] = new_stock
        item["updated_at"] = self._now_iso()
        self._record_transaction(
            item, quantity, previous, "adjustment", params.get("p_reason") or ""
        )
        return {"success": True, "previous_stock": previous, "new_stock": new_stock}

    def _rpc_close_shift_with_sales(self, params: dict[str, Any]) -> dict[str, Any]:
        shift = self._find("shifts", params.get("p_shift_id"))
        if shift is None:
            return {"success": False, "error": "Shift not found"}
        if shift.get("status") != "open":
            return {"success": False, "error": "Shift is already closed"}

        opened_at = parse_timestamp(shift.get("opened_at") or shift.get("created_at"))
        orders = [
            o for o in self._rows("orders")
            if o.get("status") != "cancelled"
            and parse_timestamp(o.get("created_at")) >= opened_at
        ]
        total_sales = round(sum(float(o.get("total") or 0) for o in orders), 2)
        cash_sales = round(
            sum(float(o.get("total") or 0) for o in orders if o.get("payment_method") == "cash"), 2
        )
        opening_cash = float(shift.get("opening_cash") or 0)
        closing_cash = float(params.get("p_closing_cash") or 0)
        expected_cash = round(opening_cash + cash_sales, 2)

        shift.update({
            "status": "closed",
            "closed_at": self._now_iso(),
            "closing_cash": closing_cash,
            "total_sales": total_sales,
            "notes": params.get("p_notes"),
        })

        return {
            "success": True,
            "summary": {
                "shift_id": shift["id"],
                "opened_at": shift.get("opened_at"),
                "closed_at": shift["closed_at"],
                "orders_count": len(orders),
                "total_sales": total_sales,
                "cash_sales": cash_sales,
                "card_sales": round(total_sales - cash_sales, 2),
                "opening_cash": opening_cash,
                "expected_cash": expected_cash,
                "closing_cash": closing_cash,
                "difference": round(closing_cash - expected_cash, 2),
            },
        }

    def _rpc_get_guest_loyalty_balance(self, params: dict[str, Any]) -> dict[str, Any]:
        phone = params.get("p_phone")
        customer = next(
            (c for c in self._rows("customers") if c.get("phone") == phone), None
        )
        rate = self.loyalty_redemption_rate
        if customer is None:
            return {
                "exists": False,
                "points": 0,
                "name": None,
                "redemption_rate": rate,
                "max_discount": 0,
            }
        points = int(customer.get("loyalty_points") or 0)
        return {
            "exists": True,
            "points": points,
            "name": customer.get("name"),
            "redemption_rate": rate,
            "max_discount": round(points * rate, 2),
        }
