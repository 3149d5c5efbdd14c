"""
Analytics Service

Dashboard counters and sales reports. The backend returns raw rows;
the aggregation is done here by the pure ``build_*`` functions so it can
be tested without a backend.

Hour buckets are labelled in the restaurant's local timezone.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from pos_gateway.backend import BaseBackendClient, gte, in_, lte, neq
from pos_gateway.cache import QueryCache
from pos_gateway.exceptions import ValidationError
from pos_gateway.timeutils import (
    end_of_day,
    hour_label,
    local_zone,
    parse_timestamp,
    start_of_day,
    utcnow,
)

logger = logging.getLogger(__name__)

# "paid" is a legacy workflow value still present on old rows
DASHBOARD_ACTIVE_STATUSES = ["pending", "preparing", "ready", "served", "paid"]
ANALYTICS_STATUSES = ["paid", "served", "ready", "preparing", "pending"]

TOP_SELLING_LIMIT = 5
TOP_REVENUE_LIMIT = 10

MAX_ANALYTICS_DAYS = 31
HOUR = timedelta(hours=1)


# =============================================================================
# RESULT OBJECTS
# =============================================================================

@dataclass
class DashboardStats:
    today_sales: float
    active_orders: int
    occupied_tables: int
    total_tables: int
    average_order_value: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SalesAnalytics:
    total_sales: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    hourly_trend: list[dict[str, Any]] = field(default_factory=list)
    payment_methods: list[dict[str, Any]] = field(default_factory=list)
    top_items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _amount(value: Any) -> float:
    return float(value or 0)


# =============================================================================
# AGGREGATION
# =============================================================================

def build_dashboard_stats(
    today_orders: list[dict[str, Any]],
    active_count: int,
    tables: list[dict[str, Any]],
) -> DashboardStats:
    """Only completed orders count towards today's sales."""
    completed = [o for o in today_orders if o.get("status") == "completed"]
    today_sales = sum(_amount(o.get("total")) for o in completed)

    return DashboardStats(
        today_sales=today_sales,
        active_orders=active_count,
        occupied_tables=sum(1 for t in tables if t.get("status") == "occupied"),
        total_tables=len(tables),
        average_order_value=today_sales / len(completed) if completed else 0.0,
    )


def build_daily_sales(orders: list[dict[str, Any]], tz=None) -> list[dict[str, Any]]:
    """
    Sum order totals into 24 hourly buckets, "12AM" through "11PM".
    """
    tz = tz or local_zone()
    buckets = [0.0] * 24
    for order in orders:
        created = parse_timestamp(order.get("created_at"))
        if created is None:
            continue
        buckets[created.astimezone(tz).hour] += _amount(order.get("total"))

    labels = [hour_label(datetime(2000, 1, 1, h)) for h in range(24)]
    return [{"hour": label, "sales": sales} for label, sales in zip(labels, buckets)]


def build_top_selling(items: list[dict[str, Any]], limit: int = TOP_SELLING_LIMIT) -> list[dict[str, Any]]:
    """
    Aggregate order items by dish name, highest quantity first.

    Items whose order was cancelled are skipped.
    """
    totals: dict[str, dict[str, Any]] = {}
    for item in items:
        order = item.get("orders") or {}
        if order.get("status") == "cancelled":
            continue
        name = item.get("dish_name")
        entry = totals.setdefault(name, {"name": name, "quantity": 0, "revenue": 0.0})
        entry["quantity"] += item.get("quantity") or 0
        entry["revenue"] += _amount(item.get("total_price"))

    ranked = sorted(totals.values(), key=lambda e: e["quantity"], reverse=True)
    return ranked[:limit]


def build_hourly_trend(
    orders: list[dict[str, Any]],
    start: datetime,
    end: datetime,
) -> list[dict[str, Any]]:
    """One bucket per hour from the hour containing ``start`` up to ``end``."""
    tz = start.tzinfo or local_zone()
    first = start.replace(minute=0, second=0, microsecond=0)
    hours = int((end - first) // HOUR) + 1 if end >= first else 0

    buckets = [0.0] * hours
    for order in orders:
        created = parse_timestamp(order.get("created_at"))
        if created is None or created < first:
            continue
        index = int((created - first) // HOUR)
        if index < hours:
            buckets[index] += _amount(order.get("total"))

    return [
        {"hour": hour_label((first + i * HOUR).astimezone(tz)), "sales": sales}
        for i, sales in enumerate(buckets)
    ]


def build_payment_methods(orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Share of orders per payment method, as a rounded percentage."""
    counts: dict[str, int] = {}
    for order in orders:
        method = order.get("payment_method") or "cash"
        counts[method] = counts.get(method, 0) + 1

    total = len(orders)
    return [
        {
            "name": method[:1].upper() + method[1:],
            "value": round(count / total * 100) if total else 0,
            "count": count,
        }
        for method, count in counts.items()
    ]


def build_top_items_by_revenue(
    orders: list[dict[str, Any]],
    limit: int = TOP_REVENUE_LIMIT,
) -> list[dict[str, Any]]:
    totals: dict[str, dict[str, Any]] = {}
    for order in orders:
        for item in order.get("order_items") or []:
            name = item.get("dish_name")
            entry = totals.setdefault(name, {"name": name, "revenue": 0.0, "quantity": 0})
            entry["quantity"] += item.get("quantity") or 0
            entry["revenue"] += _amount(item.get("total_price"))

    ranked = sorted(totals.values(), key=lambda e: e["revenue"], reverse=True)
    return ranked[:limit]


def build_sales_analytics(
    orders: list[dict[str, Any]],
    start: datetime,
    end: datetime,
) -> SalesAnalytics:
    if not orders:
        return SalesAnalytics()

    total_sales = sum(_amount(o.get("total")) for o in orders)
    return SalesAnalytics(
        total_sales=total_sales,
        total_orders=len(orders),
        avg_order_value=total_sales / len(orders),
        hourly_trend=build_hourly_trend(orders, start, end),
        payment_methods=build_payment_methods(orders),
        top_items=build_top_items_by_revenue(orders),
    )


# =============================================================================
# SERVICE
# =============================================================================

class AnalyticsService:
    """
    Dashboard and report queries.

    Results are cached per query family and dropped when orders, order
    items or tables change.
    """

    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    def _today(self) -> tuple[datetime, datetime]:
        now = utcnow()
        return start_of_day(now), end_of_day(now)

    async def dashboard_stats(self) -> DashboardStats:
        async def load() -> DashboardStats:
            start, end = self._today()
            today_orders = await self.backend.select(
                "orders",
                "total, status",
                filters=[gte("created_at", start), lte("created_at", end)],
            )
            active = await self.backend.select(
                "orders", "id", filters=[in_("status", DASHBOARD_ACTIVE_STATUSES)]
            )
            tables = await self.backend.select("restaurant_tables", "status")
            return build_dashboard_stats(today_orders, len(active), tables)

        return await self.cache.get_or_load(("dashboard-stats",), load)

    async def daily_sales(self) -> list[dict[str, Any]]:
        """Today's sales per hour, cancelled orders excluded."""
        async def load() -> list[dict[str, Any]]:
            start, end = self._today()
            orders = await self.backend.select(
                "orders",
                "created_at, total, status",
                filters=[
                    gte("created_at", start),
                    lte("created_at", end),
                    neq("status", "cancelled"),
                ],
            )
            return build_daily_sales(orders)

        return await self.cache.get_or_load(("daily-sales",), load)

    async def top_selling_items(self) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            start, end = self._today()
            items = await self.backend.select(
                "order_items",
                "dish_name, quantity, total_price, orders(status)",
                filters=[gte("created_at", start), lte("created_at", end)],
            )
            return build_top_selling(items)

        return await self.cache.get_or_load(("top-selling-items",), load)

    async def sales_analytics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SalesAnalytics:
        """
        Sales report for an interval (today when omitted).

        Args:
            start: Interval start; defaults to the start of today
            end: Interval end; defaults to the end of today

        Raises:
            ValidationError: end is before start or the interval spans
                more than ``MAX_ANALYTICS_DAYS``
        """
        today_start, today_end = self._today()
        start = start or today_start
        end = end or today_end
        if end < start:
            raise ValidationError("end must not be before start")
        if end - start > timedelta(days=MAX_ANALYTICS_DAYS):
            raise ValidationError(f"Interval must not exceed {MAX_ANALYTICS_DAYS} days")

        async def load() -> SalesAnalytics:
            orders = await self.backend.select(
                "orders",
                "*, order_items(dish_name, quantity, unit_price, total_price)",
                filters=[
                    gte("created_at", start),
                    lte("created_at", end),
                    in_("status", ANALYTICS_STATUSES),
                ],
            )
            logger.debug(f"Sales analytics over {len(orders)} orders ({start} → {end})")
            return build_sales_analytics(orders, start, end)

        return await self.cache.get_or_load(("sales-analytics", start, end), load)
