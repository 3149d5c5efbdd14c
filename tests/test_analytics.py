import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from pos_gateway.exceptions import ValidationError

from pos_gateway.services.analytics import (
    MAX_ANALYTICS_DAYS,
    AnalyticsService,
    build_daily_sales,
    build_dashboard_stats,
    build_hourly_trend,
    build_payment_methods,
    build_sales_analytics,
    build_top_items_by_revenue,
    build_top_selling,
)

RIYADH = ZoneInfo("Asia/Riyadh")


def test_dashboard_counts_only_completed_sales():
    stats = build_dashboard_stats(
        [
            {"total": 40, "status": "completed"},
            {"total": 20, "status": "completed"},
            {"total": 99, "status": "pending"},
        ],
        active_count=3,
        tables=[{"status": "occupied"}, {"status": "available"}],
    )
    assert stats.today_sales == 60
    assert stats.average_order_value == 30
    assert stats.occupied_tables == 1
    assert stats.total_tables == 2


def test_daily_sales_uses_local_hours():
    sales = build_daily_sales(
        [
            {"created_at": "2026-10-19T09:30:00+00:00", "total": 50},
            {"created_at": "2026-10-19T09:45:00Z", "total": 25},
            {"created_at": "2026-10-18T21:15:00+00:00", "total": 10},
        ],
        tz=RIYADH,
    )
    assert len(sales) == 24
    assert sales[0] == {"hour": "12AM", "sales": 10}
    assert sales[12] == {"hour": "12PM", "sales": 75}
    assert sales[13]["hour"] == "1PM"


def test_top_selling_skips_cancelled_orders():
    items = [
        {"dish_name": "Burger", "quantity": 2, "total_price": 64, "orders": {"status": "completed"}},
        {"dish_name": "Tea", "quantity": 5, "total_price": 25, "orders": {"status": "cancelled"}},
        {"dish_name": "Burger", "quantity": 1, "total_price": 32, "orders": {"status": "pending"}},
        {"dish_name": "Juice", "quantity": 1, "total_price": 12, "orders": {"status": "pending"}},
    ]
    assert build_top_selling(items) == [
        {"name": "Burger", "quantity": 3, "revenue": 96.0},
        {"name": "Juice", "quantity": 1, "revenue": 12.0},
    ]


def test_hourly_trend_covers_interval():
    start = datetime(2026, 10, 19, 10, 0, tzinfo=RIYADH)
    end = datetime(2026, 10, 19, 12, 30, tzinfo=RIYADH)

    trend = build_hourly_trend(
        [{"created_at": "2026-10-19T08:20:00+00:00", "total": 40}], start, end
    )

    assert trend == [
        {"hour": "10AM", "sales": 0},
        {"hour": "11AM", "sales": 40},
        {"hour": "12PM", "sales": 0},
    ]


def test_hourly_trend_ignores_orders_outside_interval():
    start = datetime(2026, 10, 19, 10, 15, tzinfo=RIYADH)
    end = datetime(2026, 10, 19, 11, 0, tzinfo=RIYADH)
    orders = [
        {"created_at": "2026-10-19T06:59:59+00:00", "total": 5},
        {"created_at": "2026-10-19T07:00:00+00:00", "total": 10},
        {"created_at": "2026-10-19T08:00:00+00:00", "total": 20},
        {"created_at": "2026-10-19T09:00:00+00:00", "total": 99},
        {"created_at": None, "total": 1},
    ]

    trend = build_hourly_trend(orders, start, end)

    assert trend == [
        {"hour": "10AM", "sales": 10},
        {"hour": "11AM", "sales": 20},
    ]


def test_hourly_trend_for_a_full_month():
    start = datetime(2026, 9, 1, tzinfo=RIYADH)
    end = start + timedelta(days=MAX_ANALYTICS_DAYS) - timedelta(seconds=1)
    orders = [{"created_at": "2026-09-15T12:30:00+00:00", "total": 7}] * 1000

    trend = build_hourly_trend(orders, start, end)

    assert len(trend) == MAX_ANALYTICS_DAYS * 24
    assert sum(b["sales"] for b in trend) == 7000


def test_payment_method_shares():
    shares = build_payment_methods([
        {"payment_method": "cash"},
        {"payment_method": "card"},
        {"payment_method": None},
    ])
    assert shares == [
        {"name": "Cash", "value": 67, "count": 2},
        {"name": "Card", "value": 33, "count": 1},
    ]


def test_top_items_by_revenue():
    orders = [
        {"order_items": [
            {"dish_name": "Burger", "quantity": 1, "total_price": 32},
            {"dish_name": "Juice", "quantity": 4, "total_price": 48},
        ]},
        {"order_items": [{"dish_name": "Burger", "quantity": 1, "total_price": 32}]},
    ]
    assert [i["name"] for i in build_top_items_by_revenue(orders)] == ["Burger", "Juice"]


def test_sales_analytics_empty_interval():
    start = datetime(2026, 10, 19, tzinfo=RIYADH)
    analytics = build_sales_analytics([], start, start)
    assert analytics.to_dict() == {
        "total_sales": 0.0,
        "total_orders": 0,
        "avg_order_value": 0.0,
        "hourly_trend": [],
        "payment_methods": [],
        "top_items": [],
    }


def _order(backend, key, table, items):
    return asyncio.run(backend.rpc("create_order_atomic", {
        "p_idempotency_key": key,
        "p_order_type": "dine-in",
        "p_table_number": table,
        "p_subtotal": 0,
        "p_vat": 0,
        "p_total": sum(i["totalPrice"] for i in items),
        "p_payment_method": "cash",
        "p_items": items,
    }))["order"]


def _advance(backend, order, *statuses):
    for version, status in enumerate(statuses, start=1):
        asyncio.run(backend.rpc("update_order_status", {
            "p_order_id": order["id"], "p_new_status": status, "p_expected_version": version,
        }))


BURGERS = [{"menuItemId": "mi-burger", "dishName": "Classic Burger", "quantity": 2,
            "unitPrice": 32.0, "totalPrice": 64.0}]
SHAWARMA = [{"menuItemId": "mi-shawarma", "dishName": "Chicken Shawarma", "quantity": 3,
             "unitPrice": 18.0, "totalPrice": 54.0}]


def test_dashboard_stats_from_backend(backend, cache):
    done = _order(backend, "k1", "1", BURGERS)
    _advance(backend, done, "preparing", "ready", "completed")
    _order(backend, "k2", "2", BURGERS)

    stats = asyncio.run(AnalyticsService(backend, cache).dashboard_stats())

    assert stats.today_sales == pytest.approx(64.0)
    assert stats.active_orders == 1
    assert stats.occupied_tables == 1
    assert stats.total_tables == 6


def test_top_selling_from_backend(backend, cache):
    _order(backend, "k1", "1", BURGERS)
    cancelled = _order(backend, "k2", "2", SHAWARMA)
    _advance(backend, cancelled, "cancelled")

    top = asyncio.run(AnalyticsService(backend, cache).top_selling_items())

    assert top == [{"name": "Classic Burger", "quantity": 2, "revenue": 64.0}]


def test_sales_analytics_from_backend(backend, cache):
    _order(backend, "k1", "1", BURGERS)
    cancelled = _order(backend, "k2", "2", SHAWARMA)
    _advance(backend, cancelled, "cancelled")

    analytics = asyncio.run(AnalyticsService(backend, cache).sales_analytics())

    assert analytics.total_orders == 1
    assert analytics.total_sales == pytest.approx(64.0)
    assert analytics.payment_methods == [{"name": "Cash", "value": 100, "count": 1}]
    assert analytics.top_items[0]["name"] == "Classic Burger"


def test_sales_analytics_rejects_long_interval(backend, cache):
    start = datetime(2026, 1, 1, tzinfo=RIYADH)

    with pytest.raises(ValidationError):
        asyncio.run(AnalyticsService(backend, cache).sales_analytics(start, start + timedelta(days=400)))
    with pytest.raises(ValidationError):
        asyncio.run(AnalyticsService(backend, cache).sales_analytics(start, start - timedelta(hours=1)))
