import asyncio

import pytest

from pos_gateway.exceptions import BackendError, OrderConflictError, OrderUpdateError
from pos_gateway.schemas import OnlineOrderCreate, OnlineOrderItem, OrderCreate, OrderItemCreate
from pos_gateway.services.orders import OrderService, compute_order_stats


@pytest.fixture()
def orders(backend, cache) -> OrderService:
    return OrderService(backend, cache)


def _dine_in(key=None, table="2", quantity=1) -> OrderCreate:
    return OrderCreate(
        order_type="dine-in",
        table_number=table,
        subtotal=32.0 * quantity,
        vat=4.8 * quantity,
        total=36.8 * quantity,
        idempotency_key=key,
        items=[OrderItemCreate(
            menu_item_id="mi-burger",
            dish_name="Classic Burger",
            quantity=quantity,
            unit_price=32.0,
            total_price=32.0 * quantity,
        )],
    )


def test_create_order_sends_camel_case_items(orders, backend):
    result = asyncio.run(orders.create_order(_dine_in(key="abc")))

    assert result.status == "created"
    assert result.message == f"Order {result.order['order_number']} has been created"
    name, params = backend.rpc_calls[-1]
    assert name == "create_order_atomic"
    assert params["p_idempotency_key"] == "abc"
    assert params["p_payment_status"] == "unpaid"
    assert params["p_items"][0]["menuItemId"] == "mi-burger"
    assert params["p_items"][0]["unitPrice"] == 32.0


def test_create_order_generates_key_when_missing(orders, backend):
    asyncio.run(orders.create_order(_dine_in()))
    _, params = backend.rpc_calls[-1]
    assert len(params["p_idempotency_key"]) == 36


def test_retry_with_same_key_is_reported_as_existing(orders, backend):
    first = asyncio.run(orders.create_order(_dine_in(key="retry-1")))
    second = asyncio.run(orders.create_order(_dine_in(key="retry-1")))

    assert second.is_duplicate
    assert second.order["id"] == first.order["id"]
    assert "already existed" in second.message
    assert second.title == "Order recovered"
    assert first.title == "Order placed successfully!"
    assert len(backend.tables["orders"]) == 1


def test_create_order_invalidates_dependent_queries(orders, cache):
    cache.set(("orders",), [])
    cache.set(("inventory_items",), [])
    cache.set(("restaurant_tables",), [])
    cache.set(("menu-categories",), [])

    asyncio.run(orders.create_order(_dine_in()))

    assert ("orders",) not in cache
    assert ("inventory_items",) not in cache
    assert ("restaurant_tables",) not in cache
    assert ("menu-categories",) in cache


def test_insufficient_stock_propagates(orders):
    with pytest.raises(BackendError):
        asyncio.run(orders.create_order(_dine_in(quantity=50)))


def test_workflow_happy_path(orders, backend):
    order = asyncio.run(orders.create_order(_dine_in())).order

    for version, status in enumerate(["preparing", "ready", "completed"], start=1):
        order = asyncio.run(orders.update_workflow_status(order["id"], status, version))
        assert order["status"] == status
        assert order["version"] == version + 1

    table = next(t for t in backend.tables["restaurant_tables"] if t["table_number"] == "2")
    assert table["status"] == "available"


def test_stale_version_raises_conflict(orders):
    order = asyncio.run(orders.create_order(_dine_in())).order
    asyncio.run(orders.update_workflow_status(order["id"], "preparing", 1))

    with pytest.raises(OrderConflictError) as exc:
        asyncio.run(orders.update_workflow_status(order["id"], "ready", 1))
    assert exc.value.status_code == 409


def test_invalid_transition_raises_update_error(orders):
    order = asyncio.run(orders.create_order(_dine_in())).order

    with pytest.raises(OrderUpdateError) as exc:
        asyncio.run(orders.update_workflow_status(order["id"], "served", 1))
    assert not isinstance(exc.value, OrderConflictError)
    assert "Invalid status transition" in exc.value.message


def test_unknown_order_raises_update_error(orders):
    with pytest.raises(OrderUpdateError):
        asyncio.run(orders.update_workflow_status("missing", "preparing", 1))


def test_workflow_change_invalidates_kitchen_and_dashboard(orders, cache):
    order = asyncio.run(orders.create_order(_dine_in())).order
    cache.set(("orders",), [])
    cache.set(("dashboard-stats",), {})
    cache.set(("menu-categories",), [])

    asyncio.run(orders.update_workflow_status(order["id"], "preparing", 1))

    assert ("orders",) not in cache
    assert ("dashboard-stats",) not in cache
    assert ("menu-categories",) in cache


def test_active_orders_exclude_finished(orders):
    done = asyncio.run(orders.create_order(_dine_in(table="1"))).order
    asyncio.run(orders.update_workflow_status(done["id"], "cancelled", 1))
    open_order = asyncio.run(orders.create_order(_dine_in(table="2"))).order

    active = asyncio.run(orders.list_active_orders())

    assert [o["id"] for o in active] == [open_order["id"]]
    assert active[0]["order_items"][0]["dish_name"] == "Classic Burger"


def test_payment_status_and_history_filter(orders):
    order = asyncio.run(orders.create_order(_dine_in())).order
    asyncio.run(orders.create_order(_dine_in(table="3")))

    asyncio.run(orders.update_payment_status(order["id"], "paid"))
    paid = asyncio.run(orders.order_history(status="paid"))

    assert [o["id"] for o in paid] == [order["id"]]
    assert paid[0]["status"] == "pending"


def test_history_search_by_number(orders):
    asyncio.run(orders.create_order(_dine_in()))
    second = asyncio.run(orders.create_order(_dine_in(table="3"))).order

    found = asyncio.run(orders.order_history(search="0002"))
    assert [o["id"] for o in found] == [second["id"]]


def test_online_order_with_redemption(orders, backend):
    data = OnlineOrderCreate(
        customer_name="Sara",
        customer_phone="0512345678",
        order_type="takeaway",
        items=[OnlineOrderItem(
            menu_item_id="mi-burger", name_en="Classic Burger", name_ar="برجر كلاسيك",
            price=32.0, quantity=1,
        )],
        redeem_points=True,
        lang="ar",
    )

    result = asyncio.run(orders.create_online_order(data))

    assert result.gross_total == pytest.approx(36.8)
    assert result.loyalty_discount == pytest.approx(12.0)
    assert result.redeemed_points == 120
    assert result.final_total == pytest.approx(24.8)
    _, params = backend.rpc_calls[-1]
    assert params["p_items"][0]["dishName"] == "برجر كلاسيك"
    assert params["p_customer_address"] == ""


def test_online_order_redemption_capped_at_total(orders, backend):
    backend.tables["customers"][0]["loyalty_points"] = 1000
    data = OnlineOrderCreate(
        customer_name="Sara",
        customer_phone="0512345678",
        items=[OnlineOrderItem(menu_item_id="mi-burger", name_en="Burger", price=32.0, quantity=1)],
        redeem_points=True,
        lang="en",
    )

    result = asyncio.run(orders.create_online_order(data))

    assert result.loyalty_discount == pytest.approx(36.8)
    assert result.redeemed_points == 368
    assert result.final_total == 0


def test_order_stats():
    stats = compute_order_stats([
        {"status": "completed", "total": 50, "payment_method": "cash", "payment_status": "paid"},
        {"status": "pending", "total": 30, "payment_method": "card", "payment_status": None},
    ])
    assert stats.total_orders == 2
    assert stats.total_revenue == 80
    assert stats.average_order_value == 40
    assert stats.payment_status_counts == {"paid": 1, "unpaid": 1}
