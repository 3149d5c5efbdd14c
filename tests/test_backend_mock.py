import asyncio

import pytest

from pos_gateway.backend import OrderBy, eq, gte, ilike, in_, is_null
from pos_gateway.backend.base import parse_columns
from pos_gateway.exceptions import BackendError, NotFoundError


def _order_params(**overrides):
    params = {
        "p_idempotency_key": "key-1",
        "p_order_type": "dine-in",
        "p_table_number": "3",
        "p_subtotal": 64.0,
        "p_vat": 9.6,
        "p_discount": 0,
        "p_total": 73.6,
        "p_payment_method": "cash",
        "p_items": [{
            "menuItemId": "mi-burger",
            "dishName": "Classic Burger",
            "quantity": 2,
            "unitPrice": 32.0,
            "totalPrice": 64.0,
        }],
    }
    params.update(overrides)
    return params


def _stock(backend, item_id):
    return next(i for i in backend.tables["inventory_items"] if i["id"] == item_id)["current_stock"]


def test_parse_columns_splits_embeds():
    plain, embeds = parse_columns("*, order_items(id, quantity)")
    assert plain == ["*"]
    assert embeds == {"order_items": ["id", "quantity"]}


def test_select_filters_and_orders(backend):
    rows = asyncio.run(backend.select(
        "inventory_items",
        "id, current_stock",
        filters=[gte("current_stock", 4)],
        order=[OrderBy("current_stock", descending=True)],
    ))
    assert [r["id"] for r in rows] == ["inv-bun", "inv-beef", "inv-chicken"]
    assert set(rows[0]) == {"id", "current_stock"}


def test_select_ilike_and_in(backend):
    rows = asyncio.run(backend.select("menu_items", filters=[ilike("name_en", "%burger%")]))
    assert [r["id"] for r in rows] == ["mi-burger"]

    rows = asyncio.run(backend.select("restaurant_tables", filters=[in_("table_number", ["1", "2"])]))
    assert len(rows) == 2

    rows = asyncio.run(backend.select("restaurant_tables", filters=[is_null("current_order_id")]))
    assert len(rows) == 6


def test_select_embeds_relation(backend):
    rows = asyncio.run(backend.select(
        "recipes",
        "menu_item_id, inventory_items(name_en)",
        filters=[eq("menu_item_id", "mi-shawarma")],
    ))
    assert rows == [{"menu_item_id": "mi-shawarma", "inventory_items": {"name_en": "Chicken"}}]


def test_select_unknown_relation_fails(backend):
    with pytest.raises(BackendError):
        asyncio.run(backend.select("shifts", "*, order_items(*)"))


def test_select_one_missing_row(backend):
    with pytest.raises(NotFoundError):
        asyncio.run(backend.select_one("orders", filters=[eq("id", "nope")]))


def test_unknown_procedure(backend):
    with pytest.raises(BackendError) as exc:
        asyncio.run(backend.rpc("does_not_exist"))
    assert exc.value.code == "PGRST202"


def test_create_order_deducts_stock_and_occupies_table(backend):
    result = asyncio.run(backend.rpc("create_order_atomic", _order_params()))
    order = result["order"]

    assert order["status"] == "pending"
    assert order["version"] == 1
    assert order["order_number"] == "ORD-0001"
    assert _stock(backend, "inv-beef") == 38.0
    assert _stock(backend, "inv-bun") == 58.0

    table = next(t for t in backend.tables["restaurant_tables"] if t["table_number"] == "3")
    assert table["status"] == "occupied"
    assert table["current_order_id"] == order["id"]


def test_create_order_replay_returns_existing(backend):
    first = asyncio.run(backend.rpc("create_order_atomic", _order_params()))
    second = asyncio.run(backend.rpc("create_order_atomic", _order_params()))

    assert second["is_duplicate"] is True
    assert second["order"]["id"] == first["order"]["id"]
    assert len(backend.tables["orders"]) == 1
    assert _stock(backend, "inv-beef") == 38.0


def test_create_order_insufficient_stock_changes_nothing(backend):
    params = _order_params(p_items=[{
        "menuItemId": "mi-lemonade", "dishName": "Mint Lemonade",
        "quantity": 20, "unitPrice": 12.0, "totalPrice": 240.0,
    }])
    with pytest.raises(BackendError) as exc:
        asyncio.run(backend.rpc("create_order_atomic", params))

    assert "Insufficient stock for Lemon" in exc.value.message
    assert backend.tables.get("orders", []) == []
    assert _stock(backend, "inv-lemon") == 1.0


def test_update_status_checks_version_and_transition(backend):
    order = asyncio.run(backend.rpc("create_order_atomic", _order_params()))["order"]

    ok = asyncio.run(backend.rpc("update_order_status", {
        "p_order_id": order["id"], "p_new_status": "preparing", "p_expected_version": 1,
    }))
    assert ok["success"] is True
    assert ok["order"]["version"] == 2

    stale = asyncio.run(backend.rpc("update_order_status", {
        "p_order_id": order["id"], "p_new_status": "ready", "p_expected_version": 1,
    }))
    assert stale["success"] is False
    assert stale["error"].startswith("Conflict")

    invalid = asyncio.run(backend.rpc("update_order_status", {
        "p_order_id": order["id"], "p_new_status": "served", "p_expected_version": 2,
    }))
    assert invalid == {
        "success": False,
        "error": "Invalid status transition from preparing to served",
    }


def test_cancel_returns_stock_and_frees_table(backend):
    order = asyncio.run(backend.rpc("create_order_atomic", _order_params()))["order"]

    asyncio.run(backend.rpc("update_order_status", {
        "p_order_id": order["id"], "p_new_status": "cancelled", "p_expected_version": 1,
    }))

    assert _stock(backend, "inv-beef") == 40.0
    table = next(t for t in backend.tables["restaurant_tables"] if t["table_number"] == "3")
    assert table["status"] == "available"
    assert table["current_order_id"] is None


def test_adjust_stock_rejects_negative_result(backend):
    with pytest.raises(BackendError):
        asyncio.run(backend.rpc("adjust_inventory_stock", {"p_item_id": "inv-lemon", "p_quantity": -5}))

    result = asyncio.run(backend.rpc("adjust_inventory_stock", {"p_item_id": "inv-lemon", "p_quantity": 2}))
    assert result == {"success": True, "previous_stock": 1.0, "new_stock": 3.0}


def test_online_order_redeems_and_earns_points(backend):
    order = asyncio.run(backend.rpc("create_online_order", {
        "p_customer_name": "Sara",
        "p_customer_phone": "0512345678",
        "p_order_type": "takeaway",
        "p_payment_method": "cash",
        "p_subtotal": 32.0,
        "p_vat": 4.8,
        "p_total": 36.8,
        "p_items": [{"menuItemId": "mi-burger", "dishName": "Burger", "quantity": 1,
                     "unitPrice": 32.0, "totalPrice": 32.0}],
        "p_redeemed_points": 100,
    }))

    assert order["discount"] == 10.0
    assert order["total"] == 26.8
    customer = backend.tables["customers"][0]
    assert customer["loyalty_points"] == 120 - 100 + 26


def test_close_shift_twice(backend):
    first = asyncio.run(backend.rpc("close_shift_with_sales", {"p_shift_id": "shift-1", "p_closing_cash": 500}))
    assert first["success"] is True
    assert first["summary"]["expected_cash"] == 500.0

    second = asyncio.run(backend.rpc("close_shift_with_sales", {"p_shift_id": "shift-1", "p_closing_cash": 500}))
    assert second == {"success": False, "error": "Shift is already closed"}


def _online_params(**overrides):
    params = {
        "p_customer_name": "Sara",
        "p_customer_phone": "0512345678",
        "p_order_type": "takeaway",
        "p_payment_method": "cash",
        "p_subtotal": 3168.0,
        "p_vat": 475.2,
        "p_total": 3643.2,
        "p_items": [{"menuItemId": "mi-burger", "dishName": "Burger", "quantity": 99,
                     "unitPrice": 32.0, "totalPrice": 3168.0}],
        "p_redeemed_points": 120,
    }
    params.update(overrides)
    return params


def test_failed_online_order_keeps_points(backend):
    with pytest.raises(BackendError) as exc:
        asyncio.run(backend.rpc("create_online_order", _online_params()))

    assert "Insufficient stock for Beef Patty" in exc.value.message
    assert backend.tables["customers"][0]["loyalty_points"] == 120
    assert backend.tables.get("orders", []) == []
    assert _stock(backend, "inv-beef") == 40.0


def test_failed_online_order_adds_no_customer(backend):
    with pytest.raises(BackendError):
        asyncio.run(backend.rpc("create_online_order", _online_params(
            p_customer_phone="0599999999", p_redeemed_points=0, p_items=[],
        )))

    assert [c["phone"] for c in backend.tables["customers"]] == ["0512345678"]


def test_online_order_registers_new_customer(backend):
    order = asyncio.run(backend.rpc("create_online_order", _online_params(
        p_customer_phone="0599999999",
        p_redeemed_points=0,
        p_total=36.8,
        p_items=[{"menuItemId": "mi-burger", "dishName": "Burger", "quantity": 1,
                  "unitPrice": 32.0, "totalPrice": 32.0}],
    )))

    customer = next(c for c in backend.tables["customers"] if c["phone"] == "0599999999")
    assert order["customer_id"] == customer["id"]
    assert customer["loyalty_points"] == 36
