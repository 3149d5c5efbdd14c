import asyncio

import pytest

from pos_gateway.exceptions import ShiftCloseError
from pos_gateway.services.shifts import ShiftService


@pytest.fixture()
def shifts(backend, cache) -> ShiftService:
    return ShiftService(backend, cache)


def _card_order(backend, total):
    asyncio.run(backend.rpc("create_order_atomic", {
        "p_idempotency_key": f"key-{total}",
        "p_order_type": "takeaway",
        "p_subtotal": total,
        "p_vat": 0,
        "p_total": total,
        "p_payment_method": "card",
        "p_items": [{"dishName": "Catering", "quantity": 1, "unitPrice": total, "totalPrice": total}],
    }))


def test_close_shift_returns_summary(shifts, backend):
    _card_order(backend, 100.0)

    result = asyncio.run(shifts.close_shift("shift-1", 480.0, "Short 20"))

    assert result.total_sales == 100.0
    assert result.message == "Shift closed • Total sales: SAR 100.00"
    assert result.summary["card_sales"] == 100.0
    assert result.summary["difference"] == -20.0
    _, params = backend.rpc_calls[-1]
    assert params == {"p_shift_id": "shift-1", "p_closing_cash": 480.0, "p_notes": "Short 20"}


def test_close_shift_twice_fails(shifts):
    asyncio.run(shifts.close_shift("shift-1", 500.0))

    with pytest.raises(ShiftCloseError) as exc:
        asyncio.run(shifts.close_shift("shift-1", 500.0))
    assert exc.value.message == "Shift is already closed"


def test_unknown_shift(shifts):
    with pytest.raises(ShiftCloseError):
        asyncio.run(shifts.close_shift("shift-404", 0))


def test_list_shifts_refreshes_after_close(shifts):
    assert [s["status"] for s in asyncio.run(shifts.list_shifts())] == ["open"]

    asyncio.run(shifts.close_shift("shift-1", 500.0))

    assert [s["status"] for s in asyncio.run(shifts.list_shifts())] == ["closed"]
    assert asyncio.run(shifts.list_shifts("open")) == []
