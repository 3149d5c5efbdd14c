import asyncio

import pytest

from pos_gateway.exceptions import ValidationError
from pos_gateway.schemas import CustomerCreate
from pos_gateway.services.customers import CustomerService, LoyaltyBalance, compute_redemption


@pytest.fixture()
def customers(backend, cache) -> CustomerService:
    return CustomerService(backend, cache)


def _balance(points, rate=0.10):
    return LoyaltyBalance(
        exists=True, points=points, name="Sara",
        redemption_rate=rate, max_discount=round(points * rate, 2),
    )


def test_short_phone_is_not_looked_up(customers, backend):
    assert asyncio.run(customers.loyalty_balance("0512")) is None
    assert asyncio.run(customers.loyalty_balance("")) is None
    assert backend.rpc_calls == []


def test_known_customer_balance(customers):
    balance = asyncio.run(customers.loyalty_balance(" 0512345678 "))

    assert balance.exists
    assert balance.points == 120
    assert balance.max_discount == pytest.approx(12.0)
    assert balance.to_dict()["name"] == "Sara"


def test_unknown_customer_balance(customers):
    balance = asyncio.run(customers.loyalty_balance("0599999999"))
    assert balance.exists is False
    assert balance.points == 0


def test_redemption_spends_all_points_when_total_is_larger():
    assert compute_redemption(_balance(120), 36.8) == (12.0, 120)


def test_redemption_rounds_points_up_when_balance_covers_total():
    discount, points = compute_redemption(_balance(1000), 36.75)
    assert discount == 36.75
    assert points == 368


def test_no_redemption_without_points():
    assert compute_redemption(_balance(0), 20) == (0.0, 0)
    assert compute_redemption(LoyaltyBalance(False, 0, None, 0.1, 0), 20) == (0.0, 0)


def test_search_by_phone_digits_and_name(customers):
    assert [c["id"] for c in asyncio.run(customers.search_customers("0512"))] == ["cust-1"]
    assert [c["id"] for c in asyncio.run(customers.search_customers("sar"))] == ["cust-1"]
    assert asyncio.run(customers.search_customers("  ")) == []


def test_duplicate_phone_is_rejected(customers):
    created = asyncio.run(customers.create_customer(CustomerCreate(name="Omar", phone="0500000001")))
    assert created["loyalty_points"] == 0

    with pytest.raises(ValidationError):
        asyncio.run(customers.create_customer(CustomerCreate(name="Omar 2", phone="0500000001")))
