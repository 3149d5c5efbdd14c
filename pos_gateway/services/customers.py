"""
Customer & Loyalty Service

Guest loyalty balances for the public menu, point redemption and the
customer lookup used by the POS customer selector.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from pos_gateway.backend import BaseBackendClient, OrderBy, eq, ilike
from pos_gateway.cache import QueryCache
from pos_gateway.core.config import get_settings
from pos_gateway.exceptions import ValidationError
from pos_gateway.schemas import CustomerCreate

logger = logging.getLogger(__name__)


@dataclass
class LoyaltyBalance:
    """
    Loyalty balance returned by ``get_guest_loyalty_balance``.

    Attributes:
        exists: Whether a customer with this phone is known
        points: Points available
        name: Customer name, if known
        redemption_rate: Currency value of one point
        max_discount: Currency value of all available points
    """
    exists: bool
    points: int
    name: Optional[str]
    redemption_rate: float
    max_discount: float

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LoyaltyBalance":
        return cls(
            exists=bool(payload.get("exists")),
            points=int(payload.get("points") or 0),
            name=payload.get("name"),
            redemption_rate=float(payload.get("redemption_rate") or 0),
            max_discount=float(payload.get("max_discount") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "exists": self.exists,
            "points": self.points,
            "name": self.name,
            "redemption_rate": self.redemption_rate,
            "max_discount": self.max_discount,
        }


def compute_redemption(balance: LoyaltyBalance, gross_total: float) -> tuple[float, int]:
    """
    Work out the discount and points to redeem against ``gross_total``.

    The discount never exceeds the total: when the balance covers the whole
    order only the points needed are spent (rounded up), otherwise every
    point is spent for its full value.

    Returns:
        (discount, points_to_redeem)
    """
    if not balance.exists or balance.points <= 0 or balance.redemption_rate <= 0:
        return 0.0, 0

    if balance.max_discount >= gross_total:
        return gross_total, math.ceil(gross_total / balance.redemption_rate)
    return balance.max_discount, balance.points


class CustomerService:
    """Customer lookup and loyalty operations."""

    def __init__(self, backend: BaseBackendClient, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    async def loyalty_balance(self, phone: str) -> Optional[LoyaltyBalance]:
        """
        Fetch the guest's loyalty balance.

        Returns:
            None when the phone is missing or too short to look up
        """
        phone = (phone or "").strip()
        if len(phone) < get_settings().loyalty_min_phone_length:
            return None

        async def load() -> LoyaltyBalance:
            payload = await self.backend.rpc("get_guest_loyalty_balance", {"p_phone": phone})
            return LoyaltyBalance.from_payload(payload or {})

        return await self.cache.get_or_load(("loyalty_balance", phone), load)

    async def search_customers(self, term: str, limit: int = 20) -> list[dict[str, Any]]:
        """Find customers by phone (digits) or by name."""
        term = (term or "").strip()
        if not term:
            return []

        column = "phone" if re.fullmatch(r"[\d+ ]+", term) else "name"
        return await self.backend.select(
            "customers",
            filters=[ilike(column, f"%{term}%")],
            order=[OrderBy("name")],
            limit=limit,
        )

    async def create_customer(self, data: CustomerCreate) -> dict[str, Any]:
        existing = await self.backend.select("customers", "id", filters=[eq("phone", data.phone)])
        if existing:
            raise ValidationError(f"A customer with phone {data.phone} already exists")

        customer = await self.backend.insert("customers", {
            "name": data.name,
            "phone": data.phone,
            "email": data.email,
            "loyalty_points": 0,
        })
        logger.info(f"Customer created: {customer['id']}")

        self.cache.invalidate("customers", "customer_stats")
        return customer
