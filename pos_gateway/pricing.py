"""
Pricing helpers: VAT, currency formatting and idempotency keys.
"""

import math
import uuid
from typing import Optional

from pos_gateway.core.config import get_settings

VAT_RATE = 0.15

ARABIC_SYMBOLS = {"SAR": "ر.س"}


def calculate_vat(subtotal: float, rate: float = VAT_RATE) -> float:
    return subtotal * rate


def calculate_total(subtotal: float, rate: float = VAT_RATE) -> float:
    return subtotal + calculate_vat(subtotal, rate)


def calculate_subtotal_from_total(total: float, rate: float = VAT_RATE) -> float:
    """Back out the VAT-exclusive amount from a VAT-inclusive total."""
    return total / (1 + rate)


def _is_missing(amount: Optional[float]) -> bool:
    return amount is None or (isinstance(amount, float) and math.isnan(amount))


def format_currency(
    amount: Optional[float],
    locale: str = "en",
    currency: Optional[str] = None,
) -> str:
    """
    Format an amount for display in ``currency`` (the configured one by default).

    Example:
        >>> format_currency(12.5)
        'SAR 12.50'
        >>> format_currency(12.5, "ar")
        '12.50 ر.س'
    """
    currency = currency or get_settings().currency
    value = 0.0 if _is_missing(amount) else amount
    formatted = f"{value:.2f}"
    if locale == "ar":
        return f"{formatted} {ARABIC_SYMBOLS.get(currency, currency)}"
    return f"{currency} {formatted}"


def format_currency_compact(amount: Optional[float]) -> str:
    if _is_missing(amount):
        return "0"
    if amount >= 1000:
        return f"{amount / 1000:.1f}K"
    return f"{amount:.0f}"


def generate_idempotency_key() -> str:
    """Generate a unique key the backend uses to deduplicate order creation."""
    return str(uuid.uuid4())
