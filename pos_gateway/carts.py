"""
Order builders

``OrderBuilder`` is the cashier's in-progress POS order; ``PublicCart``
is the guest's basket on the public menu. Both are plain in-memory
state that turns into an order request when submitted.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from pos_gateway.pricing import VAT_RATE, calculate_vat
from pos_gateway.schemas import (
    OnlineOrderCreate,
    OnlineOrderItem,
    OnlineOrderType,
    OrderCreate,
    OrderItemCreate,
    OrderType,
    PaymentMethod,
)


@dataclass
class MenuVariant:
    id: str
    name: str
    price_adjustment: float = 0.0


@dataclass
class MenuModifier:
    id: str
    name: str
    price: float = 0.0


@dataclass
class MenuItem:
    id: str
    name: str
    base_price: float
    name_ar: Optional[str] = None


def calculate_item_price(
    base_price: float,
    variant: Optional[MenuVariant] = None,
    modifiers: Optional[list[MenuModifier]] = None,
) -> float:
    """Unit price: base price plus the variant adjustment plus every modifier."""
    price = base_price
    if variant:
        price += variant.price_adjustment
    if modifiers:
        price += sum(m.price for m in modifiers)
    return price


@dataclass
class OrderLine:
    menu_item: MenuItem
    quantity: int
    unit_price: float
    variant: Optional[MenuVariant] = None
    modifiers: list[MenuModifier] = field(default_factory=list)
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:9])

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity

    @property
    def dish_name(self) -> str:
        parts = [self.menu_item.name]
        if self.variant:
            parts.append(f"({self.variant.name})")
        return " ".join(parts)


class OrderBuilder:
    """
    In-progress POS order.

    Example:
        >>> builder = OrderBuilder()
        >>> builder.add_item(burger, 2, variant=large)
        >>> builder.total
    """

    def __init__(self, vat_rate: float = VAT_RATE):
        self.vat_rate = vat_rate
        self.order_type = OrderType.TAKEAWAY
        self.selected_table: Optional[str] = None
        self.items: list[OrderLine] = []

    def set_order_type(self, order_type: OrderType) -> None:
        self.order_type = OrderType(order_type)

    def set_selected_table(self, table_number: Optional[str]) -> None:
        self.selected_table = table_number

    def add_item(
        self,
        menu_item: MenuItem,
        quantity: int = 1,
        variant: Optional[MenuVariant] = None,
        modifiers: Optional[list[MenuModifier]] = None,
        notes: Optional[str] = None,
    ) -> OrderLine:
        """Add a new line; the same dish added twice gives two lines."""
        line = OrderLine(
            menu_item=menu_item,
            quantity=quantity,
            unit_price=calculate_item_price(menu_item.base_price, variant, modifiers),
            variant=variant,
            modifiers=list(modifiers or []),
            notes=notes,
        )
        self.items.append(line)
        return line

    def update_item_quantity(self, line_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(line_id)
            return
        for line in self.items:
            if line.id == line_id:
                line.quantity = quantity

    def remove_item(self, line_id: str) -> None:
        self.items = [line for line in self.items if line.id != line_id]

    def clear(self) -> None:
        self.items = []
        self.selected_table = None

    @property
    def subtotal(self) -> float:
        return sum(line.total_price for line in self.items)

    @property
    def vat(self) -> float:
        return calculate_vat(self.subtotal, self.vat_rate)

    @property
    def total(self) -> float:
        return self.subtotal + self.vat

    def to_order_create(
        self,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        discount: float = 0.0,
        idempotency_key: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderCreate:
        """
        Build the request for ``OrderService.create_order``.

        Raises:
            pydantic.ValidationError: Empty order, or dine-in without a table
        """
        return OrderCreate(
            order_type=self.order_type,
            table_number=self.selected_table,
            subtotal=self.subtotal,
            vat=self.vat,
            discount=discount,
            total=self.total - discount,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
            notes=notes,
            items=[
                OrderItemCreate(
                    menu_item_id=line.menu_item.id,
                    dish_name=line.dish_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                    notes=line.notes,
                )
                for line in self.items
            ],
        )


@dataclass
class CartItem:
    id: str
    name_ar: str
    name_en: str
    price: float
    quantity: int = 1
    image_url: Optional[str] = None


class PublicCart:
    """Guest basket: one line per menu item."""

    def __init__(self):
        self.items: list[CartItem] = []

    def add_item(
        self,
        item_id: str,
        name_ar: str,
        name_en: str,
        price: float,
        image_url: Optional[str] = None,
    ) -> CartItem:
        """Add one unit; an item already in the cart gets its quantity bumped."""
        for existing in self.items:
            if existing.id == item_id:
                existing.quantity += 1
                return existing

        item = CartItem(item_id, name_ar, name_en, price, 1, image_url)
        self.items.append(item)
        return item

    def update_quantity(self, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(item_id)
            return
        for item in self.items:
            if item.id == item_id:
                item.quantity = quantity

    def remove_item(self, item_id: str) -> None:
        self.items = [i for i in self.items if i.id != item_id]

    def clear(self) -> None:
        self.items = []

    @property
    def total(self) -> float:
        return sum(i.price * i.quantity for i in self.items)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    def to_order_items(self) -> list[OnlineOrderItem]:
        return [
            OnlineOrderItem(
                menu_item_id=i.id,
                name_en=i.name_en,
                name_ar=i.name_ar,
                price=i.price,
                quantity=i.quantity,
            )
            for i in self.items
        ]

    def checkout(
        self,
        customer_name: str,
        customer_phone: str,
        order_type: OnlineOrderType = OnlineOrderType.TAKEAWAY,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        customer_address: Optional[str] = None,
        notes: Optional[str] = None,
        redeem_points: bool = False,
        lang: str = "ar",
    ) -> OnlineOrderCreate:
        """
        Build the request for ``OrderService.create_online_order``.

        ``lang`` picks which name each dish is recorded under.
        """
        return OnlineOrderCreate(
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_address=customer_address,
            order_type=order_type,
            payment_method=payment_method,
            items=self.to_order_items(),
            notes=notes,
            redeem_points=redeem_points,
            lang=lang,
        )
