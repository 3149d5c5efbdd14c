"""
Pydantic Schemas for Request/Response Validation

Covers:
- POS and online order creation
- Kitchen workflow and payment status updates
- Inventory adjustments, tables, shifts, customers
- Menu chat and change notifications
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum
import re


# =============================================================================
# ENUMS
# =============================================================================

class WorkflowStatus(str, Enum):
    """Kitchen-facing lifecycle of an order (separate from payment)."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_KITCHEN_STATUSES = [
    WorkflowStatus.PENDING.value,
    WorkflowStatus.PREPARING.value,
    WorkflowStatus.READY.value,
]


class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"


class OrderType(str, Enum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OnlineOrderType(str, Enum):
    DELIVERY = "delivery"
    TAKEAWAY = "takeaway"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


# =============================================================================
# ORDER REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single line of a POS order."""
    menu_item_id: Optional[str] = Field(None, examples=["mi-burger"])
    dish_name: str = Field(..., min_length=1, max_length=200, examples=["Classic Burger"])
    quantity: int = Field(..., ge=1, le=999, examples=[2])
    unit_price: float = Field(..., ge=0, examples=[32.0])
    total_price: float = Field(..., ge=0, examples=[64.0])
    notes: Optional[str] = Field(None, max_length=500)

    def to_rpc(self) -> dict[str, Any]:
        """Item payload in the shape the order procedures expect."""
        return {
            "menuItemId": self.menu_item_id,
            "dishName": self.dish_name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "totalPrice": self.total_price,
            "notes": self.notes,
        }


class OrderCreate(BaseModel):
    """Request schema for creating a POS order."""
    order_type: OrderType = Field(default=OrderType.TAKEAWAY)
    table_number: Optional[str] = Field(None, max_length=20)
    subtotal: float = Field(..., ge=0)
    vat: float = Field(..., ge=0)
    discount: float = Field(default=0.0, ge=0)
    total: float = Field(..., ge=0)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    customer_id: Optional[str] = None
    idempotency_key: Optional[str] = Field(
        None,
        description="Reuse the same key when retrying so the order is not duplicated",
    )
    items: List[OrderItemCreate] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_table(self) -> "OrderCreate":
        if self.order_type == OrderType.DINE_IN and not self.table_number:
            raise ValueError("Dine-in orders need a table number")
        return self


class OnlineOrderItem(BaseModel):
    """Cart line submitted from the public menu."""
    menu_item_id: str
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1, le=99)


class OnlineOrderCreate(BaseModel):
    """Request schema for an order placed from the public menu."""
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: str = Field(..., min_length=8, max_length=20, examples=["0512345678"])
    customer_address: Optional[str] = Field(None, max_length=255)
    order_type: OnlineOrderType = Field(default=OnlineOrderType.TAKEAWAY)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    items: List[OnlineOrderItem] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)
    redeem_points: bool = False
    lang: str = Field(default="ar", pattern="^(ar|en)$")

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        cleaned = re.sub(r"[^\d+]", "", v)
        if len(re.sub(r"\D", "", cleaned)) < 8:
            raise ValueError("Phone number must have at least 8 digits")
        return cleaned

    @model_validator(mode="after")
    def validate_address(self) -> "OnlineOrderCreate":
        if self.order_type == OnlineOrderType.DELIVERY and not (self.customer_address or "").strip():
            raise ValueError("Delivery orders need an address")
        return self


class WorkflowStatusUpdate(BaseModel):
    """Move an order along the kitchen workflow."""
    status: WorkflowStatus
    expected_version: int = Field(..., ge=1, description="Version the caller last read")


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


# =============================================================================
# INVENTORY / TABLES / SHIFTS / CUSTOMERS
# =============================================================================

class StockAdjustment(BaseModel):
    """Positive quantity adds stock, negative removes it."""
    quantity: float
    reason: Optional[str] = Field(None, max_length=200)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if v == 0:
            raise ValueError("Quantity must not be zero")
        return v


class InventoryItemCreate(BaseModel):
    name_en: str = Field(..., min_length=1, max_length=100)
    name_ar: str = Field(..., min_length=1, max_length=100)
    unit: str = Field(..., min_length=1, max_length=20, examples=["kg"])
    current_stock: float = Field(default=0.0, ge=0)
    minimum_stock: float = Field(default=0.0, ge=0)
    cost_per_unit: Optional[float] = Field(None, ge=0)
    warehouse_id: Optional[str] = None


class MenuItemsStockRequest(BaseModel):
    menu_item_ids: List[str] = Field(default_factory=list)


class TableCreate(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(default=4, ge=1, le=50)
    section: str = Field(default="indoor", pattern="^(indoor|outdoor)$")
    status: TableStatus = TableStatus.AVAILABLE


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    section: Optional[str] = Field(None, pattern="^(indoor|outdoor)$")


class TableStatusUpdate(BaseModel):
    """``current_order_id`` is only written when it is present in the body."""
    status: TableStatus
    current_order_id: Optional[str] = None


class ShiftClose(BaseModel):
    closing_cash: float = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=500)


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=8, max_length=20)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not re.match(r"^[\w\.-]+@[\w\.-]+\.\w+$", v):
            raise ValueError("Invalid email format")
        return v


# =============================================================================
# CHAT / WEBHOOK SCHEMAS
# =============================================================================

class ChatHistoryMessage(BaseModel):
    """Earlier turn; anything other than "user" is treated as the model."""
    role: str
    content: str


class MenuChatRequest(BaseModel):
    """Body of the menu chat function; a missing message is answered with 400."""
    message: Optional[str] = None
    history: List[ChatHistoryMessage] = Field(default_factory=list)
    lang: str = "ar"
    menu_slug: Optional[str] = None


class ChangeNotification(BaseModel):
    """Row change pushed by the backend's database webhooks."""
    table: str
    type: str = Field(default="UPDATE", examples=["INSERT", "UPDATE", "DELETE"])
    schema_name: str = Field(default="public", alias="schema")
    record: Optional[dict[str, Any]] = None

    model_config = {"populate_by_name": True}


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderCreateResponse(BaseModel):
    """Response after creating a POS order."""
    success: bool
    message: str
    status: str = Field(description="'created' or 'existing' (idempotent replay)")
    order: dict[str, Any]


class MutationResponse(BaseModel):
    """Generic response for a successful write."""
    success: bool = True
    message: str
    data: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    backend: str
    redis: str
    chat_service: str
    environment: str
    timestamp: datetime
