from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, field_validator
from .base import Money, TimeStampedModel
from .discount import VoucherEvaluation
from ..utils.formatters import safe_number

class DeliveryZone(str, Enum):
    INSIDE = "inside"
    OUTSIDE = "outside"

class ShippingSpeed(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"

class PaymentMethod(str, Enum):
    COD = "cod"
    PREPAID = "prepaid"

    @property
    def label(self) -> str:
        """Value stored in orders.payment_method"""
        return "Cash on Delivery" if self is PaymentMethod.COD else "bKash"

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    PENDING = "pending"
    FAILED = "failed"
    UNKNOWN = "unknown"

class CheckoutState(str, Enum):
    COLLECTING = "collecting"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    CONFIRMED = "confirmed"
    FAILED = "failed"

class CartLine(BaseModel):
    """A cart line priced at quote time"""
    product_id: str
    quantity: int
    unit_price: Decimal
    size: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

class OrderQuote(BaseModel):
    """Derived totals for a cart; never persisted on its own"""
    subtotal: Money
    discount_amount: Money
    shipping_fee: Money
    total: Money
    voucher: Optional[VoucherEvaluation] = None

class OrderItem(BaseModel):
    """Snapshot of a purchased line"""
    product_id: Optional[str] = None
    product_name: str
    product_sku: Optional[str] = None
    quantity: int
    unit_price: Money
    total_price: Money
    size: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

class Order(TimeStampedModel):
    """Order row; `total` is canonical and `total_amount` is read only as a fallback"""
    id: str
    order_number: str
    status: str = OrderStatus.PENDING.value
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    total: Money = Decimal(0)
    shipping_cost: Money = Decimal(0)
    delivery_location: Optional[str] = None
    contact_number: Optional[str] = None
    customer_name: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    color_group_id: Optional[str] = None
    color_name: Optional[str] = None
    items: List[OrderItem] = []

    @field_validator("id", "color_group_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @classmethod
    def from_row(cls, row: dict, items: Optional[List[dict]] = None) -> "Order":
        data = dict(row)
        total = data.get("total")
        data["total"] = safe_number(total if total is not None else data.get("total_amount"))
        data["shipping_cost"] = safe_number(data.get("shipping_cost"))
        data["items"] = [OrderItem(**item) for item in (items or [])]
        return cls.model_validate(data)
