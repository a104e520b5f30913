"""Request and response bodies of the checkout and tracking endpoints."""
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from .base import Money
from .product import ColorVariant

class GuestDetails(BaseModel):
    """Contact and address supplied by a customer without an account"""
    full_name: str = ""
    phone: str = ""
    division: str = ""
    district: str = ""
    city: str = ""
    road: str = ""
    zip_code: Optional[str] = None
    address: str = ""  # full formatted address
    email: Optional[str] = None

class CheckoutItem(BaseModel):
    product_id: str
    quantity: Any = 0
    size: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value or "").strip()

class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CheckoutItem] = []
    delivery_location: str = Field("inside", alias="deliveryLocation")
    shipping_speed: str = Field("standard", alias="shippingSpeed")
    payment_method: str = Field("cod", alias="paymentMethod")
    payment_reference: Optional[str] = Field(None, alias="paymentReference")
    discount_code: Optional[str] = Field(None, alias="discountCode")
    guest: Optional[GuestDetails] = None
    colors: List[ColorVariant] = []

class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    order_id: Optional[str] = Field(None, alias="orderId")
    order_ids: List[str] = Field(default_factory=list, alias="orderIds")
    order_number: Optional[str] = Field(None, alias="orderNumber")
    contact: Optional[str] = None
    total: Optional[Money] = None
    message: Optional[str] = None
    errors: List[str] = []

class QuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CheckoutItem] = []
    delivery_location: str = Field("inside", alias="deliveryLocation")
    shipping_speed: str = Field("standard", alias="shippingSpeed")
    discount_code: Optional[str] = Field(None, alias="discountCode")

class TrackOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_number: str = Field("", alias="orderNumber")
    contact: str = ""  # phone or email
