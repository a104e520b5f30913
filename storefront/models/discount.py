from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, field_validator
from .base import Money
from ..utils.formatters import safe_int, safe_number

class DiscountType(str, Enum):
    """Voucher discount types"""
    PERCENTAGE = "percentage"
    FLAT = "flat"

class Voucher(BaseModel):
    """A discount code row from discount_codes"""
    code: str
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Decimal(0)
    min_purchase: Decimal = Decimal(0)  # 0 means no minimum
    max_uses: int = 0  # 0 means unlimited
    current_uses: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        return str(value or "").strip().upper()

    @field_validator("discount_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> DiscountType:
        # older rows use "percent"; anything that is not a percentage is a flat amount
        kind = str(value or "").strip().lower()
        if kind in ("percentage", "percent"):
            return DiscountType.PERCENTAGE
        return DiscountType.FLAT

    @field_validator("discount_value", "min_purchase", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return safe_number(value)

    @field_validator("max_uses", "current_uses", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return safe_int(value)

    @field_validator("is_active", mode="before")
    @classmethod
    def _coerce_active(cls, value: Any) -> bool:
        return bool(value)

class VoucherEvaluation(BaseModel):
    """Outcome of checking a voucher against a subtotal"""
    applicable: bool
    discount_amount: Money = Decimal(0)
    reason: Optional[str] = None
