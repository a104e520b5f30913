from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, field_validator
from .base import Money
from ..utils.formatters import safe_int, safe_number

class ReportOrder(BaseModel):
    """Order row reduced to the fields reporting reads"""
    id: str
    order_number: Optional[str] = None
    created_at: datetime
    status: str = "unknown"
    revenue: Money = Decimal(0)
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    color_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "ReportOrder":
        # two revenue columns exist in the schema; total wins when both are set
        total = row.get("total")
        revenue = total if total is not None else row.get("total_amount")
        return cls(
            id=str(row["id"]),
            order_number=row.get("order_number"),
            created_at=row["created_at"],
            status=str(row.get("status") or "unknown").strip().lower(),
            revenue=safe_number(revenue),
            payment_method=row.get("payment_method"),
            payment_status=row.get("payment_status"),
            color_name=row.get("color_name"),
        )

class ReportItem(BaseModel):
    order_id: str
    product_id: str = "unknown"
    product_name: str = "Unknown"
    quantity: int = 0
    total_price: Money = Decimal(0)

    @classmethod
    def from_row(cls, row: dict) -> "ReportItem":
        return cls(
            order_id=str(row["order_id"]),
            product_id=str(row.get("product_id") or "unknown"),
            product_name=str(row.get("product_name") or "Unknown"),
            quantity=safe_int(row.get("quantity")),
            total_price=safe_number(row.get("total_price")),
        )

class ReportSummary(BaseModel):
    revenue: Money = Decimal(0)
    orders: int = 0
    items_sold: int = 0
    delivered: int = 0
    cod_orders: int = 0
    bkash_orders: int = 0
    paid_orders: int = 0
    unpaid_orders: int = 0
    avg_order_value: Money = Decimal(0)

    @field_validator("revenue", "avg_order_value", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return safe_number(value)

    @field_validator("orders", "items_sold", "delivered", "cod_orders", "bkash_orders",
                     "paid_orders", "unpaid_orders", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return safe_int(value)

class BreakdownRow(BaseModel):
    date: str  # YYYY-MM-DD
    orders: int = 0
    revenue: Money = Decimal(0)
    items_sold: int = 0

class TopProductRow(BaseModel):
    product_id: str
    product_name: str
    qty: int = 0
    revenue: Money = Decimal(0)

class PaymentBreakdownRow(BaseModel):
    method: str  # COD | bKash | Other
    orders: int = 0
    revenue: Money = Decimal(0)

class StatusBreakdownRow(BaseModel):
    status: str
    orders: int = 0
    revenue: Money = Decimal(0)

class Report(BaseModel):
    period_start: date
    period_end: date
    source: str = "live"  # live | snapshot
    summary: ReportSummary
    daily_breakdown: List[BreakdownRow] = []
    top_products: List[TopProductRow] = []
    payment_breakdown: List[PaymentBreakdownRow] = []
    status_breakdown: List[StatusBreakdownRow] = []
    payment_status_breakdown: List[StatusBreakdownRow] = []

class ReportFilters(BaseModel):
    """Order filters applied before aggregation"""
    include_non_sales: bool = False
    status: Optional[str] = None
    payment_method: Optional[str] = None  # cod | bkash | other
    payment_status: Optional[str] = None
