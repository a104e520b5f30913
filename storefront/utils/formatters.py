import random
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Optional
import pytz
from ..config import Config

def safe_number(value: Any) -> Decimal:
    """Coerce any input to a finite Decimal, 0 when it is not a number"""
    if value is None:
        return Decimal(0)
    try:
        if isinstance(value, float):
            number = Decimal(str(value))
        elif isinstance(value, str):
            number = Decimal(value.strip() or "0")
        else:
            number = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(0)
    return number if number.is_finite() else Decimal(0)

def safe_int(value: Any) -> int:
    """Floor of a finite non-negative number, 0 otherwise"""
    number = safe_number(value)
    if number <= 0:
        return 0
    return int(number.to_integral_value(rounding=ROUND_FLOOR))

def round_amount(amount: Decimal) -> Decimal:
    """Round to whole currency units"""
    return amount.quantize(Decimal(1), rounding=ROUND_HALF_UP)

def format_price(amount: Any) -> str:
    """Thousands-separated amount without decimals"""
    number = safe_number(amount)
    if number < 0:
        number = Decimal(0)
    return f"{round_amount(number):,.0f}"

def format_currency(amount: Any) -> str:
    """Amount in the shop currency, e.g. ৳1,410"""
    return f"{Config.CURRENCY_SYMBOL}{format_price(amount)}"

def format_datetime(dt: datetime) -> str:
    """Render a timestamp in the shop timezone"""
    shop_tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(shop_tz).strftime("%Y-%m-%d %H:%M:%S")

def make_order_number(now: Optional[datetime] = None) -> str:
    """Human-facing order number: ORD-YYYYMMDD-NNNN"""
    now = now or datetime.now(pytz.utc)
    return f"ORD-{now.strftime('%Y%m%d')}-{random.randint(1000, 9999)}"
