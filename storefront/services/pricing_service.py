from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional
from ..models.discount import Voucher
from ..models.order import CartLine, OrderQuote, ShippingSpeed
from .discount_service import evaluate_voucher
from .shipping_service import shipping_fee

def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    return sum((line.total_price for line in lines), Decimal(0))

def price_cart(lines: Iterable[CartLine], zone: Any, voucher: Optional[Voucher] = None,
               now: Optional[datetime] = None, speed: Any = ShippingSpeed.STANDARD) -> OrderQuote:
    """Quote a cart: subtotal, voucher discount, shipping and payable total.

    Pure; the same inputs always give the same quote. The voucher applies to
    the subtotal only, never to shipping.
    """
    subtotal = cart_subtotal(lines)
    shipping = shipping_fee(zone, speed)

    evaluation = evaluate_voucher(voucher, subtotal, now) if voucher is not None else None
    discount = evaluation.discount_amount if evaluation and evaluation.applicable else Decimal(0)

    return OrderQuote(
        subtotal=subtotal,
        discount_amount=discount,
        shipping_fee=shipping,
        total=max(Decimal(0), subtotal - discount) + shipping,
        voucher=evaluation,
    )
