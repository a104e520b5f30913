import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import pytz
from ..errors import PersistenceError
from ..models.discount import DiscountType, Voucher, VoucherEvaluation
from ..utils.formatters import format_currency, round_amount

logger = logging.getLogger(__name__)

def _aware(dt: datetime) -> datetime:
    return pytz.utc.localize(dt) if dt.tzinfo is None else dt

def _rejected(reason: str) -> VoucherEvaluation:
    return VoucherEvaluation(applicable=False, discount_amount=Decimal(0), reason=reason)

def evaluate_voucher(voucher: Voucher, subtotal: Decimal, now: Optional[datetime] = None) -> VoucherEvaluation:
    """Check a voucher against a subtotal and compute its discount.

    Invalid states are reported through ``applicable=False`` and a reason,
    never raised. The discount is rounded to whole units and kept within
    ``[0, subtotal]``.
    """
    now = _aware(now or datetime.now(pytz.utc))
    subtotal = max(Decimal(0), subtotal)

    if not voucher.is_active:
        return _rejected("Voucher is inactive.")
    if voucher.valid_from and now < _aware(voucher.valid_from):
        return _rejected("Voucher is not active yet.")
    if voucher.valid_until and now > _aware(voucher.valid_until):
        return _rejected("Voucher has expired.")
    if voucher.min_purchase > 0 and subtotal < voucher.min_purchase:
        return _rejected(
            f"Minimum purchase {format_currency(voucher.min_purchase)} required for this voucher."
        )
    if voucher.max_uses > 0 and voucher.current_uses >= voucher.max_uses:
        return _rejected("Voucher usage limit reached.")
    if voucher.discount_value <= 0:
        return _rejected("Voucher is invalid.")

    if voucher.discount_type == DiscountType.PERCENTAGE:
        amount = subtotal * voucher.discount_value / 100
    else:
        amount = voucher.discount_value

    amount = round_amount(max(Decimal(0), min(subtotal, amount)))
    # rounding half up may step over a fractional subtotal
    amount = min(amount, subtotal)

    return VoucherEvaluation(applicable=True, discount_amount=amount)

class DiscountService:
    """Voucher storage and usage tracking"""

    def __init__(self, db):
        self.db = db

    async def get_voucher(self, code: str) -> Optional[Voucher]:
        """Look a voucher up by its code (case-insensitive)"""
        code = (code or "").strip().upper()
        if not code:
            return None
        rows = await self.db.select("discount_codes", {"code": code}, limit=1)
        return Voucher.model_validate(rows[0]) if rows else None

    async def create_voucher(self, voucher_data: Dict[str, Any]) -> str:
        """Create a new voucher"""
        voucher = Voucher.model_validate(voucher_data)
        created = await self.db.insert("discount_codes", {
            "code": voucher.code,
            "discount_type": voucher.discount_type.value,
            "discount_value": voucher.discount_value,
            "min_purchase": voucher.min_purchase,
            "max_uses": voucher.max_uses,
            "current_uses": 0,
            "valid_from": voucher.valid_from,
            "valid_until": voucher.valid_until,
            "is_active": voucher.is_active,
        })
        return str(created[0]["id"])

    async def record_usage(self, voucher: Voucher) -> bool:
        """Count one more use; failures are logged and do not affect the order"""
        try:
            return await self.db.increment("discount_codes", voucher.code, "current_uses", key="code")
        except PersistenceError as e:
            logger.warning(f"Voucher usage update failed for {voucher.code}: {e}")
            return False

    async def deactivate_voucher(self, code: str) -> bool:
        """Turn a voucher off"""
        return await self.db.update(
            "discount_codes", code.strip().upper(), {"is_active": False}, key="code"
        )

    async def get_active_vouchers(self, now: Optional[datetime] = None) -> List[Voucher]:
        """Vouchers that are active, in their window and below their usage cap"""
        now = _aware(now or datetime.now(pytz.utc))
        rows = await self.db.select(
            "discount_codes", {"is_active": True}, order_by="created_at", descending=True
        )
        vouchers = [Voucher.model_validate(r) for r in rows]
        return [
            v for v in vouchers
            if (v.valid_until is None or _aware(v.valid_until) > now)
            and (v.max_uses <= 0 or v.current_uses < v.max_uses)
        ]
