# storefront/services/order_service.py
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from ..errors import OrderNotFound, PersistenceError, StorefrontError, ValidationError
from ..models.checkout import CheckoutRequest, CheckoutResponse, GuestDetails, QuoteRequest
from ..models.discount import Voucher
from ..models.order import CartLine, CheckoutState, Order, OrderQuote, OrderStatus, PaymentMethod
from ..models.product import Product
from ..utils.formatters import make_order_number, safe_int
from ..utils.validators import (
    is_email, is_uuid, is_valid_phone, is_valid_zip, normalize_email, normalize_phone, phone_matches
)
from .discount_service import DiscountService
from .pricing_service import price_cart
from .product_service import ProductService
from .shipping_service import parse_speed, parse_zone, shipping_note
from .user_service import UserService
from .variant_service import VariantService, clean_variants

logger = logging.getLogger(__name__)

# amounts carried by the base row only; color rows must not add to revenue
VARIANT_ORDER_AMOUNTS = {
    "subtotal": Decimal(0),
    "discount": Decimal(0),
    "discount_code": None,
    "discount_amount": Decimal(0),
    "shipping_cost": Decimal(0),
    "tax_amount": Decimal(0),
    "total": Decimal(0),
    "total_amount": Decimal(0),
}

_TRANSITIONS = {
    CheckoutState.COLLECTING: {CheckoutState.VALIDATING, CheckoutState.FAILED},
    CheckoutState.VALIDATING: {CheckoutState.PERSISTING, CheckoutState.FAILED},
    CheckoutState.PERSISTING: {CheckoutState.CONFIRMED, CheckoutState.FAILED},
    CheckoutState.CONFIRMED: set(),
    CheckoutState.FAILED: set(),
}

def parse_payment_method(value: Any) -> Optional[PaymentMethod]:
    """cod or prepaid; bkash is accepted as prepaid"""
    method = str(value or "").strip().lower()
    if method == "cod":
        return PaymentMethod.COD
    if method in ("prepaid", "bkash"):
        return PaymentMethod.PREPAID
    return None

class CheckoutAttempt:
    """Tracks one checkout through Collecting -> Validating -> Persisting -> Confirmed | Failed"""

    def __init__(self, request: CheckoutRequest, user_id: Optional[str] = None):
        self.request = request
        self.user_id = user_id
        self.state = CheckoutState.COLLECTING
        self.order_number = make_order_number()
        self.order_ids: List[str] = []
        self.error: Optional[Exception] = None

    def advance(self, state: CheckoutState):
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal checkout transition {self.state.value} -> {state.value}")
        logger.info(f"Checkout {self.order_number}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error: Exception):
        self.error = error
        if self.state not in (CheckoutState.CONFIRMED, CheckoutState.FAILED):
            self.advance(CheckoutState.FAILED)

class OrderService:
    def __init__(self, db, notifier=None):
        self.db = db
        self.notifier = notifier
        self.products = ProductService(db)
        self.discounts = DiscountService(db)
        self.users = UserService(db)
        self.variants = VariantService(db)

    async def place_order(self, request: CheckoutRequest, user_id: Optional[str] = None) -> CheckoutResponse:
        """Validate, price and persist a checkout.

        Raises ``InvalidZone`` for an unknown delivery location,
        ``ValidationError`` with every problem found, and ``PersistenceError``
        (or ``PartialFanoutFailure``) when writing fails.
        """
        attempt = CheckoutAttempt(request, user_id)
        try:
            attempt.advance(CheckoutState.VALIDATING)
            zone = parse_zone(request.delivery_location)
            speed = parse_speed(request.shipping_speed)

            errors: List[str] = []
            payment_method = self._check_payment(request, errors)
            contact = await self._collect_contact(request, user_id, errors)
            lines, snapshots = await self._collect_lines(request, errors)
            if errors:
                raise ValidationError(errors)

            voucher, voucher_message = await self._lookup_voucher(request.discount_code)
            quote = price_cart(lines, zone, voucher, speed=speed)
            if quote.voucher and not quote.voucher.applicable:
                voucher_message = quote.voucher.reason

            attempt.advance(CheckoutState.PERSISTING)
            order_row = {
                "user_id": user_id,
                "order_number": attempt.order_number,
                "status": OrderStatus.PENDING.value,
                "subtotal": quote.subtotal,
                "discount": quote.discount_amount,
                "discount_code": voucher.code if voucher and quote.discount_amount > 0 else None,
                "discount_amount": quote.discount_amount,
                "shipping_cost": quote.shipping_fee,
                "tax_amount": Decimal(0),
                "total": quote.total,
                "total_amount": quote.total,
                "delivery_location": zone.value,
                "contact_number": contact["phone"],
                "shipping_address": contact["address"],
                "customer_name": contact["name"],
                "notes": shipping_note(zone, speed),
                "payment_method": payment_method.label,
                "payment_status": "pending",
                "payment_trx_id": ((request.payment_reference or "").strip() or None)
                if payment_method is PaymentMethod.PREPAID else None,
            }
            attempt.order_ids = await self._persist(order_row, snapshots, request, lines)
            attempt.advance(CheckoutState.CONFIRMED)
        except StorefrontError as e:
            attempt.fail(e)
            logger.warning(f"Checkout {attempt.order_number} failed: {e}")
            raise

        if voucher and quote.discount_amount > 0:
            await self.discounts.record_usage(voucher)

        if self.notifier:
            self.notifier.notify_order_placed({
                "order_id": attempt.order_ids[0],
                "order_number": attempt.order_number,
                "customer_name": contact["name"],
                "email": contact["email"],
                "phone": contact["phone"],
                "address": contact["address"],
                "payment_method": payment_method.label,
                "items": snapshots,
                "subtotal": quote.subtotal,
                "discount": quote.discount_amount,
                "shipping_cost": quote.shipping_fee,
                "total": quote.total,
            })

        logger.info(f"Order {attempt.order_number} placed ({len(attempt.order_ids)} rows, total {quote.total})")
        return CheckoutResponse(
            ok=True,
            order_id=attempt.order_ids[0],
            order_ids=attempt.order_ids,
            order_number=attempt.order_number,
            contact=contact["phone"],
            total=quote.total,
            message=voucher_message,
        )

    async def quote(self, request: QuoteRequest) -> OrderQuote:
        """Price a cart without validating contact details or writing anything"""
        zone = parse_zone(request.delivery_location)
        errors: List[str] = []
        lines, _ = await self._collect_lines(request, errors, check_size=False)
        if errors:
            raise ValidationError(errors)
        voucher, _ = await self._lookup_voucher(request.discount_code)
        return price_cart(lines, zone, voucher, speed=parse_speed(request.shipping_speed))

    def _check_payment(self, request: CheckoutRequest, errors: List[str]) -> Optional[PaymentMethod]:
        method = parse_payment_method(request.payment_method)
        if method is None:
            errors.append("Unsupported payment method.")
        elif method is PaymentMethod.PREPAID and not (request.payment_reference or "").strip():
            errors.append("TRX ID is required for bKash.")
        return method

    async def _collect_contact(self, request: CheckoutRequest, user_id: Optional[str],
                               errors: List[str]) -> Dict[str, Optional[str]]:
        if user_id:
            profile = await self.users.get_profile(user_id)
            if UserService.missing_fields(profile):
                errors.append("Please add your full name, phone number, and address in your Profile.")
                profile = profile or {}
            return {
                "name": str(profile.get("full_name") or "").strip(),
                "phone": str(profile.get("phone") or "").strip(),
                "address": str(profile.get("address") or "").strip(),
                "email": profile.get("email"),
            }

        guest = request.guest
        if guest is None:
            errors.append("Guest details are required.")
            return {"name": "", "phone": "", "address": "", "email": None}

        errors.extend(self._check_guest(guest))
        return {
            "name": guest.full_name.strip(),
            "phone": normalize_phone(guest.phone),
            "address": guest.address.strip(),
            "email": guest.email,
        }

    @staticmethod
    def _check_guest(guest: GuestDetails) -> List[str]:
        problems = []
        if not guest.full_name.strip():
            problems.append("Full name is required.")
        if not is_valid_phone(guest.phone):
            problems.append("Invalid phone number.")
        if any(not (value or "").strip() for value in (guest.division, guest.district, guest.city, guest.road)):
            problems.append("Please fill all required address fields.")
        zip_code = (guest.zip_code or "").strip()
        if zip_code and not is_valid_zip(zip_code):
            problems.append("Zip code must be 4 digits.")
        if not guest.address.strip():
            problems.append("Address is required.")
        return problems

    async def _collect_lines(self, request, errors: List[str],
                             check_size: bool = True) -> Tuple[List[CartLine], List[Dict[str, Any]]]:
        """Price cart lines from the catalog as it is right now"""
        if not request.items:
            errors.append("Cart is empty.")
            return [], []

        products = await self.products.get_products(item.product_id for item in request.items)
        lines: List[CartLine] = []
        snapshots: List[Dict[str, Any]] = []

        for item in request.items:
            product: Optional[Product] = products.get(item.product_id)
            if product is None:
                errors.append(f"Product {item.product_id or '(missing id)'} is unavailable.")
                continue

            quantity = safe_int(item.quantity)
            if quantity <= 0:
                errors.append(f"Invalid quantity for {product.name}.")
                continue
            # zero stock means the product is not stock-tracked
            if product.stock_quantity > 0 and quantity > product.stock_quantity:
                errors.append(f"Insufficient stock for {product.name}.")
            size = (item.size or "").strip() or None
            if check_size and product.requires_size and not size:
                errors.append(f"Please select a size for {product.name}.")

            line = CartLine(product_id=product.id, quantity=quantity, unit_price=product.price, size=size)
            lines.append(line)
            snapshots.append({
                "product_id": product.id,
                "product_name": product.name,
                "product_sku": product.sku or product.id,
                "quantity": quantity,
                "unit_price": line.unit_price,
                "total_price": line.total_price,
                "size": size,
            })

        return lines, snapshots

    async def _lookup_voucher(self, code: Optional[str]) -> Tuple[Optional[Voucher], Optional[str]]:
        if not (code or "").strip():
            return None, None
        voucher = await self.discounts.get_voucher(code)
        if voucher is None:
            return None, "Invalid voucher code."
        return voucher, None

    async def _persist(self, order_row: Dict[str, Any], snapshots: List[Dict[str, Any]],
                       request: CheckoutRequest, lines: List[CartLine]) -> List[str]:
        """Write the order rows and their items; returns order ids, base first"""
        if clean_variants(request.colors):
            total_quantity = sum(line.quantity for line in lines)
            result = await self.variants.create_group(
                "orders", order_row, request.colors, total_quantity,
                lambda base, variant, index: dict(VARIANT_ORDER_AMOUNTS)
            )
            try:
                await self.db.insert("order_items", [{**s, "order_id": result.base_id} for s in snapshots])
            except PersistenceError as e:
                await self.variants.discard("orders", result.all_ids, "Failed to create order items", e)
            return result.all_ids

        created = await self.db.insert("orders", order_row)
        order_id = str(created[0]["id"])
        try:
            await self.db.insert("order_items", [{**s, "order_id": order_id} for s in snapshots])
        except PersistenceError as e:
            logger.error(f"Order items insert failed for {order_id}: {e}")
            await self.db.delete("orders", [order_id])
            raise PersistenceError("Failed to create order items", e) from e
        return [order_id]

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Order with its items"""
        if not is_uuid(order_id):
            return None
        rows = await self.db.select("orders", {"id": str(order_id)}, limit=1)
        if not rows:
            return None
        items = await self.db.select("order_items", {"order_id": str(order_id)})
        return Order.from_row(rows[0], items)

    async def track_order(self, order_number: str, contact: str) -> Order:
        """Public order lookup; the contact must match the order or its owner's profile"""
        order_number = (order_number or "").strip()
        contact = (contact or "").strip()
        if not order_number or not contact:
            raise ValidationError(["Order number and contact are required."])

        rows = await self.db.select("orders", {"order_number": ("ilike", order_number)})
        # variant rows share the order number; the base row carries the items
        rows.sort(key=lambda r: bool(r.get("color_name")))
        if not rows:
            raise OrderNotFound(order_number)
        row = rows[0]

        profile = await self.users.get_profile(row.get("user_id")) if row.get("user_id") else None
        if is_email(contact):
            profile_email = (profile or {}).get("email")
            matched = bool(profile_email) and normalize_email(profile_email) == normalize_email(contact)
        else:
            matched = (phone_matches(contact, row.get("contact_number"))
                       or phone_matches(contact, (profile or {}).get("phone")))

        if not matched:
            raise OrderNotFound(order_number)

        items = await self.db.select("order_items", {"order_id": str(row["id"])})
        return Order.from_row(row, items)

