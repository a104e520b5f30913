from decimal import Decimal
from typing import Any, Dict
from pydantic import BaseModel
from ..errors import InvalidZone
from ..models.order import DeliveryZone, ShippingSpeed

SHIPPING_FEES: Dict[DeliveryZone, Decimal] = {
    DeliveryZone.INSIDE: Decimal(60),
    DeliveryZone.OUTSIDE: Decimal(120),
}

EXPRESS_SURCHARGES: Dict[DeliveryZone, Decimal] = {
    DeliveryZone.INSIDE: Decimal(60),
    DeliveryZone.OUTSIDE: Decimal(80),
}

ZONE_LABELS: Dict[DeliveryZone, str] = {
    DeliveryZone.INSIDE: "Inside Dhaka",
    DeliveryZone.OUTSIDE: "Outside Dhaka",
}

class DeliveryEstimate(BaseModel):
    min_days: int
    max_days: int
    label: str

DELIVERY_ESTIMATES: Dict[DeliveryZone, DeliveryEstimate] = {
    DeliveryZone.INSIDE: DeliveryEstimate(min_days=1, max_days=2, label="1-2 days delivery (Dhaka)"),
    DeliveryZone.OUTSIDE: DeliveryEstimate(min_days=3, max_days=5, label="3-5 days delivery (Outside Dhaka)"),
}

def parse_zone(zone: Any) -> DeliveryZone:
    """Map a raw delivery location to a zone; anything unknown is rejected"""
    if isinstance(zone, DeliveryZone):
        return zone
    try:
        return DeliveryZone(str(zone).strip().lower())
    except ValueError:
        raise InvalidZone(zone) from None

def parse_speed(speed: Any) -> ShippingSpeed:
    if isinstance(speed, ShippingSpeed):
        return speed
    if str(speed or "").strip().lower() == ShippingSpeed.EXPRESS.value:
        return ShippingSpeed.EXPRESS
    return ShippingSpeed.STANDARD

def shipping_fee(zone: Any, speed: Any = ShippingSpeed.STANDARD) -> Decimal:
    """Flat fee for the zone, plus the express surcharge when requested"""
    zone = parse_zone(zone)
    fee = SHIPPING_FEES[zone]
    if parse_speed(speed) is ShippingSpeed.EXPRESS:
        fee += EXPRESS_SURCHARGES[zone]
    return fee

def delivery_estimate(zone: Any) -> DeliveryEstimate:
    """Day range shown to the customer"""
    return DELIVERY_ESTIMATES[parse_zone(zone)]

def shipping_note(zone: Any, speed: Any = ShippingSpeed.STANDARD) -> str:
    """Free-text note stored on the order"""
    speed_label = "Express" if parse_speed(speed) is ShippingSpeed.EXPRESS else "Standard"
    return f"Shipping: {speed_label} • Area: {ZONE_LABELS[parse_zone(zone)]}"
