"""Tests for delivery zones and shipping fees."""

from decimal import Decimal

import pytest

from storefront.errors import InvalidZone
from storefront.models.order import DeliveryZone
from storefront.services.shipping_service import delivery_estimate, shipping_fee, shipping_note


class TestShippingFee:
    def test_flat_fees(self):
        assert shipping_fee("inside") == Decimal(60)
        assert shipping_fee(DeliveryZone.OUTSIDE) == Decimal(120)

    def test_express_surcharge(self):
        assert shipping_fee("inside", "express") == Decimal(120)
        assert shipping_fee("outside", "express") == Decimal(200)

    def test_unknown_speed_is_standard(self):
        assert shipping_fee("outside", "teleport") == Decimal(120)

    @pytest.mark.parametrize("zone", ["foreign", "", None, "mars"])
    def test_unknown_zone_raises(self, zone):
        with pytest.raises(InvalidZone):
            shipping_fee(zone)


class TestDeliveryEstimate:
    def test_windows(self):
        inside = delivery_estimate("inside")
        outside = delivery_estimate("outside")
        assert (inside.min_days, inside.max_days) == (1, 2)
        assert (outside.min_days, outside.max_days) == (3, 5)

    def test_note(self):
        assert shipping_note("outside", "express") == "Shipping: Express • Area: Outside Dhaka"
