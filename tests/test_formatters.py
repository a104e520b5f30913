"""Tests for money, formatting and contact helpers."""

import re
from datetime import datetime
from decimal import Decimal

import pytest
import pytz

from storefront.utils.formatters import (
    format_currency, format_datetime, make_order_number, round_amount, safe_int, safe_number
)
from storefront.utils.validators import is_valid_phone, is_valid_zip, normalize_phone, phone_matches


class TestSafeNumber:
    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf"), "Infinity", object()])
    def test_junk_is_zero(self, value):
        assert safe_number(value) == Decimal(0)

    def test_parses_strings_and_numbers(self):
        assert safe_number(" 12.5 ") == Decimal("12.5")
        assert safe_number(3) == Decimal(3)
        assert safe_number(0.1) == Decimal("0.1")

    def test_safe_int_floors_and_clamps(self):
        assert safe_int("7.9") == 7
        assert safe_int(-3) == 0
        assert safe_int("nope") == 0


class TestFormatting:
    def test_currency_has_symbol_and_separators(self):
        assert format_currency(1410) == "৳1,410"
        assert format_currency("1234567.4") == "৳1,234,567"

    def test_negative_and_junk_render_as_zero(self):
        assert format_currency(-50) == "৳0"
        assert format_currency("x") == "৳0"

    def test_round_half_up(self):
        assert round_amount(Decimal("2.5")) == Decimal(3)
        assert round_amount(Decimal("149.49")) == Decimal(149)

    def test_order_number_format(self):
        number = make_order_number(datetime(2026, 3, 9, tzinfo=pytz.utc))
        assert re.fullmatch(r"ORD-20260309-\d{4}", number)

    def test_format_datetime_uses_shop_timezone(self):
        # Asia/Dhaka is UTC+6
        assert format_datetime(datetime(2026, 1, 1, 20, 0)) == "2026-01-02 02:00:00"


class TestValidators:
    @pytest.mark.parametrize("raw", ["01712345678", "+8801712345678", "8801712345678", "017-1234-5678"])
    def test_valid_bangladesh_numbers(self, raw):
        assert is_valid_phone(raw)
        assert normalize_phone(raw) == "01712345678"

    @pytest.mark.parametrize("raw", ["", "12345", "0171234567", "02123456789"])
    def test_invalid_numbers(self, raw):
        assert not is_valid_phone(raw)

    def test_zip_code(self):
        assert is_valid_zip("1207")
        assert not is_valid_zip("120")
        assert not is_valid_zip("12a7")

    def test_phone_matches_with_or_without_country_code(self):
        assert phone_matches("+880 1712-345678", "01712345678")
        assert not phone_matches("01712345678", "01812345678")
        assert not phone_matches("", "01712345678")
