"""
Unit tests for scanner/validation.py -- price and size validation at the feed boundary.
"""

from decimal import Decimal

import pytest

from scanner.validation import parse_price, parse_size, to_decimal, validate_price, validate_size


class TestToDecimal:
    def test_string(self):
        assert to_decimal("0.45") == Decimal("0.45")

    def test_float_goes_through_str(self):
        """0.1 must not carry its binary expansion."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int(self):
        assert to_decimal(3) == Decimal("3")

    def test_decimal_passthrough(self):
        d = Decimal("0.55")
        assert to_decimal(d) is d

    def test_garbage_raises(self):
        with pytest.raises(ValueError, match="Invalid"):
            to_decimal("abc")

    def test_none_and_bool_rejected(self):
        with pytest.raises(ValueError):
            to_decimal(None)
        with pytest.raises(ValueError):
            to_decimal(True)


class TestValidatePrice:
    def test_range_bounds_valid(self):
        assert validate_price(Decimal("0")) == Decimal("0")
        assert validate_price(Decimal("1")) == Decimal("1")
        assert validate_price(Decimal("0.50")) == Decimal("0.50")

    def test_negative_price_invalid(self):
        with pytest.raises(ValueError, match="negative"):
            validate_price(Decimal("-0.01"))

    def test_greater_than_one_invalid(self):
        with pytest.raises(ValueError, match="out of range"):
            validate_price(Decimal("1.01"))

    def test_nan_and_inf_invalid(self):
        with pytest.raises(ValueError, match="NaN"):
            validate_price(Decimal("NaN"))
        with pytest.raises(ValueError, match="Inf"):
            validate_price(Decimal("Infinity"))


class TestValidateSize:
    def test_zero_and_large_valid(self):
        assert validate_size(Decimal("0")) == Decimal("0")
        assert validate_size(Decimal("1000000")) == Decimal("1000000")

    def test_negative_invalid(self):
        with pytest.raises(ValueError, match="negative"):
            validate_size(Decimal("-5"))

    def test_inf_invalid(self):
        with pytest.raises(ValueError, match="Inf"):
            validate_size(Decimal("-Infinity"))


class TestParse:
    def test_parse_price_from_feed_string(self):
        assert parse_price("0.40", context="ask") == Decimal("0.40")

    def test_parse_price_context_in_error(self):
        with pytest.raises(ValueError, match="WS ask price"):
            parse_price("1.5", context="WS ask price")

    def test_parse_size(self):
        assert parse_size("250") == Decimal("250")
        with pytest.raises(ValueError):
            parse_size("-1")
