"""
Tests for the input sanitizer that guards quantities, prices and text.
"""
from decimal import Decimal

import pytest

from butik.core.exceptions import InvalidInputError
from butik.utils.input_sanitizer import sanitize_decimal, sanitize_integer, sanitize_string


class TestSanitizeInteger:

    @pytest.mark.parametrize("value,expected", [
        (3, 3),
        ("3", 3),
        (" 12 ", 12),
        (4.0, 4),
        (Decimal("7"), 7),
    ])
    def test_accepts_integral_values(self, value, expected):
        assert sanitize_integer(value, "quantity") == expected

    @pytest.mark.parametrize("value", ["abc", 1.5, "2.5", True, float("nan"), "inf"])
    def test_rejects_non_integral(self, value):
        with pytest.raises(InvalidInputError) as exc_info:
            sanitize_integer(value, "quantity")

        assert exc_info.value.details["field"] == "quantity"

    def test_min_value(self):
        with pytest.raises(InvalidInputError) as exc_info:
            sanitize_integer(0, "quantity", min_value=1)

        assert exc_info.value.message == "quantity must be at least 1"

    def test_optional_empty_returns_none(self):
        assert sanitize_integer("", "stock", required=False) is None
        assert sanitize_integer(None, "stock", required=False) is None

    def test_required_empty_raises(self):
        with pytest.raises(InvalidInputError):
            sanitize_integer("  ", "stock")


class TestSanitizeDecimal:

    def test_float_goes_through_str(self):
        assert sanitize_decimal(0.1, "price") == Decimal("0.1")

    def test_exclusive_minimum(self):
        with pytest.raises(InvalidInputError) as exc_info:
            sanitize_decimal("0", "unit_price", min_value=Decimal("0"), exclusive_min=True)

        assert "greater than" in exc_info.value.message

    def test_inclusive_minimum_allows_zero(self):
        assert sanitize_decimal("0", "shipping_cost", min_value=Decimal("0")) == Decimal("0")

    @pytest.mark.parametrize("value", ["sepuluh", False, "NaN"])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(InvalidInputError):
            sanitize_decimal(value, "price")


class TestSanitizeString:

    def test_strips_and_blanks_to_none(self):
        assert sanitize_string("  Jl. Braga  ") == "Jl. Braga"
        assert sanitize_string("   ") is None
        assert sanitize_string(None) is None

    def test_truncates(self):
        assert sanitize_string("abcdef", max_length=3) == "abc"
