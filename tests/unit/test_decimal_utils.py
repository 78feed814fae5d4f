"""
Unit Tests for the fixed-point decimal helpers
"""

from decimal import Decimal

import pytest

from portfolio_engine.domain.exceptions import DecimalParseError, DivisionByZeroError
from portfolio_engine.utils.decimal_utils import (
    add,
    divide,
    equals,
    greater_than,
    is_negative,
    is_positive,
    is_zero,
    less_than,
    minor_unit_scale,
    multiply,
    parse_decimal,
    round_half_up,
    subtract,
    to_fixed_string,
)


class TestParse:

    @pytest.mark.parametrize("raw, expected", [
        ("12.50", Decimal("12.50")),
        ("  3 ", Decimal("3")),
        ("-0.0001", Decimal("-0.0001")),
        (7, Decimal("7")),
        (Decimal("1.23"), Decimal("1.23")),
    ])
    def test_valid_values(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "1.2.3", "NaN", "Infinity", "-inf"])
    def test_invalid_strings(self, raw):
        with pytest.raises(DecimalParseError):
            parse_decimal(raw)

    def test_float_rejected(self):
        with pytest.raises(DecimalParseError) as exc_info:
            parse_decimal(0.1)
        assert "float" in str(exc_info.value)

    def test_bool_rejected(self):
        with pytest.raises(DecimalParseError):
            parse_decimal(True)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_decimal("x")


class TestArithmetic:

    def test_add_is_exact(self):
        assert add("0.1", "0.2") == Decimal("0.3")
        assert add() == Decimal("0")
        assert add("1", "2", "3.5") == Decimal("6.5")

    def test_subtract_and_multiply(self):
        assert subtract("10.00", "0.01") == Decimal("9.99")
        assert multiply("1.5", "1.5") == Decimal("2.25")

    def test_divide(self):
        assert divide("1", "4") == Decimal("0.25")
        assert round_half_up(divide("1", "3"), 4) == Decimal("0.3333")

    def test_divide_by_zero(self):
        with pytest.raises(DivisionByZeroError):
            divide("5", "0.000")

    def test_divide_by_zero_is_zero_division_error(self):
        with pytest.raises(ZeroDivisionError):
            divide("5", "0")


class TestRounding:

    @pytest.mark.parametrize("raw, scale, expected", [
        ("2.345", 2, Decimal("2.35")),
        ("2.344", 2, Decimal("2.34")),
        ("-2.345", 2, Decimal("-2.35")),
        ("0.5", 0, Decimal("1")),
        ("10", 4, Decimal("10.0000")),
    ])
    def test_round_half_up(self, raw, scale, expected):
        assert round_half_up(raw, scale) == expected
        assert round_half_up(raw, scale).as_tuple().exponent == -scale

    def test_to_fixed_string(self):
        assert to_fixed_string("750", 2) == "750.00"
        assert to_fixed_string("1E+3", 2) == "1000.00"
        assert to_fixed_string(Decimal("0"), 2) == "0.00"
        assert to_fixed_string("35", 0) == "35"


class TestComparisons:

    def test_exact_comparisons(self):
        assert equals("1.10", "1.1")
        assert not greater_than("1.10", "1.1")
        assert greater_than("1.1000001", "1.1")
        assert less_than("-1", "0")

    def test_sign_checks(self):
        assert is_zero("0.000")
        assert not is_negative("-0.00")
        assert is_negative("-0.01")
        assert not is_positive("0")
        assert is_positive("0.0001")


def test_minor_unit_scale():
    assert minor_unit_scale("USD") == 2
    assert minor_unit_scale("jpy") == 0
    assert minor_unit_scale("KWD") == 3
