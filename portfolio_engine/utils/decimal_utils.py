"""
Fixed-point decimal helpers.

Every monetary and percentage value in the engine flows through these
functions. Arithmetic runs under FINANCE_CONTEXT; rounding is always
explicit and ROUND_HALF_UP. Binary floats are rejected at parse time.
"""

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Union

from portfolio_engine.domain.exceptions import DecimalParseError, DivisionByZeroError

DecimalInput = Union[str, int, Decimal]

FINANCE_CONTEXT = Context(prec=34, rounding=ROUND_HALF_UP)

MONETARY_SCALE = 4
PERCENT_SCALE = 4
SCORE_SCALE = 4
DEFAULT_MINOR_UNIT_SCALE = 2

CURRENCY_MINOR_UNITS: Dict[str, int] = {
    "BHD": 3,
    "CLP": 0,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "OMR": 3,
    "VND": 0,
}

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def parse_decimal(value: DecimalInput) -> Decimal:
    """
    Parse a value into an exact Decimal.

    Args:
        value: String, integer or Decimal

    Returns:
        Finite Decimal

    Raises:
        DecimalParseError: Empty, non-numeric, non-finite or float input
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise DecimalParseError(value, f"{type(value).__name__} values are not accepted")

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise DecimalParseError(value, "empty string")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise DecimalParseError(value) from None
    else:
        raise DecimalParseError(value, f"unsupported type {type(value).__name__}")

    if not parsed.is_finite():
        raise DecimalParseError(value, "value must be finite")
    return parsed


def add(*values: DecimalInput) -> Decimal:
    total = ZERO
    for value in values:
        total = FINANCE_CONTEXT.add(total, parse_decimal(value))
    return total


def subtract(a: DecimalInput, b: DecimalInput) -> Decimal:
    return FINANCE_CONTEXT.subtract(parse_decimal(a), parse_decimal(b))


def multiply(a: DecimalInput, b: DecimalInput) -> Decimal:
    return FINANCE_CONTEXT.multiply(parse_decimal(a), parse_decimal(b))


def divide(a: DecimalInput, b: DecimalInput) -> Decimal:
    dividend = parse_decimal(a)
    divisor = parse_decimal(b)
    if divisor.is_zero():
        raise DivisionByZeroError(dividend)
    return FINANCE_CONTEXT.divide(dividend, divisor)


def round_half_up(value: DecimalInput, scale: int) -> Decimal:
    """Round to `scale` fractional digits, half away from zero."""
    exponent = Decimal(1).scaleb(-scale)
    return parse_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP, context=FINANCE_CONTEXT)


def to_fixed_string(value: DecimalInput, scale: int) -> str:
    """Render with exactly `scale` fractional digits (no exponent notation)."""
    return format(round_half_up(value, scale), "f")


def greater_than(a: DecimalInput, b: DecimalInput) -> bool:
    return parse_decimal(a).compare(parse_decimal(b)) > 0


def less_than(a: DecimalInput, b: DecimalInput) -> bool:
    return parse_decimal(a).compare(parse_decimal(b)) < 0


def equals(a: DecimalInput, b: DecimalInput) -> bool:
    return parse_decimal(a).compare(parse_decimal(b)) == 0


def is_zero(value: DecimalInput) -> bool:
    return parse_decimal(value).is_zero()


def is_negative(value: DecimalInput) -> bool:
    parsed = parse_decimal(value)
    return not parsed.is_zero() and parsed.is_signed()


def is_positive(value: DecimalInput) -> bool:
    parsed = parse_decimal(value)
    return not parsed.is_zero() and not parsed.is_signed()


def minor_unit_scale(currency: str) -> int:
    """Fractional digits of a currency's minor unit (2 unless listed)."""
    return CURRENCY_MINOR_UNITS.get(currency.upper(), DEFAULT_MINOR_UNIT_SCALE)
