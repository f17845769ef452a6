"""
Validation functions for orderbook/price data at ingestion boundaries.

parse_price() and parse_size() convert raw feed values (strings or numbers)
to Decimal and raise ValueError on invalid data (NaN, Inf, negative,
out-of-range). Call these at every conversion from external data.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

_ZERO = Decimal("0")
_ONE = Decimal("1")


def to_decimal(raw: object, context: str = "value") -> Decimal:
    """
    Convert a raw feed value to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion.

    Raises:
        ValueError: If the value cannot be parsed as a number.
    """
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"Invalid {context}: {raw!r}")
    try:
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {context}: {raw!r}") from e


def validate_price(p: Decimal, context: str = "price") -> Decimal:
    """
    Validate a price value is within [0, 1] and finite.

    Args:
        p: Price value to validate (prediction-market prices live in 0-1).
        context: Description of what this value represents (for error messages).

    Returns:
        The validated price value.

    Raises:
        ValueError: If price is NaN, infinite, negative, or > 1.
    """
    if p.is_nan():
        raise ValueError(f"Invalid {context}: NaN")
    if p.is_infinite():
        raise ValueError(f"Invalid {context}: Inf")
    if p < _ZERO:
        raise ValueError(f"Invalid {context}: negative value {p}")
    if p > _ONE:
        raise ValueError(f"Invalid {context}: {p} out of range [0, 1]")
    return p


def validate_size(s: Decimal, context: str = "size") -> Decimal:
    """
    Validate a size/quantity value is non-negative and finite.

    Raises:
        ValueError: If size is NaN, infinite, or negative.
    """
    if s.is_nan():
        raise ValueError(f"Invalid {context}: NaN")
    if s.is_infinite():
        raise ValueError(f"Invalid {context}: Inf")
    if s < _ZERO:
        raise ValueError(f"Invalid {context}: negative value {s}")
    return s


def parse_price(raw: object, context: str = "price") -> Decimal:
    return validate_price(to_decimal(raw, context), context)


def parse_size(raw: object, context: str = "size") -> Decimal:
    return validate_size(to_decimal(raw, context), context)
