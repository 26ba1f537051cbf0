"""
Decimal helpers for Moonfolio.

Balances and prices travel as arbitrary-precision decimals end to end:
JSON numbers and strings are converted through ``str`` so binary float
artefacts never reach the ledger, and storage keeps plain (non
scientific) notation.

Usage:
    from moonfolio.app.utils.decimal_utils import to_decimal, format_decimal

    to_decimal(0.1)              # Decimal('0.1')
    format_decimal(Decimal("1E-8"))  # '0.00000001'
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional

# Average buy price and derived valuation figures are kept to 18 decimal places
PRICE_QUANTUM = Decimal("1e-18")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert int/float/str/Decimal to Decimal without float rounding drift.

    Raises:
        ValueError: if the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a decimal value: {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a decimal value: {value!r}") from e
    else:
        raise ValueError(f"Not a decimal value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Decimal value must be finite, got {value!r}")
    return result


def to_optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def quantize_price(value: Decimal) -> Decimal:
    """Round a computed price to 18 decimal places and drop trailing zeros."""
    return strip_zeros(value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN))


def strip_zeros(value: Decimal) -> Decimal:
    """Remove trailing zeros while staying out of exponent notation."""
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def format_decimal(value: Decimal) -> str:
    """Render a decimal in plain positional notation (no exponent)."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
