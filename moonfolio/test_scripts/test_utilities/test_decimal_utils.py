"""
Test decimal helpers and the DecimalStr schema type.
"""
from decimal import Decimal

import pytest
from pydantic import BaseModel

from moonfolio.app.schemas.common import DecimalStr
from moonfolio.app.utils.decimal_utils import format_decimal, quantize_price, strip_zeros, to_decimal


class _Holder(BaseModel):
    value: DecimalStr


def test_to_decimal_from_float_has_no_drift():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("  2.50 ") == Decimal("2.50")
    assert to_decimal(3) == Decimal("3")


@pytest.mark.parametrize("bad", ["abc", "NaN", "Infinity", True, None, [1]])
def test_to_decimal_rejects(bad):
    with pytest.raises(ValueError):
        to_decimal(bad)


def test_format_decimal_is_positional():
    assert format_decimal(Decimal("1E-8")) == "0.00000001"
    assert format_decimal(Decimal("1.500")) == "1.5"
    assert format_decimal(Decimal("2E+3")) == "2000"
    assert format_decimal(Decimal("0.000")) == "0"


def test_strip_zeros_and_quantize():
    assert str(strip_zeros(Decimal("150.000"))) == "150"
    assert str(quantize_price(Decimal("1") / Decimal("3"))) == "0.333333333333333333"


def test_decimal_str_json_round_trip():
    """JSON numbers are read exactly and written back as plain strings."""
    holder = _Holder.model_validate_json('{"value": 0.1}')
    assert holder.value == Decimal("0.1")
    assert holder.model_dump_json() == '{"value":"0.1"}'

    assert _Holder(value="12.3400").model_dump(mode="json") == {"value": "12.34"}
