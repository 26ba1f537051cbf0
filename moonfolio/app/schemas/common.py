"""
Common schemas shared across subsystems.

**Domain Coverage**:
- DecimalStr / OptionalDecimalStr: Decimal fields that serialize to plain strings in JSON
- ErrorResponse: body of every domain error returned by the API
- BaseDeleteResult: outcome of a delete (with cascade count)
"""
from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from moonfolio.app.utils.decimal_utils import format_decimal, to_decimal


def _parse_decimal(value: Any) -> Any:
    # Floats go through str() so 0.1 stays 0.1; anything else is left to pydantic
    if isinstance(value, float):
        return to_decimal(value)
    return value


# Decimal accepted as JSON number or string, always emitted as a plain string
DecimalStr = Annotated[
    Decimal,
    BeforeValidator(_parse_decimal),
    PlainSerializer(format_decimal, return_type=str, when_used="json"),
]


class ErrorResponse(BaseModel):
    """
    Structured failure returned for every domain error.

    applied:
    - "none": nothing was written, the request can be retried as is
    - "partial": some writes may have landed, manual reconciliation needed
    """
    model_config = ConfigDict(extra="forbid")

    error_code: str = Field(..., description="Stable machine-readable code")
    message: str = Field(..., description="Human-readable message")
    details: dict = Field(default_factory=dict)
    applied: Literal["none", "partial"] = Field("none")
    retry_safe: bool = Field(False, description="Retrying the same request is safe and may succeed")


class BaseDeleteResult(BaseModel):
    """Outcome of a delete, with how many dependent rows went with it."""
    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., description="Deleted entity id")
    success: bool = Field(True)
    cascaded_count: int = Field(0, ge=0, description="Dependent records removed with it")
    message: Optional[str] = Field(None)
