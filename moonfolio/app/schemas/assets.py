"""
Asset schemas for Moonfolio.

**Naming Convention**:
- FA prefix: Financial Asset (a token holding inside a portfolio)

**Design Notes**:
- Symbols are upper-cased on input; (portfolio, symbol) is unique
- balance is never negative; avg_buy_price may be unknown (None)
- FAWithPrice is a read-model: the price fields are computed, never stored
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from moonfolio.app.schemas.common import DecimalStr


def _normalize_symbol(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip().upper()
    if not v:
        raise ValueError("symbol must not be blank")
    return v


class FACreateItem(BaseModel):
    """
    DTO for adding a holding to a portfolio.

    If the portfolio already holds the symbol, the balance is merged into
    the existing asset instead of creating a second row.
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    symbol: str = Field(..., min_length=1, max_length=32)
    price_id: str = Field(..., min_length=1, max_length=120, description="Identifier at the price source, e.g. 'ethereum'")
    balance: DecimalStr = Field(default=Decimal("0"), ge=0)
    avg_buy_price: Optional[DecimalStr] = Field(default=None, ge=0)
    image_url: Optional[str] = Field(default=None, max_length=500)

    @field_validator('symbol')
    @classmethod
    def _symbol_upper(cls, v):
        return _normalize_symbol(v)


class FAUpdateItem(BaseModel):
    """
    Partial asset update.

    A balance different from the stored one is not written directly: a
    buy or sell transaction for the difference is recorded instead.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    symbol: Optional[str] = Field(default=None, min_length=1, max_length=32)
    price_id: Optional[str] = Field(default=None, min_length=1, max_length=120)
    balance: Optional[DecimalStr] = Field(default=None, ge=0)
    avg_buy_price: Optional[DecimalStr] = Field(default=None, ge=0)
    image_url: Optional[str] = Field(default=None, max_length=500)

    @field_validator('symbol')
    @classmethod
    def _symbol_upper(cls, v):
        return _normalize_symbol(v)


class FAReadItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    portfolio_id: int
    name: str
    symbol: str
    price_id: str
    image_url: Optional[str] = None
    balance: DecimalStr
    avg_buy_price: Optional[DecimalStr] = None
    created_at: datetime
    updated_at: datetime


class FAWithPrice(FAReadItem):
    """Asset enriched with the latest quote (zeros when no quote is available)."""
    current_price: DecimalStr = Decimal("0")
    value: DecimalStr = Decimal("0")
    price_change_24h: DecimalStr = Decimal("0")
    profit_loss: DecimalStr = Decimal("0")
    profit_loss_percentage: DecimalStr = Decimal("0")
    quote_available: bool = False


class FATransferRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_portfolio_id: int = Field(..., gt=0)
    amount: DecimalStr = Field(..., gt=0)


class FATransferResult(BaseModel):
    """
    Outcome of a transfer.

    When the whole balance moved, the source asset is deleted together with
    its transactions, so withdraw_transaction_id is None.
    """
    source_asset_id: int
    source_deleted: bool
    withdraw_transaction_id: Optional[int] = None
    destination_asset_id: int
    deposit_transaction_id: int
    amount: DecimalStr
    unit_price: DecimalStr
    price_source: str = Field(..., description="'market', 'avg_buy_price' or 'none'")
