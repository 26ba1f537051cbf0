"""
Transaction schemas for Moonfolio.

DTOs for Transaction CRUD operations.

**Naming Convention**:
- TX prefix: Transaction-related schemas
- Item suffix: Single item (e.g., TXCreateItem)

**Design Notes**:
- amount, price and type are immutable after creation: TXUpdateItem only
  carries note, date and status
- TXWithDetails is a read-model joining asset display fields and value
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from moonfolio.app.db.models import TransactionStatus, TransactionType
from moonfolio.app.schemas.common import DecimalStr


class TXCreateItem(BaseModel):
    """
    DTO for recording a transaction.

    Rules:
    - amount > 0 always
    - SWAP: to_asset_id and to_amount required (to_price optional)
    - other types: no destination fields
    - BUY/SELL without price are accepted but leave the cost basis untouched
    """
    model_config = ConfigDict(extra="forbid")

    asset_id: int = Field(..., gt=0)
    type: TransactionType
    amount: DecimalStr = Field(..., gt=0)
    price: Optional[DecimalStr] = Field(default=None, ge=0, description="Unit price in USD")
    date: Optional[datetime] = Field(default=None, description="Defaults to now; may be backdated")
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)
    note: Optional[str] = Field(default=None, max_length=500)

    to_asset_id: Optional[int] = Field(default=None, gt=0)
    to_amount: Optional[DecimalStr] = Field(default=None, gt=0)
    to_price: Optional[DecimalStr] = Field(default=None, ge=0)

    @model_validator(mode='after')
    def validate_swap_fields(self) -> 'TXCreateItem':
        if self.type == TransactionType.SWAP:
            if self.to_asset_id is None or self.to_amount is None:
                raise ValueError("swap requires to_asset_id and to_amount")
            if self.to_asset_id == self.asset_id:
                raise ValueError("swap source and destination must differ")
        elif any(v is not None for v in (self.to_asset_id, self.to_amount, self.to_price)):
            raise ValueError(f"{self.type.value} must not carry swap destination fields")
        return self


class TXUpdateItem(BaseModel):
    """Only non-financial fields can change."""
    model_config = ConfigDict(extra="forbid")

    note: Optional[str] = Field(default=None, max_length=500)
    date: Optional[datetime] = None
    status: Optional[TransactionStatus] = None


class TXReadItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    portfolio_id: int
    asset_id: int
    type: TransactionType
    status: TransactionStatus
    amount: DecimalStr
    price: Optional[DecimalStr] = None
    to_asset_id: Optional[int] = None
    to_amount: Optional[DecimalStr] = None
    to_price: Optional[DecimalStr] = None
    note: Optional[str] = None
    date: datetime
    created_at: datetime


class TXWithDetails(TXReadItem):
    """Transaction joined with asset display fields; value = amount x price (0 without price)."""
    asset_name: Optional[str] = None
    asset_symbol: Optional[str] = None
    asset_image_url: Optional[str] = None
    to_asset_name: Optional[str] = None
    to_asset_symbol: Optional[str] = None
    to_asset_image_url: Optional[str] = None
    value: DecimalStr = Decimal("0")
