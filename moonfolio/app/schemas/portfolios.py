"""
Portfolio schemas for Moonfolio.

**Naming Convention**:
- PF prefix: Portfolio-related schemas
- Item suffix: Single entity payloads (PFCreateItem, PFReadItem)

**Design Notes**:
- Wallet address and is_ens travel together: a wallet portfolio always has
  an address, a manual portfolio never has one
- Addresses are lower-cased on input so lookups are case-insensitive
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from moonfolio.app.schemas.common import DecimalStr

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(value: Optional[str]) -> Optional[str]:
    """Validate an Ethereum address and return its lower-cased form."""
    if value is None:
        return None
    value = value.strip()
    if not ADDRESS_PATTERN.match(value):
        raise ValueError(f"Invalid wallet address: {value!r}")
    return value.lower()


class PFCreateItem(BaseModel):
    """
    DTO for creating a portfolio.

    The public API only creates manual portfolios (name, owner, summary flag);
    wallet portfolios are created by the wallet-connect flow, which fills the
    wallet fields.
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    user_id: Optional[int] = Field(default=None, gt=0, description="Owner; omit for anonymous portfolios")
    include_in_summary: bool = Field(default=True)

    wallet_address: Optional[str] = Field(default=None, description="Set only for wallet portfolios")
    is_ens: bool = Field(default=False)
    ens_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator('name')
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator('wallet_address')
    @classmethod
    def _normalize_address(cls, v):
        return normalize_address(v)

    @model_validator(mode='after')
    def validate_wallet_fields(self) -> 'PFCreateItem':
        if self.is_ens != (self.wallet_address is not None):
            raise ValueError("wallet_address is required for wallet portfolios and forbidden otherwise")
        if self.ens_name and not self.is_ens:
            raise ValueError("ens_name is only allowed on wallet portfolios")
        return self


class PFManualCreateItem(BaseModel):
    """Body of POST /portfolios."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    user_id: Optional[int] = Field(default=None, gt=0)
    include_in_summary: bool = Field(default=True)

    def to_create_item(self) -> PFCreateItem:
        return PFCreateItem(name=self.name, user_id=self.user_id, include_in_summary=self.include_in_summary)


class PFUpdateItem(BaseModel):
    """Rename and summary toggle; wallet fields are immutable."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    include_in_summary: Optional[bool] = None


class PFReadItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    user_id: Optional[int] = None
    wallet_address: Optional[str] = None
    is_ens: bool
    ens_name: Optional[str] = None
    include_in_summary: bool
    created_at: datetime
    updated_at: datetime


class PFOverview(BaseModel):
    """
    Aggregate valuation of a portfolio (or of the summary).

    change_24h is back-computed from each asset's 24h percent change,
    see utils.financial_math.previous_value.
    """
    total_value: DecimalStr
    change_24h: DecimalStr
    change_24h_percentage: DecimalStr
    last_updated: datetime


class PFSummary(PFOverview):
    portfolio_ids: list[int] = Field(default_factory=list, description="Portfolios included in the totals")
