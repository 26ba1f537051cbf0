"""
Wallet schemas (WL prefix).

- WLIdentity: resolved address (+ display name when resolved from a name)
- WLTokenBalance: one entry of the native + allow-listed token balances
- WLConnectRequest / WLConnectResult: wallet-connect flow
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from moonfolio.app.schemas.common import DecimalStr
from moonfolio.app.schemas.portfolios import PFReadItem


class WLIdentity(BaseModel):
    address: str = Field(..., description="Lower-cased 0x address")
    display_name: Optional[str] = Field(default=None, description="ENS name when resolved from one")


class WLTokenBalance(BaseModel):
    asset_key: str = Field(..., description="'native' or the token contract address")
    symbol: str
    name: str
    price_id: str
    balance: DecimalStr
    image_url: Optional[str] = None


class WLWalletAssets(BaseModel):
    address: str
    display_name: Optional[str] = None
    balances: List[WLTokenBalance]


class WLConnectRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(..., min_length=3, max_length=255, description="0x address or ENS name")
    include_in_summary: bool = Field(default=True)
    user_id: Optional[int] = Field(default=None, gt=0)


class WLConnectResult(BaseModel):
    portfolio: PFReadItem
    created: bool = Field(..., description="False when an existing wallet portfolio was reused")
