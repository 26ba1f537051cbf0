"""
Price schemas (PX prefix).

- PXQuote: current price and 24h percent change of one price id (USD)
- PXMarketCoin / PXSearchResult / PXPricePoint: market data passthrough
- PXPriceUpdateMessage: payload pushed to WebSocket subscribers
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from moonfolio.app.schemas.common import DecimalStr


class PXQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: DecimalStr
    percent_change_24h: DecimalStr = Decimal("0")


class PXQuoteItem(PXQuote):
    id: str


class PXMarketCoin(BaseModel):
    id: str
    symbol: str
    name: str
    image: Optional[str] = None
    current_price: Optional[DecimalStr] = None
    price_change_percentage_24h: Optional[DecimalStr] = None
    market_cap_rank: Optional[int] = None


class PXSearchResult(BaseModel):
    id: str
    symbol: str
    name: str
    thumb: Optional[str] = None
    market_cap_rank: Optional[int] = None


class PXPricePoint(BaseModel):
    timestamp: datetime
    price: DecimalStr


class PXPriceUpdateMessage(BaseModel):
    """Message broadcast on every refresh tick."""
    type: Literal["priceUpdate"] = "priceUpdate"
    data: List[PXQuoteItem] = Field(default_factory=list)
    timestamp: datetime
