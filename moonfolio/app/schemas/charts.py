"""
Chart schemas (CH prefix).
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from moonfolio.app.schemas.common import DecimalStr


class Timeframe(str, Enum):
    H24 = "24h"
    D7 = "7d"
    D30 = "30d"
    Y1 = "1y"
    ALL = "all"


class CHPoint(BaseModel):
    timestamp: datetime
    value: DecimalStr


class CHSeries(BaseModel):
    """
    Portfolio value over a timeframe.

    synthetic=True means the points come from a seeded simulation anchored
    on the current value, not from recorded history.
    """
    timeframe: Timeframe
    portfolio_id: Optional[int] = Field(default=None, description="None for the summary of all included portfolios")
    synthetic: bool
    points: List[CHPoint]


class CHSnapshotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    portfolio_id: Optional[int] = None
    total_value: DecimalStr
    recorded_at: datetime
