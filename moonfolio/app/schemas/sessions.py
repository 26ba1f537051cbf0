"""
Client session schemas (SS prefix).
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SSActivePortfolio(BaseModel):
    model_config = ConfigDict(extra="forbid")

    portfolio_id: Optional[int] = Field(default=None, gt=0, description="None clears the selection")
