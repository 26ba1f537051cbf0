"""
User schemas (US prefix).
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class USCreateItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=8, max_length=128)


class USReadItem(BaseModel):
    """Public view of a user (never includes the password hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    created_at: datetime
