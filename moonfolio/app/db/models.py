"""
Database models for Moonfolio.

All models use SQLModel (SQLAlchemy 2.x) with the following conventions:
- Balances and prices use DecimalText (exact decimal persisted as text)
- Timestamps are timezone-aware UTC (created_at, updated_at, date, recorded_at)
- Foreign keys enforced with PRAGMA foreign_keys=ON on SQLite
- assets.version is bumped on every write (optimistic concurrency)

The same classes are used as plain value objects by the in-memory ledger store.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Index, UniqueConstraint, event
from sqlmodel import Field, SQLModel

from moonfolio.app.db.types import DecimalText, UTCDateTime
from moonfolio.app.utils.datetime_utils import utcnow


# ============================================================================
# ENUMS
# ============================================================================

class TransactionType(str, Enum):
    """
    Ledger transaction types and their effect on the source asset.

    - BUY: ↑ balance, re-weights the average buy price when a price is given
    - SELL: ↓ balance, average buy price unchanged
    - DEPOSIT: ↑ balance (transfer-in, airdrop), average buy price unchanged
    - WITHDRAW: ↓ balance (transfer-out), average buy price unchanged
    - SWAP: ↓ source balance by amount, ↑ destination balance by to_amount
    """
    BUY = "buy"
    SELL = "sell"
    SWAP = "swap"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# MODELS
# ============================================================================

class User(SQLModel, table=True):
    """Optional owner of portfolios. Only a bcrypt hash of the password is stored."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(nullable=False, unique=True, index=True, max_length=64)
    hashed_password: str = Field(nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


class Portfolio(SQLModel, table=True):
    """
    Named collection of holdings.

    Two kinds:
    - wallet portfolio: is_ens=True, wallet_address set (lower-cased), ens_name optional
    - manual portfolio: is_ens=False, wallet_address NULL

    include_in_summary controls membership in the aggregate summary.
    """
    __tablename__ = "portfolios"
    __table_args__ = (
        UniqueConstraint("wallet_address", name="uq_portfolios_wallet_address"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False, max_length=120)
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)

    wallet_address: Optional[str] = Field(default=None, max_length=42)
    is_ens: bool = Field(default=False)
    ens_name: Optional[str] = Field(default=None)
    include_in_summary: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


class Asset(SQLModel, table=True):
    """
    Holding of one fungible token inside one portfolio.

    - symbol is stored upper-case; (portfolio_id, symbol) is unique
    - price_id is the identifier sent to the price source (e.g. "ethereum")
    - balance >= 0 after every applied transaction
    - avg_buy_price NULL means unknown cost basis
    """
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uq_assets_portfolio_symbol"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolios.id", nullable=False, index=True)

    name: str = Field(nullable=False)
    symbol: str = Field(nullable=False, max_length=32)
    price_id: str = Field(nullable=False)
    image_url: Optional[str] = Field(default=None)

    balance: Decimal = Field(default=Decimal("0"), sa_column=Column(DecimalText(), nullable=False))
    avg_buy_price: Optional[Decimal] = Field(default=None, sa_column=Column(DecimalText(), nullable=True))

    version: int = Field(default=1, nullable=False)

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


class Transaction(SQLModel, table=True):
    """
    Balance-changing event on an asset.

    amount/price/type never change after creation; only note, date and
    status can be edited. Swaps additionally carry the destination leg
    (to_asset_id, to_amount, optional to_price).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_portfolio_date", "portfolio_id", "date", "id"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolios.id", nullable=False, index=True)
    asset_id: int = Field(foreign_key="assets.id", nullable=False, index=True)
    type: TransactionType = Field(nullable=False)
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)

    amount: Decimal = Field(sa_column=Column(DecimalText(), nullable=False))
    price: Optional[Decimal] = Field(default=None, sa_column=Column(DecimalText(), nullable=True))

    to_asset_id: Optional[int] = Field(default=None, foreign_key="assets.id", index=True)
    to_amount: Optional[Decimal] = Field(default=None, sa_column=Column(DecimalText(), nullable=True))
    to_price: Optional[Decimal] = Field(default=None, sa_column=Column(DecimalText(), nullable=True))

    note: Optional[str] = Field(default=None, max_length=500)

    date: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


class PortfolioSnapshot(SQLModel, table=True):
    """
    Recorded total value of a portfolio (portfolio_id set) or of the
    summary of all included portfolios (portfolio_id NULL).
    Feeds real chart history when enough points exist.
    """
    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        Index("idx_snapshots_portfolio_recorded", "portfolio_id", "recorded_at"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: Optional[int] = Field(default=None, foreign_key="portfolios.id")
    total_value: Decimal = Field(sa_column=Column(DecimalText(), nullable=False))
    recorded_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


# ============================================================================
# EVENT LISTENERS
# ============================================================================

@event.listens_for(Portfolio, "before_update")
@event.listens_for(Asset, "before_update")
def receive_before_update(mapper, connection, target):
    """Update updated_at timestamp on update."""
    target.updated_at = utcnow()
