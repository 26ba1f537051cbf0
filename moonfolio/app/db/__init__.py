"""
Database module exports.
"""
from moonfolio.app.db.base import (
    SQLModel,
    TransactionType,
    TransactionStatus,
    User,
    Portfolio,
    Asset,
    Transaction,
    PortfolioSnapshot,
    )
from moonfolio.app.db.session import get_sync_engine, get_async_engine, create_schema

__all__ = [
    "SQLModel",
    "get_sync_engine",  # alembic, scripts
    "get_async_engine",  # FastAPI app
    "create_schema",
    "TransactionType",
    "TransactionStatus",
    "User",
    "Portfolio",
    "Asset",
    "Transaction",
    "PortfolioSnapshot",
    ]
