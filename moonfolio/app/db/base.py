"""
Database base module.
SQLModel base classes and metadata.
Import all models here so Alembic can detect them.
"""
from sqlmodel import SQLModel

from moonfolio.app.db.models import (
    # Enums
    TransactionType,
    TransactionStatus,
    # Models
    User,
    Portfolio,
    Asset,
    Transaction,
    PortfolioSnapshot,
    )

__all__ = [
    "SQLModel",
    "TransactionType",
    "TransactionStatus",
    "User",
    "Portfolio",
    "Asset",
    "Transaction",
    "PortfolioSnapshot",
    ]
