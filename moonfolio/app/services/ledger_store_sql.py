"""
SQL ledger store (SQLModel + SQLAlchemy AsyncSession).

The session is owned by the caller (one per request). Writes are flushed
immediately so generated ids are available; run_in_unit_of_work commits
or rolls back the session.

Asset writes use optimistic concurrency: the stored version is bumped
with ``UPDATE ... WHERE id = :id AND version = :expected`` before the
ORM flushes the new balance, so a concurrent writer that read the same
version gets a ConflictError and retries on fresh data.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moonfolio.app.db.models import Asset, Portfolio, PortfolioSnapshot, Transaction, User
from moonfolio.app.services.errors import ConflictError, InvalidArgumentError
from moonfolio.app.services.ledger_store import DEFAULT_MAX_RETRIES, LedgerStore
from moonfolio.app.utils.datetime_utils import utcnow


class SqlLedgerStore(LedgerStore):
    """LedgerStore backed by a relational database."""

    def __init__(self, session: AsyncSession, max_retries: int = DEFAULT_MAX_RETRIES):
        super().__init__(max_retries)
        self.session = session

    async def _begin(self) -> None:
        # Reads before the unit of work may have auto-begun a transaction:
        # close it so every attempt starts from committed state.
        if self.session.in_transaction():
            await self.session.commit()

    async def _commit(self) -> None:
        await self.session.commit()

    async def _rollback(self) -> None:
        await self.session.rollback()

    async def _flush(self, what: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise InvalidArgumentError(f"{what} violates a database constraint", details={"reason": str(e.orig)}) from e

    # ===== USERS =====

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def find_user_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalars().first()

    async def add_user(self, user: User) -> User:
        self.session.add(user)
        await self._flush("User")
        return user

    # ===== PORTFOLIOS =====

    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        return await self.session.get(Portfolio, portfolio_id)

    async def list_portfolios(self, user_id: Optional[int] = None) -> List[Portfolio]:
        stmt = select(Portfolio).order_by(Portfolio.id)
        if user_id is not None:
            stmt = stmt.where(Portfolio.user_id == user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_portfolio_by_address(self, address: str) -> Optional[Portfolio]:
        result = await self.session.execute(select(Portfolio).where(Portfolio.wallet_address == address))
        return result.scalars().first()

    async def add_portfolio(self, portfolio: Portfolio) -> Portfolio:
        self.session.add(portfolio)
        await self._flush("Portfolio")
        return portfolio

    async def save_portfolio(self, portfolio: Portfolio) -> Portfolio:
        self.session.add(portfolio)
        await self._flush("Portfolio")
        return portfolio

    async def remove_portfolio(self, portfolio: Portfolio) -> None:
        await self.session.delete(portfolio)
        await self.session.flush()

    # ===== ASSETS =====

    async def get_asset(self, asset_id: int) -> Optional[Asset]:
        # populate_existing: a retried unit of work must see the committed row
        stmt = select(Asset).where(Asset.id == asset_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_assets(self, portfolio_id: int) -> List[Asset]:
        stmt = select(Asset).where(Asset.portfolio_id == portfolio_id).order_by(Asset.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_asset_by_symbol(self, portfolio_id: int, symbol: str) -> Optional[Asset]:
        stmt = (
            select(Asset)
            .where(Asset.portfolio_id == portfolio_id, Asset.symbol == symbol)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add_asset(self, asset: Asset) -> Asset:
        asset.version = 1
        self.session.add(asset)
        await self._flush("Asset")
        return asset

    async def save_asset(self, asset: Asset) -> Asset:
        expected = asset.version
        claim = (
            update(Asset)
            .where(Asset.id == asset.id, Asset.version == expected)
            .values(version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        with self.session.no_autoflush:
            result = await self.session.execute(claim)
        if result.rowcount != 1:
            raise ConflictError(
                f"Asset {asset.id} was modified concurrently",
                details={"asset_id": asset.id, "expected_version": expected},
                )

        asset.version = expected + 1
        asset.updated_at = utcnow()
        self.session.add(asset)
        await self._flush("Asset")
        return asset

    async def remove_asset(self, asset: Asset) -> None:
        await self.session.delete(asset)
        await self.session.flush()

    # ===== TRANSACTIONS =====

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return await self.session.get(Transaction, transaction_id)

    async def list_transactions(self, portfolio_id: int) -> List[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.portfolio_id == portfolio_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_transactions_for_asset(self, asset_id: int) -> List[Transaction]:
        stmt = (
            select(Transaction)
            .where(or_(Transaction.asset_id == asset_id, Transaction.to_asset_id == asset_id))
            .order_by(Transaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        self.session.add(transaction)
        await self._flush("Transaction")
        return transaction

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        self.session.add(transaction)
        await self._flush("Transaction")
        return transaction

    async def remove_transaction(self, transaction: Transaction) -> None:
        await self.session.delete(transaction)
        await self.session.flush()

    # ===== SNAPSHOTS =====

    async def add_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot:
        self.session.add(snapshot)
        await self._flush("Snapshot")
        return snapshot

    async def list_snapshots(self, portfolio_id: Optional[int], since: datetime) -> List[PortfolioSnapshot]:
        if portfolio_id is None:
            owner = PortfolioSnapshot.portfolio_id.is_(None)
        else:
            owner = PortfolioSnapshot.portfolio_id == portfolio_id
        stmt = (
            select(PortfolioSnapshot)
            .where(owner, PortfolioSnapshot.recorded_at >= since)
            .order_by(PortfolioSnapshot.recorded_at, PortfolioSnapshot.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def remove_snapshots(self, portfolio_id: int) -> int:
        result = await self.session.execute(
            delete(PortfolioSnapshot).where(PortfolioSnapshot.portfolio_id == portfolio_id)
            )
        return result.rowcount or 0
