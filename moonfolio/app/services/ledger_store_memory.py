"""
In-memory ledger store.

MemoryDatabase holds the tables for the whole process; each request gets
its own MemoryLedgerStore view over it. Stored rows are private copies:
callers receive copies and only save_*/add_* publish changes, so an
aborted unit of work leaves nothing behind.

Writers are serialized by MemoryDatabase.write_lock for the duration of a
unit of work; rollback restores the table snapshot taken at _begin.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, TypeVar

from sqlmodel import SQLModel

from moonfolio.app.db.models import Asset, Portfolio, PortfolioSnapshot, Transaction, User
from moonfolio.app.services.errors import ConflictError, InvalidArgumentError
from moonfolio.app.services.ledger_store import DEFAULT_MAX_RETRIES, LedgerStore
from moonfolio.app.utils.datetime_utils import utcnow

M = TypeVar("M", bound=SQLModel)

TABLES = ("users", "portfolios", "assets", "transactions", "snapshots")


def _clone(row: M) -> M:
    return type(row)(**row.model_dump())


class MemoryDatabase:
    """Process-wide state shared by all MemoryLedgerStore instances."""

    def __init__(self):
        self.tables: Dict[str, Dict[int, SQLModel]] = {name: {} for name in TABLES}
        self.sequences: Dict[str, int] = {name: 0 for name in TABLES}
        self.write_lock = asyncio.Lock()

    def next_id(self, table: str) -> int:
        self.sequences[table] += 1
        return self.sequences[table]

    def snapshot(self) -> tuple:
        return {name: dict(rows) for name, rows in self.tables.items()}, dict(self.sequences)

    def restore(self, state: tuple) -> None:
        tables, sequences = state
        self.tables = tables
        self.sequences = sequences


class MemoryLedgerStore(LedgerStore):
    """LedgerStore over a MemoryDatabase."""

    def __init__(self, database: MemoryDatabase, max_retries: int = DEFAULT_MAX_RETRIES):
        super().__init__(max_retries)
        self.db = database
        self._saved_state: Optional[tuple] = None

    async def _begin(self) -> None:
        await self.db.write_lock.acquire()
        self._saved_state = self.db.snapshot()

    async def _commit(self) -> None:
        self._saved_state = None
        self.db.write_lock.release()

    async def _rollback(self) -> None:
        try:
            if self._saved_state is not None:
                self.db.restore(self._saved_state)
        finally:
            self._saved_state = None
            self.db.write_lock.release()

    # ===== generic helpers =====

    def _get(self, table: str, row_id: Optional[int]) -> Optional[SQLModel]:
        row = self.db.tables[table].get(row_id)
        return _clone(row) if row is not None else None

    def _rows(self, table: str) -> List[SQLModel]:
        return [_clone(row) for row in self.db.tables[table].values()]

    def _insert(self, table: str, row: M) -> M:
        row.id = self.db.next_id(table)
        self.db.tables[table][row.id] = _clone(row)
        return row

    def _replace(self, table: str, row: M) -> M:
        if row.id not in self.db.tables[table]:
            raise ConflictError(f"{table} row {row.id} no longer exists", details={"id": row.id})
        self.db.tables[table][row.id] = _clone(row)
        return row

    def _delete(self, table: str, row_id: Optional[int]) -> None:
        self.db.tables[table].pop(row_id, None)

    # ===== USERS =====

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._get("users", user_id)

    async def find_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._rows("users") if u.username == username), None)

    async def add_user(self, user: User) -> User:
        if await self.find_user_by_username(user.username) is not None:
            raise InvalidArgumentError("User violates a database constraint", details={"username": user.username})
        return self._insert("users", user)

    # ===== PORTFOLIOS =====

    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        return self._get("portfolios", portfolio_id)

    async def list_portfolios(self, user_id: Optional[int] = None) -> List[Portfolio]:
        rows = sorted(self._rows("portfolios"), key=lambda p: p.id)
        if user_id is not None:
            rows = [p for p in rows if p.user_id == user_id]
        return rows

    async def find_portfolio_by_address(self, address: str) -> Optional[Portfolio]:
        return next((p for p in self._rows("portfolios") if p.wallet_address == address), None)

    async def add_portfolio(self, portfolio: Portfolio) -> Portfolio:
        if portfolio.wallet_address and await self.find_portfolio_by_address(portfolio.wallet_address):
            raise InvalidArgumentError(
                "Portfolio violates a database constraint",
                details={"wallet_address": portfolio.wallet_address},
                )
        return self._insert("portfolios", portfolio)

    async def save_portfolio(self, portfolio: Portfolio) -> Portfolio:
        portfolio.updated_at = utcnow()
        return self._replace("portfolios", portfolio)

    async def remove_portfolio(self, portfolio: Portfolio) -> None:
        self._delete("portfolios", portfolio.id)

    # ===== ASSETS =====

    async def get_asset(self, asset_id: int) -> Optional[Asset]:
        return self._get("assets", asset_id)

    async def list_assets(self, portfolio_id: int) -> List[Asset]:
        return sorted((a for a in self._rows("assets") if a.portfolio_id == portfolio_id), key=lambda a: a.id)

    async def find_asset_by_symbol(self, portfolio_id: int, symbol: str) -> Optional[Asset]:
        return next(
            (a for a in self._rows("assets") if a.portfolio_id == portfolio_id and a.symbol == symbol),
            None,
            )

    async def add_asset(self, asset: Asset) -> Asset:
        if await self.find_asset_by_symbol(asset.portfolio_id, asset.symbol) is not None:
            raise InvalidArgumentError(
                "Asset violates a database constraint",
                details={"portfolio_id": asset.portfolio_id, "symbol": asset.symbol},
                )
        asset.version = 1
        return self._insert("assets", asset)

    async def save_asset(self, asset: Asset) -> Asset:
        stored = self.db.tables["assets"].get(asset.id)
        if stored is None or stored.version != asset.version:
            raise ConflictError(
                f"Asset {asset.id} was modified concurrently",
                details={"asset_id": asset.id, "expected_version": asset.version},
                )
        asset.version += 1
        asset.updated_at = utcnow()
        return self._replace("assets", asset)

    async def remove_asset(self, asset: Asset) -> None:
        self._delete("assets", asset.id)

    # ===== TRANSACTIONS =====

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._get("transactions", transaction_id)

    async def list_transactions(self, portfolio_id: int) -> List[Transaction]:
        rows = [t for t in self._rows("transactions") if t.portfolio_id == portfolio_id]
        return sorted(rows, key=lambda t: (t.date, t.id), reverse=True)

    async def list_transactions_for_asset(self, asset_id: int) -> List[Transaction]:
        rows = [t for t in self._rows("transactions") if asset_id in (t.asset_id, t.to_asset_id)]
        return sorted(rows, key=lambda t: t.id)

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        return self._insert("transactions", transaction)

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        return self._replace("transactions", transaction)

    async def remove_transaction(self, transaction: Transaction) -> None:
        self._delete("transactions", transaction.id)

    # ===== SNAPSHOTS =====

    async def add_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot:
        return self._insert("snapshots", snapshot)

    async def list_snapshots(self, portfolio_id: Optional[int], since: datetime) -> List[PortfolioSnapshot]:
        rows = [
            s for s in self._rows("snapshots")
            if s.portfolio_id == portfolio_id and s.recorded_at >= since
            ]
        return sorted(rows, key=lambda s: (s.recorded_at, s.id))

    async def remove_snapshots(self, portfolio_id: int) -> int:
        doomed = [s.id for s in self._rows("snapshots") if s.portfolio_id == portfolio_id]
        for snapshot_id in doomed:
            self._delete("snapshots", snapshot_id)
        return len(doomed)
