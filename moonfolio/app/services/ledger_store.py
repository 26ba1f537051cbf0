"""
Ledger storage interface.

LedgerStore is the single persistence contract used by the ledger,
valuation and orchestration services. Two implementations exist:
- SqlLedgerStore (ledger_store_sql): SQLModel over an AsyncSession, production
- MemoryLedgerStore (ledger_store_memory): process-local dictionaries, tests/demo

The implementation is chosen once from settings.STORAGE_BACKEND when the
application starts; services never inspect which one they received.

Unit of work:
    result = await store.run_in_unit_of_work(operation)

runs ``operation`` atomically (commit on success, rollback on any
exception). Calls nested inside an enclosing unit of work join it. A
ConflictError raised by save_asset (stale asset version) rolls back and
re-runs the whole operation, up to ``max_retries`` attempts.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from moonfolio.app.db.models import Asset, Portfolio, PortfolioSnapshot, Transaction, User
from moonfolio.app.logging_config import get_logger
from moonfolio.app.services.errors import ConflictError, MoonfolioError, PartiallyAppliedError

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3


class LedgerStore(ABC):
    """Abstract persistence for users, portfolios, assets, transactions and snapshots."""

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES):
        self.max_retries = max(1, max_retries)
        self._depth = 0

    # ========================================================================
    # UNIT OF WORK
    # ========================================================================

    @property
    def in_unit_of_work(self) -> bool:
        return self._depth > 0

    @abstractmethod
    async def _begin(self) -> None:
        """Start an atomic scope (acquire locks, take snapshots...)."""

    @abstractmethod
    async def _commit(self) -> None:
        """Make every write since _begin durable and visible."""

    @abstractmethod
    async def _rollback(self) -> None:
        """Discard every write since _begin."""

    async def run_in_unit_of_work(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` atomically, retrying on write conflicts.

        Raises:
            ConflictError: still conflicting after max_retries attempts
            PartiallyAppliedError: the rollback itself failed
            Any error raised by ``operation`` (after rollback)
        """
        if self.in_unit_of_work:
            return await operation()

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._run_once(operation)
            except ConflictError as e:
                if attempt >= self.max_retries:
                    logger.warning("Ledger write conflict, giving up", attempts=attempt, details=e.details)
                    raise
                logger.info("Ledger write conflict, retrying", attempt=attempt, details=e.details)

    async def _run_once(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self._begin()
        self._depth += 1
        try:
            result = await operation()
        except BaseException as error:
            self._depth -= 1
            await self._safe_rollback(error)
            raise
        self._depth -= 1

        try:
            await self._commit()
        except MoonfolioError:
            raise
        except Exception as error:
            await self._safe_rollback(error)
            raise ConflictError(
                "Ledger commit failed, nothing was applied",
                details={"reason": str(error)},
                ) from error
        return result

    async def _safe_rollback(self, error: BaseException) -> None:
        try:
            await self._rollback()
        except Exception as rollback_error:
            logger.error(
                "Ledger rollback failed: manual reconciliation required",
                original_error=repr(error),
                rollback_error=repr(rollback_error),
                )
            raise PartiallyAppliedError(
                "Operation failed and could not be rolled back",
                details={"original_error": str(error), "rollback_error": str(rollback_error)},
                ) from rollback_error

    # ========================================================================
    # USERS
    # ========================================================================

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def find_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def add_user(self, user: User) -> User: ...

    # ========================================================================
    # PORTFOLIOS
    # ========================================================================

    @abstractmethod
    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]: ...

    @abstractmethod
    async def list_portfolios(self, user_id: Optional[int] = None) -> List[Portfolio]:
        """Portfolios ordered by id, optionally restricted to one owner."""

    @abstractmethod
    async def find_portfolio_by_address(self, address: str) -> Optional[Portfolio]:
        """Exact match on the stored (lower-cased) wallet address."""

    @abstractmethod
    async def add_portfolio(self, portfolio: Portfolio) -> Portfolio: ...

    @abstractmethod
    async def save_portfolio(self, portfolio: Portfolio) -> Portfolio: ...

    @abstractmethod
    async def remove_portfolio(self, portfolio: Portfolio) -> None: ...

    # ========================================================================
    # ASSETS
    # ========================================================================

    @abstractmethod
    async def get_asset(self, asset_id: int) -> Optional[Asset]: ...

    @abstractmethod
    async def list_assets(self, portfolio_id: int) -> List[Asset]:
        """Assets of one portfolio ordered by id."""

    @abstractmethod
    async def find_asset_by_symbol(self, portfolio_id: int, symbol: str) -> Optional[Asset]:
        """Exact match on the stored (upper-cased) symbol."""

    @abstractmethod
    async def add_asset(self, asset: Asset) -> Asset: ...

    @abstractmethod
    async def save_asset(self, asset: Asset) -> Asset:
        """
        Persist changes guarded by asset.version.

        Raises:
            ConflictError: the stored version moved since ``asset`` was read
        """

    @abstractmethod
    async def remove_asset(self, asset: Asset) -> None: ...

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]: ...

    @abstractmethod
    async def list_transactions(self, portfolio_id: int) -> List[Transaction]:
        """Transactions of one portfolio, newest date first (id breaks ties)."""

    @abstractmethod
    async def list_transactions_for_asset(self, asset_id: int) -> List[Transaction]:
        """Transactions referencing the asset as source OR swap destination."""

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> Transaction: ...

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction: ...

    @abstractmethod
    async def remove_transaction(self, transaction: Transaction) -> None: ...

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    @abstractmethod
    async def add_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot: ...

    @abstractmethod
    async def list_snapshots(self, portfolio_id: Optional[int], since: datetime) -> List[PortfolioSnapshot]:
        """Snapshots recorded at or after ``since``, oldest first (portfolio_id None = summary)."""

    @abstractmethod
    async def remove_snapshots(self, portfolio_id: int) -> int: ...
