"""
Multi-step portfolio flows: wallet connection and asset transfer.

Both flows gather every upstream input (name resolution, balances,
market price) before the first write, then perform all their writes in
one ledger unit of work. A failure therefore leaves nothing behind
(applied="none"); only a failed rollback surfaces as
PartiallyAppliedError.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Tuple

from moonfolio.app.db.models import Asset, Portfolio, TransactionType
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.assets import FACreateItem, FATransferResult
from moonfolio.app.schemas.portfolios import PFCreateItem, PFReadItem
from moonfolio.app.schemas.transactions import TXCreateItem
from moonfolio.app.schemas.wallets import WLConnectResult, WLIdentity, WLTokenBalance
from moonfolio.app.services.chain_reader import ChainService, short_address
from moonfolio.app.services.errors import InvalidArgumentError, InvariantViolationError
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.services.price_source import PriceService
from moonfolio.app.services.session_service import SessionRegistry
from moonfolio.app.utils.decimal_utils import ZERO

logger = get_logger(__name__)

PRICE_SOURCE_MARKET = "market"
PRICE_SOURCE_AVG_BUY = "avg_buy_price"
PRICE_SOURCE_NONE = "none"


class PortfolioOrchestrator:
    """Flows spanning the chain reader, the price source and several ledger aggregates."""

    def __init__(
        self,
        store: LedgerStore,
        price_service: PriceService,
        chain_service: Optional[ChainService] = None,
        sessions: Optional[SessionRegistry] = None,
        ):
        self.store = store
        self.ledger = LedgerService(store)
        self.prices = price_service
        self.chain = chain_service
        self.sessions = sessions

    # ========================================================================
    # WALLET CONNECT
    # ========================================================================

    async def connect_wallet(
        self,
        identifier: str,
        include_in_summary: bool = True,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
        ) -> WLConnectResult:
        """
        Create (or reuse) the portfolio tracking a wallet.

        Steps:
        1. resolve the identifier (raw address or ENS name)
        2. reuse the portfolio already tracking the address, if any
        3. read native + allow-listed balances
        4. create the wallet portfolio and one asset per balance (zeros included)
        5. mark the portfolio active for the session

        Raises:
            InvalidArgumentError: malformed address or name
            NotFoundError: the name does not resolve, or unknown user
            UpstreamUnavailableError: chain reader failure (nothing is created)
        """
        if self.chain is None:
            raise InvalidArgumentError("Wallet connection is not configured")

        identity = await self.chain.resolve_identity(identifier)
        existing = await self.store.find_portfolio_by_address(identity.address)
        if existing is not None:
            logger.info("Wallet already tracked, reusing portfolio", portfolio_id=existing.id,
                        address=identity.address)
            return self._connected(existing, created=False, session_id=session_id)

        balances = await self.chain.read_balances(identity.address)

        async def _create() -> Tuple[Portfolio, bool]:
            # Another request may have connected the same wallet meanwhile
            raced = await self.store.find_portfolio_by_address(identity.address)
            if raced is not None:
                return raced, False
            portfolio = await self.ledger.create_portfolio(self._wallet_portfolio(identity, include_in_summary, user_id))
            for balance in balances:
                await self.ledger.create_asset(portfolio.id, self._wallet_asset(balance))
            return portfolio, True

        portfolio, created = await self.store.run_in_unit_of_work(_create)
        if created:
            logger.info("Wallet portfolio created", portfolio_id=portfolio.id, address=identity.address,
                        assets=len(balances))
        return self._connected(portfolio, created=created, session_id=session_id)

    @staticmethod
    def _wallet_portfolio(identity: WLIdentity, include_in_summary: bool, user_id: Optional[int]) -> PFCreateItem:
        return PFCreateItem(
            name=identity.display_name or f"Wallet {short_address(identity.address)}",
            user_id=user_id,
            include_in_summary=include_in_summary,
            wallet_address=identity.address,
            is_ens=True,
            ens_name=identity.display_name,
            )

    @staticmethod
    def _wallet_asset(balance: WLTokenBalance) -> FACreateItem:
        return FACreateItem(
            name=balance.name,
            symbol=balance.symbol,
            price_id=balance.price_id,
            balance=balance.balance,
            image_url=balance.image_url,
            )

    def _connected(self, portfolio: Portfolio, created: bool, session_id: Optional[str]) -> WLConnectResult:
        if self.sessions is not None and session_id:
            self.sessions.set_active_portfolio(session_id, portfolio.id)
        return WLConnectResult(portfolio=PFReadItem.model_validate(portfolio), created=created)

    # ========================================================================
    # TRANSFER
    # ========================================================================

    async def resolve_unit_price(self, asset: Asset) -> Tuple[Optional[Decimal], str]:
        """
        Cost basis of a transferred lot: market price, else average buy price, else none.

        A quote the provider does not have falls through to the average buy
        price. A provider failure aborts the transfer before anything is
        written, so an outage never decides the cost basis.

        Raises:
            UpstreamUnavailableError: price source failed or timed out
        """
        quote = await self.prices.get_quote(asset.price_id, strict=True)
        if quote is not None and quote.price > ZERO:
            return quote.price, PRICE_SOURCE_MARKET
        if asset.avg_buy_price is not None and asset.avg_buy_price > ZERO:
            return asset.avg_buy_price, PRICE_SOURCE_AVG_BUY
        return None, PRICE_SOURCE_NONE

    async def transfer_asset(self, source_asset_id: int, target_portfolio_id: int, amount: Decimal) -> FATransferResult:
        """
        Move ``amount`` units of an asset into another portfolio.

        Withdraw from the source (deleting it when drained) and deposit into
        the same symbol in the target, all in one unit of work.

        Raises:
            NotFoundError: source asset or target portfolio missing
            InvalidArgumentError: non-positive amount or same portfolio
            InvariantViolationError: amount exceeds the source balance
            UpstreamUnavailableError: price source failed, nothing was written
        """
        if amount <= ZERO:
            raise InvalidArgumentError("Transfer amount must be positive", details={"amount": str(amount)})

        source = await self.ledger.get_asset(source_asset_id)
        await self.ledger.get_portfolio(target_portfolio_id)
        if source.portfolio_id == target_portfolio_id:
            raise InvalidArgumentError(
                "Source and target portfolio are the same",
                details={"asset_id": source_asset_id, "portfolio_id": target_portfolio_id},
                )
        self._ensure_transferable(source, amount)

        unit_price, price_source = await self.resolve_unit_price(source)

        async def _transfer() -> FATransferResult:
            current = await self.ledger.get_asset(source_asset_id)
            self._ensure_transferable(current, amount)
            template = Asset(
                portfolio_id=target_portfolio_id,
                name=current.name,
                symbol=current.symbol,
                price_id=current.price_id,
                image_url=current.image_url,
                )
            source_portfolio_id = current.portfolio_id

            withdraw = await self.ledger.create_transaction(source_portfolio_id, TXCreateItem(
                asset_id=current.id,
                type=TransactionType.WITHDRAW,
                amount=amount,
                price=unit_price,
                note=f"Transfer to portfolio {target_portfolio_id}",
                ))
            withdraw_id: Optional[int] = withdraw.id

            drained = await self.ledger.get_asset(source_asset_id)
            source_deleted = drained.balance <= ZERO
            if source_deleted:
                # Cascade also removes the withdraw just recorded
                await self.ledger.delete_asset(source_asset_id)
                withdraw_id = None

            destination = await self.ledger.prepare_incoming_asset(target_portfolio_id, template, amount, unit_price)
            deposit = await self.ledger.create_transaction(target_portfolio_id, TXCreateItem(
                asset_id=destination.id,
                type=TransactionType.DEPOSIT,
                amount=amount,
                price=unit_price,
                note=f"Transfer from portfolio {source_portfolio_id}",
                ))

            return FATransferResult(
                source_asset_id=source_asset_id,
                source_deleted=source_deleted,
                withdraw_transaction_id=withdraw_id,
                destination_asset_id=destination.id,
                deposit_transaction_id=deposit.id,
                amount=amount,
                unit_price=unit_price if unit_price is not None else ZERO,
                price_source=price_source,
                )

        result = await self.store.run_in_unit_of_work(_transfer)
        logger.info("Asset transferred", source_asset_id=source_asset_id, target_portfolio_id=target_portfolio_id,
                    amount=amount, price_source=price_source, source_deleted=result.source_deleted)
        return result

    @staticmethod
    def _ensure_transferable(asset: Asset, amount: Decimal) -> None:
        if amount > asset.balance:
            raise InvariantViolationError(
                f"Cannot transfer {amount} {asset.symbol}: balance is {asset.balance}",
                details={"asset_id": asset.id, "balance": str(asset.balance), "amount": str(amount)},
                )

