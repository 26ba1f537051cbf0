"""
Ledger service: portfolios, assets and transactions with their balance rules.

Every mutating operation runs inside LedgerStore.run_in_unit_of_work, so
the transaction row and the asset rows it touches are written atomically
and retried on concurrent-write conflicts. Called from inside an outer
unit of work (the orchestrator), operations join it instead.

Rules enforced here:
- buy/deposit add to the source balance, sell/withdraw/swap subtract
- a priced buy re-weights the average buy price
- a swap credits to_amount to the destination and re-weights its average with to_price
- no balance may become negative (InvariantViolationError)
- createAsset merges into an existing (portfolio, symbol) holding
- updateAsset records a buy/sell for a balance change instead of overwriting it
- deleteTransaction applies the inverse delta
- deleteAsset / deletePortfolio cascade without reversing anything
"""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Tuple

from moonfolio.app.db.models import Asset, Portfolio, Transaction, TransactionType
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.assets import FACreateItem, FAUpdateItem
from moonfolio.app.schemas.portfolios import PFCreateItem, PFUpdateItem, normalize_address
from moonfolio.app.schemas.transactions import TXCreateItem, TXUpdateItem
from moonfolio.app.services.errors import InvalidArgumentError, InvariantViolationError, NotFoundError
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.utils.datetime_utils import ensure_utc, utcnow
from moonfolio.app.utils.decimal_utils import ZERO
from moonfolio.app.utils.financial_math import (
    apply_source_leg,
    remove_lot_from_average,
    revert_source_leg,
    weighted_average_price,
    )

logger = get_logger(__name__)

BALANCE_ADJUSTMENT_NOTE = "Balance adjustment"


class LedgerService:
    """
    Business operations over a LedgerStore.

    Stateless apart from the store: build one per request.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    # ========================================================================
    # LOOKUP HELPERS
    # ========================================================================

    async def get_portfolio(self, portfolio_id: int) -> Portfolio:
        portfolio = await self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            raise NotFoundError(f"Portfolio {portfolio_id} not found", details={"portfolio_id": portfolio_id})
        return portfolio

    async def get_asset(self, asset_id: int) -> Asset:
        asset = await self.store.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found", details={"asset_id": asset_id})
        return asset

    async def get_transaction(self, transaction_id: int) -> Transaction:
        tx = await self.store.get_transaction(transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
        return tx

    # ========================================================================
    # PORTFOLIOS
    # ========================================================================

    async def list_portfolios(self, user_id: Optional[int] = None) -> List[Portfolio]:
        return await self.store.list_portfolios(user_id)

    async def get_portfolio_by_address(self, address: str) -> Optional[Portfolio]:
        """Case-insensitive lookup; None when no portfolio tracks the address."""
        try:
            normalized = normalize_address(address)
        except ValueError as e:
            raise InvalidArgumentError(str(e), details={"address": address}) from e
        return await self.store.find_portfolio_by_address(normalized)

    async def create_portfolio(self, item: PFCreateItem) -> Portfolio:
        async def _create() -> Portfolio:
            if item.user_id is not None and await self.store.get_user(item.user_id) is None:
                raise NotFoundError(f"User {item.user_id} not found", details={"user_id": item.user_id})
            if item.wallet_address and await self.store.find_portfolio_by_address(item.wallet_address):
                raise InvalidArgumentError(
                    "A portfolio already tracks this wallet",
                    details={"wallet_address": item.wallet_address},
                    )
            return await self.store.add_portfolio(Portfolio(**item.model_dump()))

        portfolio = await self.store.run_in_unit_of_work(_create)
        logger.info("Portfolio created", portfolio_id=portfolio.id, is_ens=portfolio.is_ens)
        return portfolio

    async def update_portfolio(self, portfolio_id: int, item: PFUpdateItem) -> Portfolio:
        async def _update() -> Portfolio:
            portfolio = await self.get_portfolio(portfolio_id)
            if item.name is not None:
                portfolio.name = item.name.strip()
            if item.include_in_summary is not None:
                portfolio.include_in_summary = item.include_in_summary
            return await self.store.save_portfolio(portfolio)

        return await self.store.run_in_unit_of_work(_update)

    async def delete_portfolio(self, portfolio_id: int) -> int:
        """
        Delete a portfolio with all its assets, their transactions and its snapshots.

        Returns:
            Number of dependent rows removed
        """
        async def _delete() -> int:
            portfolio = await self.get_portfolio(portfolio_id)
            removed = 0
            for asset in await self.store.list_assets(portfolio_id):
                removed += await self._delete_asset_cascade(asset) + 1
            removed += await self.store.remove_snapshots(portfolio_id)
            await self.store.remove_portfolio(portfolio)
            return removed

        removed = await self.store.run_in_unit_of_work(_delete)
        logger.info("Portfolio deleted", portfolio_id=portfolio_id, cascaded=removed)
        return removed

    # ========================================================================
    # ASSETS
    # ========================================================================

    async def list_assets(self, portfolio_id: int) -> List[Asset]:
        await self.get_portfolio(portfolio_id)
        return await self.store.list_assets(portfolio_id)

    async def create_asset(self, portfolio_id: int, item: FACreateItem) -> Asset:
        """
        Add a holding, merging into an existing one with the same symbol.

        Merging adds the balance (it is not an idempotent upsert) and
        re-weights the average buy price when the new lot carries one.
        """
        async def _create() -> Tuple[Asset, bool]:
            await self.get_portfolio(portfolio_id)
            existing = await self.store.find_asset_by_symbol(portfolio_id, item.symbol)
            if existing is None:
                asset = Asset(
                    portfolio_id=portfolio_id,
                    name=item.name,
                    symbol=item.symbol,
                    price_id=item.price_id,
                    image_url=item.image_url,
                    balance=item.balance,
                    avg_buy_price=item.avg_buy_price,
                    )
                return await self.store.add_asset(asset), False

            if item.avg_buy_price is not None and item.balance > ZERO:
                existing.avg_buy_price = weighted_average_price(
                    existing.balance, existing.avg_buy_price, item.balance, item.avg_buy_price
                    )
            existing.balance = existing.balance + item.balance
            if existing.image_url is None and item.image_url:
                existing.image_url = item.image_url
            return await self.store.save_asset(existing), True

        asset, merged = await self.store.run_in_unit_of_work(_create)
        logger.info("Asset created" if not merged else "Asset merged", asset_id=asset.id,
                    portfolio_id=portfolio_id, symbol=asset.symbol, balance=asset.balance)
        return asset

    async def update_asset(self, asset_id: int, item: FAUpdateItem) -> Asset:
        """
        Partially update an asset.

        A new balance is reached through a synthesized buy (increase) or sell
        (decrease) priced at the new, or else the current, average buy price,
        so the transaction log keeps explaining the balance.
        """
        async def _update() -> Asset:
            asset = await self.get_asset(asset_id)

            if item.symbol is not None and item.symbol != asset.symbol:
                if await self.store.find_asset_by_symbol(asset.portfolio_id, item.symbol):
                    raise InvalidArgumentError(
                        f"Portfolio already holds {item.symbol}",
                        details={"portfolio_id": asset.portfolio_id, "symbol": item.symbol},
                        )

            if item.balance is not None and item.balance != asset.balance:
                delta = item.balance - asset.balance
                adjustment = TXCreateItem(
                    asset_id=asset.id,
                    type=TransactionType.BUY if delta > ZERO else TransactionType.SELL,
                    amount=abs(delta),
                    price=item.avg_buy_price if item.avg_buy_price is not None else asset.avg_buy_price,
                    note=BALANCE_ADJUSTMENT_NOTE,
                    )
                await self._record_transaction(asset.portfolio_id, adjustment)
                asset = await self.get_asset(asset_id)

            for field in ("name", "symbol", "price_id", "image_url", "avg_buy_price"):
                if field not in item.model_fields_set:
                    continue
                value = getattr(item, field)
                if value is None and field in ("name", "symbol", "price_id"):
                    continue
                setattr(asset, field, value)
            return await self.store.save_asset(asset)

        asset = await self.store.run_in_unit_of_work(_update)
        logger.info("Asset updated", asset_id=asset_id, balance=asset.balance)
        return asset

    async def delete_asset(self, asset_id: int) -> int:
        """
        Delete an asset and every transaction referencing it (source or destination).

        Returns:
            Number of transactions removed
        """
        async def _delete() -> int:
            return await self._delete_asset_cascade(await self.get_asset(asset_id))

        removed = await self.store.run_in_unit_of_work(_delete)
        logger.info("Asset deleted", asset_id=asset_id, transactions_removed=removed)
        return removed

    async def prepare_incoming_asset(
        self,
        portfolio_id: int,
        template: Asset,
        amount: Decimal,
        unit_price: Optional[Decimal],
        ) -> Asset:
        """
        Find or open the holding that will receive ``amount`` units like ``template``.

        The balance is left for the deposit transaction to credit; only the
        cost basis is prepared here (new holding: unit_price; existing
        holding: weighted with the incoming lot).
        """
        async def _prepare() -> Asset:
            await self.get_portfolio(portfolio_id)
            existing = await self.store.find_asset_by_symbol(portfolio_id, template.symbol)
            if existing is None:
                return await self.store.add_asset(Asset(
                    portfolio_id=portfolio_id,
                    name=template.name,
                    symbol=template.symbol,
                    price_id=template.price_id,
                    image_url=template.image_url,
                    balance=ZERO,
                    avg_buy_price=unit_price,
                    ))
            if unit_price is not None:
                existing.avg_buy_price = weighted_average_price(
                    existing.balance, existing.avg_buy_price, amount, unit_price
                    )
                return await self.store.save_asset(existing)
            return existing

        return await self.store.run_in_unit_of_work(_prepare)

    async def _delete_asset_cascade(self, asset: Asset) -> int:
        transactions = await self.store.list_transactions_for_asset(asset.id)
        for tx in transactions:
            await self.store.remove_transaction(tx)
        await self.store.remove_asset(asset)
        return len(transactions)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    async def list_transactions(self, portfolio_id: int) -> List[Transaction]:
        await self.get_portfolio(portfolio_id)
        return await self.store.list_transactions(portfolio_id)

    async def create_transaction(self, portfolio_id: int, item: TXCreateItem) -> Transaction:
        """
        Record a transaction and apply it to the asset balance(s).

        Raises:
            NotFoundError: portfolio, asset or destination asset missing
            InvalidArgumentError: asset belongs to another portfolio
            InvariantViolationError: the source balance would become negative
        """
        tx = await self.store.run_in_unit_of_work(lambda: self._record_transaction(portfolio_id, item))
        logger.info("Transaction recorded", transaction_id=tx.id, portfolio_id=portfolio_id,
                    asset_id=tx.asset_id, type=tx.type.value, amount=tx.amount)
        return tx

    async def _record_transaction(self, portfolio_id: int, item: TXCreateItem) -> Transaction:
        await self.get_portfolio(portfolio_id)
        source = await self._get_portfolio_asset(portfolio_id, item.asset_id)
        destination = None
        if item.type == TransactionType.SWAP:
            destination = await self._get_portfolio_asset(portfolio_id, item.to_asset_id)

        if item.type in (TransactionType.BUY, TransactionType.SELL) and item.price is None:
            logger.warning("Transaction without price, cost basis left unchanged",
                           asset_id=source.id, type=item.type.value)

        new_balance, new_avg = apply_source_leg(
            source.balance, source.avg_buy_price, item.type, item.amount, item.price
            )
        self._ensure_non_negative(source, new_balance, f"{item.type.value} of {item.amount}")
        source.balance, source.avg_buy_price = new_balance, new_avg
        await self.store.save_asset(source)

        if destination is not None:
            destination.avg_buy_price = weighted_average_price(
                destination.balance, destination.avg_buy_price, item.to_amount, item.to_price
                )
            destination.balance = destination.balance + item.to_amount
            await self.store.save_asset(destination)

        return await self.store.add_transaction(Transaction(
            portfolio_id=portfolio_id,
            asset_id=source.id,
            type=item.type,
            status=item.status,
            amount=item.amount,
            price=item.price,
            to_asset_id=item.to_asset_id,
            to_amount=item.to_amount,
            to_price=item.to_price,
            note=item.note,
            date=ensure_utc(item.date) if item.date else utcnow(),
            ))

    async def update_transaction(self, transaction_id: int, item: TXUpdateItem) -> Transaction:
        """Edit note, date or status; financial fields cannot change."""
        async def _update() -> Transaction:
            tx = await self.get_transaction(transaction_id)
            if "note" in item.model_fields_set:
                tx.note = item.note
            if item.date is not None:
                tx.date = ensure_utc(item.date)
            if item.status is not None:
                tx.status = item.status
            return await self.store.save_transaction(tx)

        return await self.store.run_in_unit_of_work(_update)

    async def delete_transaction(self, transaction_id: int) -> Transaction:
        """
        Delete a transaction and reverse its effect on the asset(s).

        Raises:
            InvariantViolationError: the reversal would drive a balance negative
                (the units it added were already sold or moved)
        """
        async def _delete() -> Transaction:
            tx = await self.get_transaction(transaction_id)
            source = await self.get_asset(tx.asset_id)
            new_balance, new_avg = revert_source_leg(
                source.balance, source.avg_buy_price, tx.type, tx.amount, tx.price
                )
            self._ensure_non_negative(source, new_balance, f"reverting transaction {tx.id}")
            source.balance, source.avg_buy_price = new_balance, new_avg
            await self.store.save_asset(source)

            if tx.type == TransactionType.SWAP and tx.to_asset_id is not None:
                destination = await self.get_asset(tx.to_asset_id)
                remaining = destination.balance - tx.to_amount
                self._ensure_non_negative(destination, remaining, f"reverting transaction {tx.id}")
                destination.avg_buy_price = remove_lot_from_average(
                    destination.balance, destination.avg_buy_price, tx.to_amount, tx.to_price
                    )
                destination.balance = remaining
                await self.store.save_asset(destination)

            await self.store.remove_transaction(tx)
            return tx

        tx = await self.store.run_in_unit_of_work(_delete)
        logger.info("Transaction deleted", transaction_id=transaction_id, asset_id=tx.asset_id)
        return tx

    # ========================================================================
    # VALIDATION HELPERS
    # ========================================================================

    async def _get_portfolio_asset(self, portfolio_id: int, asset_id: int) -> Asset:
        asset = await self.get_asset(asset_id)
        if asset.portfolio_id != portfolio_id:
            raise InvalidArgumentError(
                f"Asset {asset_id} does not belong to portfolio {portfolio_id}",
                details={"asset_id": asset_id, "portfolio_id": portfolio_id},
                )
        return asset

    @staticmethod
    def _ensure_non_negative(asset: Asset, new_balance: Decimal, action: str) -> None:
        if new_balance < ZERO:
            raise InvariantViolationError(
                f"Insufficient {asset.symbol} balance for {action}",
                details={"asset_id": asset.id, "balance": str(asset.balance), "resulting_balance": str(new_balance)},
                )
