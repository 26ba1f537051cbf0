"""
Valuation: assets + quotes -> display-ready figures.

price_assets() and portfolio_overview() are pure and never raise on a
missing quote: an asset without a quote is shown with zero price and
value. ValuationService wires them to the ledger store and the
PriceService (read path, non-strict).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from moonfolio.app.db.models import Asset, Transaction
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.assets import FAReadItem, FAWithPrice
from moonfolio.app.schemas.portfolios import PFOverview, PFSummary
from moonfolio.app.schemas.prices import PXQuote
from moonfolio.app.schemas.transactions import TXReadItem, TXWithDetails
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.services.price_source import PriceService
from moonfolio.app.utils.datetime_utils import utcnow
from moonfolio.app.utils.decimal_utils import ZERO, strip_zeros
from moonfolio.app.utils.financial_math import HUNDRED, percentage_change, previous_value

logger = get_logger(__name__)


# ============================================================================
# PURE VALUATION
# ============================================================================

def price_asset(asset: Asset, quote: Optional[PXQuote]) -> FAWithPrice:
    current_price = quote.price if quote is not None else ZERO
    change = quote.percent_change_24h if quote is not None else ZERO
    value = asset.balance * current_price

    profit_loss = ZERO
    profit_loss_pct = ZERO
    avg = asset.avg_buy_price
    if avg is not None and avg > ZERO and current_price > ZERO:
        profit_loss = (current_price - avg) * asset.balance
        profit_loss_pct = (current_price / avg - 1) * HUNDRED

    return FAWithPrice(
        **FAReadItem.model_validate(asset).model_dump(),
        current_price=current_price,
        value=strip_zeros(value),
        price_change_24h=change,
        profit_loss=strip_zeros(profit_loss),
        profit_loss_percentage=strip_zeros(profit_loss_pct),
        quote_available=quote is not None,
        )


def price_assets(assets: Iterable[Asset], quotes: Mapping[str, PXQuote]) -> List[FAWithPrice]:
    """
    Enrich every asset with the quote of its price_id.

    An asset whose id is missing from ``quotes`` is valued at zero.
    """
    return [price_asset(asset, quotes.get(asset.price_id)) for asset in assets]


def portfolio_overview(priced: Sequence[FAWithPrice], now: Optional[datetime] = None) -> PFOverview:
    """
    Total value and 24h change of a set of priced assets.

    Yesterday's value of each asset is reconstructed from today's value
    and its 24h percent change, so no second price fetch is needed.
    """
    now = now or utcnow()
    if not priced:
        return PFOverview(total_value=ZERO, change_24h=ZERO, change_24h_percentage=ZERO, last_updated=now)

    total = sum((a.value for a in priced), ZERO)
    previous_total = sum((previous_value(a.value, a.price_change_24h) for a in priced), ZERO)
    change = total - previous_total
    return PFOverview(
        total_value=strip_zeros(total),
        change_24h=strip_zeros(change),
        change_24h_percentage=strip_zeros(percentage_change(total, previous_total)),
        last_updated=now,
        )


def transaction_details(tx: Transaction, assets_by_id: Mapping[int, Asset]) -> TXWithDetails:
    """Join display fields of the source and destination assets; value = amount x price."""
    source = assets_by_id.get(tx.asset_id)
    destination = assets_by_id.get(tx.to_asset_id) if tx.to_asset_id is not None else None
    value = tx.amount * tx.price if tx.price is not None else ZERO
    return TXWithDetails(
        **TXReadItem.model_validate(tx).model_dump(),
        asset_name=source.name if source else None,
        asset_symbol=source.symbol if source else None,
        asset_image_url=source.image_url if source else None,
        to_asset_name=destination.name if destination else None,
        to_asset_symbol=destination.symbol if destination else None,
        to_asset_image_url=destination.image_url if destination else None,
        value=strip_zeros(value),
        )


# ============================================================================
# SERVICE
# ============================================================================

class ValuationService:
    """Read-side valuation over the ledger and the price service."""

    def __init__(self, store: LedgerStore, price_service: PriceService):
        self.ledger = LedgerService(store)
        self.prices = price_service

    async def _price(self, assets: List[Asset]) -> List[FAWithPrice]:
        if not assets:
            return []
        quotes = await self.prices.get_quotes(a.price_id for a in assets)
        missing = sorted({a.price_id for a in assets} - set(quotes))
        if missing:
            logger.info("Assets valued without quote", price_ids=missing)
        return price_assets(assets, quotes)

    async def get_priced_assets(self, portfolio_id: int) -> List[FAWithPrice]:
        return await self._price(await self.ledger.list_assets(portfolio_id))

    async def get_priced_asset(self, asset_id: int) -> FAWithPrice:
        asset = await self.ledger.get_asset(asset_id)
        return (await self._price([asset]))[0]

    async def get_overview(self, portfolio_id: int) -> PFOverview:
        """Overview of one portfolio; an empty portfolio costs no price fetch."""
        return portfolio_overview(await self.get_priced_assets(portfolio_id))

    async def get_summary(self) -> PFSummary:
        """Overview across every portfolio flagged include_in_summary."""
        portfolios = [p for p in await self.ledger.list_portfolios() if p.include_in_summary]
        assets: List[Asset] = []
        for portfolio in portfolios:
            assets.extend(await self.ledger.store.list_assets(portfolio.id))
        overview = portfolio_overview(await self._price(assets))
        return PFSummary(**overview.model_dump(), portfolio_ids=[p.id for p in portfolios])

    async def get_total_value(self, portfolio_id: Optional[int]) -> Decimal:
        if portfolio_id is None:
            return (await self.get_summary()).total_value
        return (await self.get_overview(portfolio_id)).total_value

    async def get_transactions_with_details(self, portfolio_id: int) -> List[TXWithDetails]:
        transactions = await self.ledger.list_transactions(portfolio_id)
        assets_by_id: Dict[int, Asset] = {a.id: a for a in await self.ledger.store.list_assets(portfolio_id)}
        return [transaction_details(tx, assets_by_id) for tx in transactions]

    async def get_transaction_with_details(self, transaction_id: int) -> TXWithDetails:
        tx = await self.ledger.get_transaction(transaction_id)
        assets_by_id: Dict[int, Asset] = {}
        for asset_id in (tx.asset_id, tx.to_asset_id):
            if asset_id is not None:
                asset = await self.ledger.store.get_asset(asset_id)
                if asset is not None:
                    assets_by_id[asset_id] = asset
        return transaction_details(tx, assets_by_id)
