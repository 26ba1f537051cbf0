"""
Tests for LedgerService.

Balance and cost-basis rules, merge-on-create, cascades and reversals.
Every test runs against both the in-memory and the SQL ledger store.

Reference: moonfolio/app/services/ledger_service.py
"""
from decimal import Decimal

import pytest
import pytest_asyncio

from moonfolio.app.db.models import Asset, Portfolio, TransactionType
from moonfolio.app.schemas.assets import FACreateItem, FAUpdateItem
from moonfolio.app.schemas.portfolios import PFCreateItem, PFUpdateItem
from moonfolio.app.schemas.transactions import TXCreateItem, TXUpdateItem
from moonfolio.app.services.errors import InvalidArgumentError, InvariantViolationError, NotFoundError
from moonfolio.app.services.ledger_service import BALANCE_ADJUSTMENT_NOTE, LedgerService


# ============================================================================
# PYTEST FIXTURES
# ============================================================================

@pytest_asyncio.fixture
async def portfolio(ledger: LedgerService) -> Portfolio:
    return await ledger.create_portfolio(PFCreateItem(name="Main"))


@pytest_asyncio.fixture
async def eth(ledger: LedgerService, portfolio: Portfolio) -> Asset:
    """Empty ETH holding."""
    return await ledger.create_asset(portfolio.id, FACreateItem(name="Ethereum", symbol="eth", price_id="ethereum"))


@pytest_asyncio.fixture
async def usdc(ledger: LedgerService, portfolio: Portfolio) -> Asset:
    return await ledger.create_asset(portfolio.id, FACreateItem(name="USD Coin", symbol="USDC", price_id="usd-coin"))


async def _buy(ledger: LedgerService, asset: Asset, amount: str, price: str = None):
    return await ledger.create_transaction(asset.portfolio_id, TXCreateItem(
        asset_id=asset.id,
        type=TransactionType.BUY,
        amount=Decimal(amount),
        price=Decimal(price) if price is not None else None,
        ))


async def _sell(ledger: LedgerService, asset: Asset, amount: str):
    return await ledger.create_transaction(asset.portfolio_id, TXCreateItem(
        asset_id=asset.id, type=TransactionType.SELL, amount=Decimal(amount),
        ))


# ============================================================================
# PORTFOLIOS
# ============================================================================

@pytest.mark.asyncio
async def test_create_and_update_portfolio(ledger: LedgerService, portfolio: Portfolio):
    assert portfolio.id is not None
    assert portfolio.is_ens is False
    assert portfolio.wallet_address is None

    updated = await ledger.update_portfolio(portfolio.id, PFUpdateItem(name="  Savings ", include_in_summary=False))
    assert updated.name == "Savings"
    assert updated.include_in_summary is False


@pytest.mark.asyncio
async def test_create_portfolio_unknown_user(ledger: LedgerService):
    with pytest.raises(NotFoundError):
        await ledger.create_portfolio(PFCreateItem(name="Orphan", user_id=999))


@pytest.mark.asyncio
async def test_wallet_address_lookup_is_case_insensitive(ledger: LedgerService):
    address = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
    created = await ledger.create_portfolio(PFCreateItem(name="W", wallet_address=address, is_ens=True))

    assert created.wallet_address == address.lower()
    found = await ledger.get_portfolio_by_address(address.upper().replace("0X", "0x"))
    assert found is not None and found.id == created.id


@pytest.mark.asyncio
async def test_wallet_address_is_unique(ledger: LedgerService):
    address = "0x" + "1" * 40
    await ledger.create_portfolio(PFCreateItem(name="A", wallet_address=address, is_ens=True))
    with pytest.raises(InvalidArgumentError):
        await ledger.create_portfolio(PFCreateItem(name="B", wallet_address=address, is_ens=True))


@pytest.mark.asyncio
async def test_get_portfolio_by_address_rejects_garbage(ledger: LedgerService):
    with pytest.raises(InvalidArgumentError):
        await ledger.get_portfolio_by_address("not-an-address")


@pytest.mark.asyncio
async def test_missing_portfolio(ledger: LedgerService):
    with pytest.raises(NotFoundError):
        await ledger.get_portfolio(12345)


# ============================================================================
# ASSETS
# ============================================================================

@pytest.mark.asyncio
async def test_symbol_is_upper_cased(eth: Asset):
    assert eth.symbol == "ETH"
    assert eth.balance == Decimal("0")
    assert eth.avg_buy_price is None


@pytest.mark.asyncio
async def test_create_asset_merges_same_symbol(ledger: LedgerService, portfolio: Portfolio):
    """Adding 1 then 2 of the same symbol leaves one asset with balance 3."""
    first = await ledger.create_asset(portfolio.id, FACreateItem(
        name="Bitcoin", symbol="BTC", price_id="bitcoin", balance=Decimal("1"), avg_buy_price=Decimal("100"),
        ))
    second = await ledger.create_asset(portfolio.id, FACreateItem(
        name="Bitcoin", symbol="btc", price_id="bitcoin", balance=Decimal("2"), avg_buy_price=Decimal("400"),
        ))

    assert second.id == first.id
    assert second.balance == Decimal("3")
    assert second.avg_buy_price == Decimal("300")
    assert len(await ledger.list_assets(portfolio.id)) == 1


@pytest.mark.asyncio
async def test_update_asset_balance_records_adjustment(ledger: LedgerService, eth: Asset):
    """A new balance is reached through a synthesized buy, visible in the log."""
    updated = await ledger.update_asset(eth.id, FAUpdateItem(balance=Decimal("5"), avg_buy_price=Decimal("2000")))

    assert updated.balance == Decimal("5")
    assert updated.avg_buy_price == Decimal("2000")
    transactions = await ledger.list_transactions(eth.portfolio_id)
    assert len(transactions) == 1
    assert transactions[0].type == TransactionType.BUY
    assert transactions[0].amount == Decimal("5")
    assert transactions[0].note == BALANCE_ADJUSTMENT_NOTE

    lowered = await ledger.update_asset(eth.id, FAUpdateItem(balance=Decimal("2")))
    assert lowered.balance == Decimal("2")
    transactions = await ledger.list_transactions(eth.portfolio_id)
    assert {tx.type for tx in transactions} == {TransactionType.BUY, TransactionType.SELL}


@pytest.mark.asyncio
async def test_update_asset_display_fields(ledger: LedgerService, eth: Asset):
    updated = await ledger.update_asset(eth.id, FAUpdateItem(name="Ether", image_url="https://x/eth.png"))
    assert updated.name == "Ether"
    assert updated.image_url == "https://x/eth.png"
    assert await ledger.list_transactions(eth.portfolio_id) == []


@pytest.mark.asyncio
async def test_update_asset_symbol_collision(ledger: LedgerService, eth: Asset, usdc: Asset):
    with pytest.raises(InvalidArgumentError):
        await ledger.update_asset(eth.id, FAUpdateItem(symbol="usdc"))


@pytest.mark.asyncio
async def test_delete_asset_cascades_transactions(ledger: LedgerService, eth: Asset, usdc: Asset):
    """Transactions referencing the asset as swap destination go too."""
    await _buy(ledger, eth, "2", "100")
    await ledger.create_transaction(eth.portfolio_id, TXCreateItem(
        asset_id=eth.id, type=TransactionType.SWAP, amount=Decimal("1"),
        to_asset_id=usdc.id, to_amount=Decimal("3000"), to_price=Decimal("1"),
        ))

    removed = await ledger.delete_asset(usdc.id)

    assert removed == 1
    remaining = await ledger.list_transactions(eth.portfolio_id)
    assert [tx.type for tx in remaining] == [TransactionType.BUY]
    # Cascades never reverse balances
    assert (await ledger.get_asset(eth.id)).balance == Decimal("1")


@pytest.mark.asyncio
async def test_delete_portfolio_cascades(ledger: LedgerService, portfolio: Portfolio, eth: Asset):
    await _buy(ledger, eth, "1", "10")

    removed = await ledger.delete_portfolio(portfolio.id)

    assert removed == 2
    with pytest.raises(NotFoundError):
        await ledger.get_asset(eth.id)
    with pytest.raises(NotFoundError):
        await ledger.get_portfolio(portfolio.id)


# ============================================================================
# TRANSACTIONS
# ============================================================================

@pytest.mark.asyncio
async def test_balance_is_sum_of_transactions(ledger: LedgerService, eth: Asset):
    await _buy(ledger, eth, "1.5")
    await _buy(ledger, eth, "0.25")
    await _sell(ledger, eth, "0.75")
    await ledger.create_transaction(eth.portfolio_id, TXCreateItem(
        asset_id=eth.id, type=TransactionType.DEPOSIT, amount=Decimal("0.1"),
        ))
    await ledger.create_transaction(eth.portfolio_id, TXCreateItem(
        asset_id=eth.id, type=TransactionType.WITHDRAW, amount=Decimal("0.05"),
        ))

    assert (await ledger.get_asset(eth.id)).balance == Decimal("1.05")


@pytest.mark.asyncio
async def test_weighted_average_on_buys(ledger: LedgerService, eth: Asset):
    """Buy 2 @100 then 2 @200: average 150; a sell leaves it unchanged."""
    await _buy(ledger, eth, "2", "100")
    await _buy(ledger, eth, "2", "200")
    asset = await ledger.get_asset(eth.id)
    assert asset.balance == Decimal("4")
    assert asset.avg_buy_price == Decimal("150")

    await _sell(ledger, eth, "1")
    asset = await ledger.get_asset(eth.id)
    assert asset.balance == Decimal("3")
    assert asset.avg_buy_price == Decimal("150")


@pytest.mark.asyncio
async def test_unpriced_buy_keeps_average(ledger: LedgerService, eth: Asset):
    await _buy(ledger, eth, "1", "100")
    await _buy(ledger, eth, "1")
    asset = await ledger.get_asset(eth.id)
    assert asset.balance == Decimal("2")
    assert asset.avg_buy_price == Decimal("100")


@pytest.mark.asyncio
async def test_negative_balance_rejected(ledger: LedgerService, eth: Asset):
    await _buy(ledger, eth, "1", "100")

    with pytest.raises(InvariantViolationError) as exc_info:
        await _sell(ledger, eth, "1.0001")

    assert exc_info.value.applied == "none"
    assert (await ledger.get_asset(eth.id)).balance == Decimal("1")
    assert len(await ledger.list_transactions(eth.portfolio_id)) == 1


@pytest.mark.asyncio
async def test_transaction_on_foreign_asset(ledger: LedgerService, eth: Asset):
    other = await ledger.create_portfolio(PFCreateItem(name="Other"))
    with pytest.raises(InvalidArgumentError):
        await ledger.create_transaction(other.id, TXCreateItem(
            asset_id=eth.id, type=TransactionType.BUY, amount=Decimal("1"),
            ))


@pytest.mark.asyncio
async def test_swap_moves_value_between_assets(ledger: LedgerService, eth: Asset, usdc: Asset):
    await _buy(ledger, eth, "2", "1000")

    tx = await ledger.create_transaction(eth.portfolio_id, TXCreateItem(
        asset_id=eth.id, type=TransactionType.SWAP, amount=Decimal("0.5"),
        to_asset_id=usdc.id, to_amount=Decimal("1500"), to_price=Decimal("1"),
        ))

    assert tx.to_asset_id == usdc.id
    source = await ledger.get_asset(eth.id)
    destination = await ledger.get_asset(usdc.id)
    assert source.balance == Decimal("1.5")
    assert source.avg_buy_price == Decimal("1000")
    assert destination.balance == Decimal("1500")
    assert destination.avg_buy_price == Decimal("1")


@pytest.mark.asyncio
async def test_delete_transaction_reverses_balance(ledger: LedgerService, eth: Asset):
    await _buy(ledger, eth, "2", "100")
    second = await _buy(ledger, eth, "2", "200")
    sell = await _sell(ledger, eth, "1")

    await ledger.delete_transaction(sell.id)
    assert (await ledger.get_asset(eth.id)).balance == Decimal("4")

    await ledger.delete_transaction(second.id)
    asset = await ledger.get_asset(eth.id)
    assert asset.balance == Decimal("2")
    assert asset.avg_buy_price == Decimal("100")


@pytest.mark.asyncio
async def test_delete_transaction_cannot_go_negative(ledger: LedgerService, eth: Asset):
    """Deleting a buy whose units were already sold would leave a negative balance."""
    buy = await _buy(ledger, eth, "2", "100")
    await _sell(ledger, eth, "2")

    with pytest.raises(InvariantViolationError):
        await ledger.delete_transaction(buy.id)
    assert len(await ledger.list_transactions(eth.portfolio_id)) == 2


@pytest.mark.asyncio
async def test_delete_swap_reverses_both_legs(ledger: LedgerService, eth: Asset, usdc: Asset):
    await _buy(ledger, eth, "1", "1000")
    swap = await ledger.create_transaction(eth.portfolio_id, TXCreateItem(
        asset_id=eth.id, type=TransactionType.SWAP, amount=Decimal("1"),
        to_asset_id=usdc.id, to_amount=Decimal("3000"),
        ))

    await ledger.delete_transaction(swap.id)

    assert (await ledger.get_asset(eth.id)).balance == Decimal("1")
    assert (await ledger.get_asset(usdc.id)).balance == Decimal("0")


@pytest.mark.asyncio
async def test_update_transaction_only_touches_metadata(ledger: LedgerService, eth: Asset):
    buy = await _buy(ledger, eth, "1", "100")

    updated = await ledger.update_transaction(buy.id, TXUpdateItem(note="first lot"))

    assert updated.note == "first lot"
    assert updated.amount == Decimal("1")
    assert (await ledger.get_asset(eth.id)).balance == Decimal("1")


@pytest.mark.asyncio
async def test_transactions_listed_newest_first(ledger: LedgerService, eth: Asset):
    first = await _buy(ledger, eth, "1")
    second = await _buy(ledger, eth, "1")

    listed = await ledger.list_transactions(eth.portfolio_id)

    assert [tx.id for tx in listed] == [second.id, first.id]
