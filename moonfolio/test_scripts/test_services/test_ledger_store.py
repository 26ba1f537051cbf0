"""
Tests for the ledger unit of work: commit, rollback, nesting, conflict retries.

Reference: moonfolio/app/services/ledger_store.py
"""
import pytest

from moonfolio.app.db.models import Asset, Portfolio
from moonfolio.app.services.errors import ConflictError, InvalidArgumentError, PartiallyAppliedError
from moonfolio.app.services.ledger_store_memory import MemoryDatabase, MemoryLedgerStore


class BrokenRollbackStore(MemoryLedgerStore):
    """Memory store whose rollback fails after restoring state."""

    async def _rollback(self) -> None:
        await super()._rollback()
        raise RuntimeError("disk on fire")


# ============================================================================
# COMMIT / ROLLBACK
# ============================================================================

@pytest.mark.asyncio
async def test_unit_of_work_commits(store):
    async def _create():
        return await store.add_portfolio(Portfolio(name="Kept"))

    created = await store.run_in_unit_of_work(_create)

    assert created.id is not None
    assert [p.name for p in await store.list_portfolios()] == ["Kept"]


@pytest.mark.asyncio
async def test_unit_of_work_rolls_back_on_error(store):
    async def _create_then_fail():
        await store.add_portfolio(Portfolio(name="Lost"))
        raise InvalidArgumentError("nope")

    with pytest.raises(InvalidArgumentError):
        await store.run_in_unit_of_work(_create_then_fail)

    assert await store.list_portfolios() == []


@pytest.mark.asyncio
async def test_nested_unit_of_work_joins_outer(store):
    """An inner failure caught by the outer operation is still undone with the outer one."""
    async def _inner():
        return await store.add_portfolio(Portfolio(name="Inner"))

    async def _outer():
        await store.run_in_unit_of_work(_inner)
        assert store.in_unit_of_work
        raise InvalidArgumentError("outer fails")

    with pytest.raises(InvalidArgumentError):
        await store.run_in_unit_of_work(_outer)

    assert await store.list_portfolios() == []
    assert not store.in_unit_of_work


# ============================================================================
# CONFLICTS
# ============================================================================

@pytest.mark.asyncio
async def test_conflict_is_retried(store):
    attempts = []

    async def _flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConflictError("stale version")
        return await store.add_portfolio(Portfolio(name="Second try"))

    created = await store.run_in_unit_of_work(_flaky)

    assert len(attempts) == 2
    assert created.name == "Second try"


@pytest.mark.asyncio
async def test_conflict_gives_up_after_max_retries(store):
    attempts = []

    async def _always_conflicting():
        attempts.append(1)
        raise ConflictError("stale version")

    with pytest.raises(ConflictError) as exc_info:
        await store.run_in_unit_of_work(_always_conflicting)

    assert len(attempts) == store.max_retries
    assert exc_info.value.to_dict()["retry_safe"] is True


@pytest.mark.asyncio
async def test_stale_asset_version_conflicts():
    """Two readers of the same version: the second writer loses."""
    database = MemoryDatabase()
    store = MemoryLedgerStore(database)
    portfolio = await store.run_in_unit_of_work(lambda: store.add_portfolio(Portfolio(name="P")))
    asset = await store.run_in_unit_of_work(lambda: store.add_asset(Asset(
        portfolio_id=portfolio.id, name="Ethereum", symbol="ETH", price_id="ethereum",
        )))

    first = await store.get_asset(asset.id)
    second = await store.get_asset(asset.id)
    first.balance = first.balance + 1
    await store.run_in_unit_of_work(lambda: store.save_asset(first))

    second.balance = second.balance + 2
    with pytest.raises(ConflictError):
        await store.run_in_unit_of_work(lambda: store.save_asset(second))
    assert (await store.get_asset(asset.id)).balance == 1


# ============================================================================
# FAILED ROLLBACK
# ============================================================================

@pytest.mark.asyncio
async def test_failed_rollback_reports_partial():
    store = BrokenRollbackStore(MemoryDatabase())

    async def _fail():
        await store.add_portfolio(Portfolio(name="P"))
        raise InvalidArgumentError("boom")

    with pytest.raises(PartiallyAppliedError) as exc_info:
        await store.run_in_unit_of_work(_fail)

    body = exc_info.value.to_dict()
    assert body["applied"] == "partial"
    assert body["retry_safe"] is False
    assert isinstance(exc_info.value.__cause__, RuntimeError)
