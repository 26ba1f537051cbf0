"""
Portfolio API endpoints.

Portfolios:
- GET /portfolios: list (optionally by owner)
- POST /portfolios: create a manual portfolio
- GET /portfolios/summary: valuation across included portfolios
- GET /portfolios/by-address/{address}: wallet portfolio lookup (case-insensitive)
- GET/PUT/DELETE /portfolios/{id}

Nested resources:
- GET/POST /portfolios/{id}/assets: priced holdings / add (merge) a holding
- GET /portfolios/{id}/overview: total value and 24h change
- GET/POST /portfolios/{id}/transactions: history with details / record one
- POST /portfolios/{id}/snapshots: record the current total value
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from moonfolio.app.api.v1.dependencies import (
    get_chart_service,
    get_ledger_service,
    get_runtime,
    get_valuation_service,
    )
from moonfolio.app.logging_config import get_logger
from moonfolio.app.runtime import AppRuntime
from moonfolio.app.schemas.assets import FACreateItem, FAWithPrice
from moonfolio.app.schemas.charts import CHSnapshotRead
from moonfolio.app.schemas.common import BaseDeleteResult, ErrorResponse
from moonfolio.app.schemas.portfolios import (
    PFManualCreateItem,
    PFOverview,
    PFReadItem,
    PFSummary,
    PFUpdateItem,
    )
from moonfolio.app.schemas.transactions import TXCreateItem, TXWithDetails
from moonfolio.app.services.chart_service import ChartService
from moonfolio.app.services.errors import NotFoundError
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.valuation_service import ValuationService

logger = get_logger(__name__)

portfolio_router = APIRouter(prefix="/portfolios", tags=["PF (Portfolios)"])

NOT_FOUND = {404: {"model": ErrorResponse}}


# =============================================================================
# PORTFOLIOS
# =============================================================================

@portfolio_router.get("", response_model=List[PFReadItem])
async def list_portfolios(
    user_id: Optional[int] = Query(None, gt=0, description="Only portfolios of this owner"),
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> List[PFReadItem]:
    return [PFReadItem.model_validate(p) for p in await ledger.list_portfolios(user_id)]


@portfolio_router.post("", response_model=PFReadItem, status_code=201, responses={400: {"model": ErrorResponse}})
async def create_portfolio(
    item: PFManualCreateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> PFReadItem:
    """Create a manual portfolio. Wallet portfolios come from POST /wallets/connect."""
    return PFReadItem.model_validate(await ledger.create_portfolio(item.to_create_item()))


@portfolio_router.get("/summary", response_model=PFSummary)
async def get_summary(valuation: ValuationService = Depends(get_valuation_service)) -> PFSummary:
    return await valuation.get_summary()


@portfolio_router.get("/by-address/{address}", response_model=PFReadItem, responses=NOT_FOUND)
async def get_portfolio_by_address(
    address: str,
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> PFReadItem:
    portfolio = await ledger.get_portfolio_by_address(address)
    if portfolio is None:
        raise NotFoundError("No portfolio tracks this address", details={"address": address})
    return PFReadItem.model_validate(portfolio)


@portfolio_router.get("/{portfolio_id}", response_model=PFReadItem, responses=NOT_FOUND)
async def get_portfolio(portfolio_id: int, ledger: LedgerService = Depends(get_ledger_service)) -> PFReadItem:
    return PFReadItem.model_validate(await ledger.get_portfolio(portfolio_id))


@portfolio_router.put("/{portfolio_id}", response_model=PFReadItem, responses=NOT_FOUND)
async def update_portfolio(
    portfolio_id: int,
    item: PFUpdateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> PFReadItem:
    return PFReadItem.model_validate(await ledger.update_portfolio(portfolio_id, item))


@portfolio_router.delete("/{portfolio_id}", response_model=BaseDeleteResult, responses=NOT_FOUND)
async def delete_portfolio(
    portfolio_id: int,
    ledger: LedgerService = Depends(get_ledger_service),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> BaseDeleteResult:
    """Delete a portfolio with its assets, their transactions and its snapshots."""
    removed = await ledger.delete_portfolio(portfolio_id)
    runtime.sessions.forget_portfolio(portfolio_id)
    return BaseDeleteResult(id=portfolio_id, cascaded_count=removed, message="Portfolio deleted")


# =============================================================================
# NESTED: ASSETS, OVERVIEW
# =============================================================================

@portfolio_router.get("/{portfolio_id}/assets", response_model=List[FAWithPrice], responses=NOT_FOUND)
async def list_assets(
    portfolio_id: int,
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> List[FAWithPrice]:
    """Holdings with current price, value and profit/loss (zeros when a quote is missing)."""
    return await valuation.get_priced_assets(portfolio_id)


@portfolio_router.post("/{portfolio_id}/assets", response_model=FAWithPrice, status_code=201,
                       responses={**NOT_FOUND, 400: {"model": ErrorResponse}})
async def create_asset(
    portfolio_id: int,
    item: FACreateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> FAWithPrice:
    """Add a holding; an existing holding with the same symbol absorbs the balance."""
    asset = await ledger.create_asset(portfolio_id, item)
    return await valuation.get_priced_asset(asset.id)


@portfolio_router.get("/{portfolio_id}/overview", response_model=PFOverview, responses=NOT_FOUND)
async def get_overview(
    portfolio_id: int,
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> PFOverview:
    return await valuation.get_overview(portfolio_id)


# =============================================================================
# NESTED: TRANSACTIONS, SNAPSHOTS
# =============================================================================

@portfolio_router.get("/{portfolio_id}/transactions", response_model=List[TXWithDetails], responses=NOT_FOUND)
async def list_transactions(
    portfolio_id: int,
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> List[TXWithDetails]:
    """Transactions newest first, joined with asset display fields."""
    return await valuation.get_transactions_with_details(portfolio_id)


@portfolio_router.post("/{portfolio_id}/transactions", response_model=TXWithDetails, status_code=201,
                       responses={**NOT_FOUND, 400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}})
async def create_transaction(
    portfolio_id: int,
    item: TXCreateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> TXWithDetails:
    """
    Record a transaction; the asset balance(s) change before the response is sent.

    A sell, withdraw or swap larger than the balance is rejected (422).
    """
    tx = await ledger.create_transaction(portfolio_id, item)
    return await valuation.get_transaction_with_details(tx.id)


@portfolio_router.post("/{portfolio_id}/snapshots", response_model=CHSnapshotRead, status_code=201,
                       responses=NOT_FOUND)
async def record_snapshot(
    portfolio_id: int,
    charts: ChartService = Depends(get_chart_service),
    ) -> CHSnapshotRead:
    return CHSnapshotRead.model_validate(await charts.record_snapshot(portfolio_id))
