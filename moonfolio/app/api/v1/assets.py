"""
Asset API endpoints.

- GET /assets/{id}: holding with price fields
- PUT /assets/{id}: partial update (a balance change is recorded as buy/sell)
- DELETE /assets/{id}: delete with its transactions
- POST /assets/{id}/transfer: move part or all of the balance to another portfolio
"""
from fastapi import APIRouter, Depends

from moonfolio.app.api.v1.dependencies import get_ledger_service, get_orchestrator, get_valuation_service
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.assets import FATransferRequest, FATransferResult, FAUpdateItem, FAWithPrice
from moonfolio.app.schemas.common import BaseDeleteResult, ErrorResponse
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.portfolio_orchestrator import PortfolioOrchestrator
from moonfolio.app.services.valuation_service import ValuationService

logger = get_logger(__name__)

asset_router = APIRouter(prefix="/assets", tags=["FA (Assets)"])

NOT_FOUND = {404: {"model": ErrorResponse}}


@asset_router.get("/{asset_id}", response_model=FAWithPrice, responses=NOT_FOUND)
async def get_asset(asset_id: int, valuation: ValuationService = Depends(get_valuation_service)) -> FAWithPrice:
    return await valuation.get_priced_asset(asset_id)


@asset_router.put("/{asset_id}", response_model=FAWithPrice,
                  responses={**NOT_FOUND, 400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}})
async def update_asset(
    asset_id: int,
    item: FAUpdateItem,
    ledger: LedgerService = Depends(get_ledger_service),
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> FAWithPrice:
    """
    Update an asset.

    A new ``balance`` is reached through a synthesized "Balance adjustment"
    buy or sell, never written directly.
    """
    await ledger.update_asset(asset_id, item)
    return await valuation.get_priced_asset(asset_id)


@asset_router.delete("/{asset_id}", response_model=BaseDeleteResult, responses=NOT_FOUND)
async def delete_asset(asset_id: int, ledger: LedgerService = Depends(get_ledger_service)) -> BaseDeleteResult:
    removed = await ledger.delete_asset(asset_id)
    return BaseDeleteResult(id=asset_id, cascaded_count=removed, message="Asset deleted")


@asset_router.post("/{asset_id}/transfer", response_model=FATransferResult,
                   responses={**NOT_FOUND, 400: {"model": ErrorResponse}, 422: {"model": ErrorResponse},
                              500: {"model": ErrorResponse}})
async def transfer_asset(
    asset_id: int,
    request: FATransferRequest,
    orchestrator: PortfolioOrchestrator = Depends(get_orchestrator),
    ) -> FATransferResult:
    """
    Transfer ``amount`` units to another portfolio.

    The withdraw, the optional source deletion (full drain) and the deposit
    are applied together or not at all.
    """
    return await orchestrator.transfer_asset(asset_id, request.target_portfolio_id, request.amount)
