"""
Wallet API endpoints.

- POST /wallets/connect: create (or reuse) the portfolio of a wallet and make it active
- GET /wallets/resolve/{name}: ENS name -> address
- GET /wallets/{address}: balances preview, nothing stored
"""
from fastapi import APIRouter, Depends, Response

from moonfolio.app.api.v1.dependencies import get_client_session, get_orchestrator, get_runtime
from moonfolio.app.logging_config import get_logger
from moonfolio.app.runtime import AppRuntime
from moonfolio.app.schemas.common import ErrorResponse
from moonfolio.app.schemas.wallets import WLConnectRequest, WLConnectResult, WLIdentity, WLWalletAssets
from moonfolio.app.services.portfolio_orchestrator import PortfolioOrchestrator
from moonfolio.app.services.session_service import ClientSession

logger = get_logger(__name__)

wallet_router = APIRouter(prefix="/wallets", tags=["WL (Wallets)"])

UPSTREAM_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    }


@wallet_router.post("/connect", response_model=WLConnectResult, responses=UPSTREAM_ERRORS)
async def connect_wallet(
    request: WLConnectRequest,
    response: Response,
    session: ClientSession = Depends(get_client_session),
    orchestrator: PortfolioOrchestrator = Depends(get_orchestrator),
    ) -> WLConnectResult:
    """
    Connect a wallet by address or ENS name.

    Reconnecting a tracked wallet returns the same portfolio (``created`` false).
    Any resolution or balance-read failure aborts before anything is stored.
    """
    result = await orchestrator.connect_wallet(
        request.identifier,
        include_in_summary=request.include_in_summary,
        user_id=request.user_id,
        session_id=session.session_id,
        )
    response.status_code = 201 if result.created else 200
    return result


@wallet_router.get("/resolve/{name}", response_model=WLIdentity, responses=UPSTREAM_ERRORS)
async def resolve_name(name: str, runtime: AppRuntime = Depends(get_runtime)) -> WLIdentity:
    return await runtime.chain_service.resolve_identity(name)


@wallet_router.get("/{identifier}", response_model=WLWalletAssets, responses=UPSTREAM_ERRORS)
async def get_wallet_assets(identifier: str, runtime: AppRuntime = Depends(get_runtime)) -> WLWalletAssets:
    """Native and allow-listed token balances of a wallet (address or ENS name)."""
    return await runtime.chain_service.get_wallet_assets(identifier)
