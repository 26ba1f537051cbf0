"""
API v1 router.
Aggregates all v1 endpoints.
"""
from fastapi import APIRouter

from moonfolio.app.api.v1.assets import asset_router
from moonfolio.app.api.v1.charts import chart_router
from moonfolio.app.api.v1.crypto import crypto_router
from moonfolio.app.api.v1.portfolios import portfolio_router
from moonfolio.app.api.v1.session import session_router
from moonfolio.app.api.v1.transactions import tx_router
from moonfolio.app.api.v1.users import user_router
from moonfolio.app.api.v1.wallets import wallet_router
from moonfolio.app.api.v1.ws import ws_router
from moonfolio.app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Include sub-routers
router.include_router(user_router)
router.include_router(portfolio_router)
router.include_router(asset_router)
router.include_router(tx_router)
router.include_router(wallet_router)
router.include_router(chart_router)
router.include_router(crypto_router)
router.include_router(session_router)
router.include_router(ws_router)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns service status.

    Returns:
        dict: Status message
    """
    logger.debug("Health check requested")
    return {"status": "ok"}
