"""
Client session endpoints: the active portfolio of the caller.

The session is identified by the ``moonfolio_session`` cookie, issued on
first use.
"""
from fastapi import APIRouter, Depends

from moonfolio.app.api.v1.dependencies import get_client_session, get_ledger_service
from moonfolio.app.schemas.common import ErrorResponse
from moonfolio.app.schemas.sessions import SSActivePortfolio
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.session_service import ClientSession

session_router = APIRouter(prefix="/session", tags=["Session"])


@session_router.get("/active-portfolio", response_model=SSActivePortfolio)
async def get_active_portfolio(session: ClientSession = Depends(get_client_session)) -> SSActivePortfolio:
    return SSActivePortfolio(portfolio_id=session.active_portfolio_id)


@session_router.put("/active-portfolio", response_model=SSActivePortfolio, responses={404: {"model": ErrorResponse}})
async def set_active_portfolio(
    item: SSActivePortfolio,
    session: ClientSession = Depends(get_client_session),
    ledger: LedgerService = Depends(get_ledger_service),
    ) -> SSActivePortfolio:
    if item.portfolio_id is not None:
        await ledger.get_portfolio(item.portfolio_id)
    session.active_portfolio_id = item.portfolio_id
    return SSActivePortfolio(portfolio_id=session.active_portfolio_id)
