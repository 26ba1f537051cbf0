"""
FastAPI dependencies: runtime lookup, per-request ledger store, services
and the client session cookie.
"""
from typing import AsyncGenerator, Literal

from fastapi import Depends, Request, Response

from moonfolio.app.runtime import AppRuntime
from moonfolio.app.services.chart_service import ChartService
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.services.portfolio_orchestrator import PortfolioOrchestrator
from moonfolio.app.services.session_service import SESSION_COOKIE_NAME, SESSION_EXPIRE_HOURS, ClientSession
from moonfolio.app.services.valuation_service import ValuationService

SESSION_COOKIE_MAX_AGE = SESSION_EXPIRE_HOURS * 60 * 60
SESSION_COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "lax"


def get_runtime(request: Request) -> AppRuntime:
    return request.app.state.runtime


async def get_ledger_store(runtime: AppRuntime = Depends(get_runtime)) -> AsyncGenerator[LedgerStore, None]:
    """One store (and, on the SQL backend, one AsyncSession) per request."""
    async with runtime.ledger_store() as store:
        yield store


def get_ledger_service(store: LedgerStore = Depends(get_ledger_store)) -> LedgerService:
    return LedgerService(store)


def get_valuation_service(
    store: LedgerStore = Depends(get_ledger_store),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> ValuationService:
    return ValuationService(store, runtime.price_service)


def get_chart_service(
    store: LedgerStore = Depends(get_ledger_store),
    valuation: ValuationService = Depends(get_valuation_service),
    ) -> ChartService:
    return ChartService(store, valuation)


def get_orchestrator(
    store: LedgerStore = Depends(get_ledger_store),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> PortfolioOrchestrator:
    return PortfolioOrchestrator(store, runtime.price_service, runtime.chain_service, runtime.sessions)


def get_client_session(
    request: Request,
    response: Response,
    runtime: AppRuntime = Depends(get_runtime),
    ) -> ClientSession:
    """Session from the cookie; a new one (and its cookie) when missing or expired."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    session = runtime.sessions.get_or_create(cookie)
    if session.session_id != cookie:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=session.session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            samesite=SESSION_COOKIE_SAMESITE,
            )
    return session
