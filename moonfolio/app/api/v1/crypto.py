"""
Market data endpoints (passthrough to the configured price provider).

- GET /crypto/prices?ids=bitcoin,ethereum: current quotes (unknown ids omitted)
- GET /crypto/popular: top coins by market cap
- GET /crypto/search?q=eth: coin lookup
- GET /crypto/history/{id}?days=30: USD price points
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from moonfolio.app.api.v1.dependencies import get_runtime
from moonfolio.app.runtime import AppRuntime
from moonfolio.app.schemas.common import ErrorResponse
from moonfolio.app.schemas.prices import PXMarketCoin, PXPricePoint, PXQuoteItem, PXSearchResult
from moonfolio.app.services.errors import InvalidArgumentError

crypto_router = APIRouter(prefix="/crypto", tags=["PX (Market data)"])

UPSTREAM_ERROR = {503: {"model": ErrorResponse}}
MAX_IDS_PER_REQUEST = 100


@crypto_router.get("/prices", response_model=List[PXQuoteItem], responses={400: {"model": ErrorResponse}})
async def get_prices(
    ids: str = Query(..., description="Comma-separated price ids"),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> List[PXQuoteItem]:
    """Quotes for the requested ids; ids without a quote are left out of the list."""
    wanted = [i.strip().lower() for i in ids.split(",") if i.strip()]
    if not wanted:
        raise InvalidArgumentError("ids must contain at least one price id")
    if len(wanted) > MAX_IDS_PER_REQUEST:
        raise InvalidArgumentError(f"At most {MAX_IDS_PER_REQUEST} ids per request",
                                   details={"count": len(wanted)})
    quotes = await runtime.price_service.get_quotes(wanted)
    return [PXQuoteItem(id=pid, **quotes[pid].model_dump()) for pid in dict.fromkeys(wanted) if pid in quotes]


@crypto_router.get("/popular", response_model=List[PXMarketCoin], responses=UPSTREAM_ERROR)
async def get_popular(
    limit: int = Query(20, ge=1, le=100),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> List[PXMarketCoin]:
    return await runtime.price_service.get_markets(limit)


@crypto_router.get("/search", response_model=List[PXSearchResult], responses=UPSTREAM_ERROR)
async def search(
    q: str = Query(..., min_length=1, max_length=100),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> List[PXSearchResult]:
    return await runtime.price_service.search(q.strip())


@crypto_router.get("/history/{price_id}", response_model=List[PXPricePoint],
                   responses={**UPSTREAM_ERROR, 404: {"model": ErrorResponse}})
async def get_history(
    price_id: str,
    days: int = Query(30, ge=1, le=3650),
    runtime: AppRuntime = Depends(get_runtime),
    ) -> List[PXPricePoint]:
    return await runtime.price_service.get_history(price_id, days)
