"""
Chart API endpoint.

GET /charts?timeframe=7d&portfolio_id=1 returns the value series of one
portfolio, or of the summary when portfolio_id is omitted. Check the
``synthetic`` flag: without recorded snapshots the series is simulated.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from moonfolio.app.api.v1.dependencies import get_chart_service
from moonfolio.app.schemas.charts import CHSeries, CHSnapshotRead, Timeframe
from moonfolio.app.schemas.common import ErrorResponse
from moonfolio.app.services.chart_service import ChartService

chart_router = APIRouter(prefix="/charts", tags=["CH (Charts)"])


@chart_router.get("", response_model=CHSeries, responses={404: {"model": ErrorResponse}})
async def get_chart(
    timeframe: Timeframe = Query(Timeframe.D7),
    portfolio_id: Optional[int] = Query(None, gt=0),
    charts: ChartService = Depends(get_chart_service),
    ) -> CHSeries:
    return await charts.generate_series(timeframe, portfolio_id)


@chart_router.post("/snapshots", response_model=CHSnapshotRead, status_code=201)
async def record_summary_snapshot(charts: ChartService = Depends(get_chart_service)) -> CHSnapshotRead:
    """Record the current summary total (all included portfolios)."""
    return CHSnapshotRead.model_validate(await charts.record_snapshot(None))
