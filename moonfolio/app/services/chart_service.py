"""
Portfolio value charts and snapshots.

A chart series comes from recorded PortfolioSnapshot rows when at least
two fall inside the requested window. Otherwise a seeded random walk is
generated backwards from the current total value; such series are
flagged ``synthetic`` and are an approximation, not history.
"""
from __future__ import annotations

import random
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence

from moonfolio.app.db.models import PortfolioSnapshot
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.charts import CHPoint, CHSeries, Timeframe
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.services.valuation_service import ValuationService
from moonfolio.app.utils.datetime_utils import ensure_utc, utcnow

logger = get_logger(__name__)

CENT = Decimal("0.01")
FLOOR_RATIO = Decimal("0.5")
MIN_SNAPSHOTS = 2


@dataclass(frozen=True)
class TimeframeConfig:
    steps: int
    step: timedelta
    volatility: float

    @property
    def span(self) -> timedelta:
        return self.step * self.steps


TIMEFRAMES = {
    Timeframe.H24: TimeframeConfig(24, timedelta(hours=1), 0.01),
    Timeframe.D7: TimeframeConfig(7, timedelta(days=1), 0.02),
    Timeframe.D30: TimeframeConfig(30, timedelta(days=1), 0.03),
    Timeframe.Y1: TimeframeConfig(365, timedelta(days=1), 0.05),
    Timeframe.ALL: TimeframeConfig(730, timedelta(days=1), 0.07),
    }


def truncate(moment: datetime, step: timedelta) -> datetime:
    """Align a timestamp down to a whole hour or day."""
    moment = ensure_utc(moment).replace(minute=0, second=0, microsecond=0)
    if step >= timedelta(days=1):
        moment = moment.replace(hour=0)
    return moment


class SimulatedSeries:
    """
    Finite, restartable sequence of chart points ending at ``current_value``.

    Iterating twice yields the same points: the walk is re-seeded on every
    iteration from (portfolio, timeframe, value).
    """

    def __init__(self, timeframe: Timeframe, current_value: Decimal, end: datetime,
                 portfolio_id: Optional[int] = None):
        self.timeframe = timeframe
        self.config = TIMEFRAMES[timeframe]
        self.current_value = current_value
        self.end = truncate(end, self.config.step)
        self.portfolio_id = portfolio_id

    @property
    def seed(self) -> int:
        key = f"{self.portfolio_id}:{self.timeframe.value}:{self.current_value}"
        return zlib.crc32(key.encode("utf-8"))

    def __len__(self) -> int:
        return self.config.steps + 1

    def __iter__(self) -> Iterator[CHPoint]:
        rng = random.Random(self.seed)
        floor = self.current_value * FLOOR_RATIO
        values = [self.current_value]
        for _ in range(self.config.steps):
            shock = Decimal(str(rng.uniform(-self.config.volatility, self.config.volatility)))
            values.append(max(floor, values[-1] * (1 + shock)))
        values.reverse()

        start = self.end - self.config.span
        for index, value in enumerate(values):
            yield CHPoint(timestamp=start + self.config.step * index, value=value.quantize(CENT))


class SnapshotSeries:
    """Chart points read from recorded snapshots (oldest first)."""

    def __init__(self, snapshots: Sequence[PortfolioSnapshot]):
        self.snapshots = list(snapshots)

    def __len__(self) -> int:
        return len(self.snapshots)

    def __iter__(self) -> Iterator[CHPoint]:
        for snapshot in self.snapshots:
            yield CHPoint(timestamp=ensure_utc(snapshot.recorded_at), value=snapshot.total_value)


class ChartService:
    """Snapshots recording and chart series for one portfolio or the summary."""

    def __init__(self, store: LedgerStore, valuation: ValuationService):
        self.store = store
        self.valuation = valuation

    async def record_snapshot(self, portfolio_id: Optional[int] = None) -> PortfolioSnapshot:
        """
        Store the current total value of a portfolio (None: the summary).

        Raises:
            NotFoundError: unknown portfolio
        """
        total = await self.valuation.get_total_value(portfolio_id)
        snapshot = await self.store.run_in_unit_of_work(
            lambda: self.store.add_snapshot(PortfolioSnapshot(portfolio_id=portfolio_id, total_value=total))
            )
        logger.info("Portfolio snapshot recorded", portfolio_id=portfolio_id, total_value=total)
        return snapshot

    async def build_series(self, timeframe: Timeframe, portfolio_id: Optional[int] = None,
                           now: Optional[datetime] = None):
        """Return the lazy series for a timeframe: snapshots when available, else simulated."""
        now = now or utcnow()
        since = now - TIMEFRAMES[timeframe].span
        snapshots = await self.store.list_snapshots(portfolio_id, since)
        if len(snapshots) >= MIN_SNAPSHOTS:
            return SnapshotSeries(snapshots)
        total = await self.valuation.get_total_value(portfolio_id)
        return SimulatedSeries(timeframe, total, now, portfolio_id)

    async def generate_series(self, timeframe: Timeframe, portfolio_id: Optional[int] = None,
                              now: Optional[datetime] = None) -> CHSeries:
        series = await self.build_series(timeframe, portfolio_id, now)
        points: List[CHPoint] = list(series)
        return CHSeries(
            timeframe=timeframe,
            portfolio_id=portfolio_id,
            synthetic=isinstance(series, SimulatedSeries),
            points=points,
            )
