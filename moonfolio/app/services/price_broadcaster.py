"""
Price broadcaster: periodic cache refresh + fan-out to WebSocket subscribers.

One PriceBroadcaster per application, owned by app.state. It holds the
subscriber set and the single timer task; nothing here is module-level.
Delivery is best effort: a subscriber whose send fails is dropped.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Protocol, Set

from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.prices import PXPriceUpdateMessage, PXQuoteItem
from moonfolio.app.services.errors import MoonfolioError
from moonfolio.app.services.price_source import PriceService, PriceSnapshot
from moonfolio.app.utils.datetime_utils import utcnow

logger = get_logger(__name__)


class Subscriber(Protocol):
    """Anything with an async send_text (starlette WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...


def build_update_message(snapshot: PriceSnapshot) -> PXPriceUpdateMessage:
    return PXPriceUpdateMessage(
        data=[PXQuoteItem(id=pid, price=q.price, percent_change_24h=q.percent_change_24h)
              for pid, q in snapshot.quotes.items()],
        timestamp=snapshot.fetched_at or utcnow(),
        )


class PriceBroadcaster:
    """Subscriber set + refresh timer."""

    def __init__(self, price_service: PriceService, interval_seconds: float = 30.0):
        self.price_service = price_service
        self.interval_seconds = interval_seconds
        self._subscribers: Set[Subscriber] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)
        logger.debug("Price subscriber added", subscribers=len(self._subscribers))

    def remove(self, subscriber: Subscriber) -> None:
        self._subscribers.discard(subscriber)

    async def broadcast(self, message: PXPriceUpdateMessage) -> int:
        """
        Send ``message`` to every subscriber.

        Returns:
            Number of subscribers that received it
        """
        payload = message.model_dump_json()
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                await subscriber.send_text(payload)
                delivered += 1
            except Exception as e:
                self._subscribers.discard(subscriber)
                logger.info("Dropping price subscriber after failed send", error=str(e))
        return delivered

    async def tick(self) -> int:
        """Refresh the price cache once and broadcast the new snapshot."""
        snapshot = await self.price_service.refresh()
        if not self._subscribers:
            return 0
        return await self.broadcast(build_update_message(snapshot))

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except MoonfolioError as e:
                logger.warning("Price refresh tick failed", error_code=e.error_code, error=e.message)
            except Exception:
                logger.exception("Unexpected error in price refresh tick")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.interval_seconds <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="price-broadcaster")
        logger.info("Price broadcaster started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Price broadcaster stopped")
