"""
Tests for the price broadcaster and the client session registry.

Reference: moonfolio/app/services/price_broadcaster.py,
           moonfolio/app/services/session_service.py
"""
import asyncio
import json
from datetime import timedelta

import pytest

from moonfolio.app.services.price_broadcaster import PriceBroadcaster
from moonfolio.app.services.price_source import PriceService
from moonfolio.app.services.price_source_providers.mockprov import MockPriceProvider
from moonfolio.app.services.session_service import SessionRegistry
from moonfolio.app.utils.datetime_utils import utcnow


class RecordingSubscriber:
    def __init__(self, broken: bool = False):
        self.broken = broken
        self.messages = []

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise ConnectionError("socket closed")
        self.messages.append(json.loads(data))


@pytest.fixture
def broadcaster() -> PriceBroadcaster:
    service = PriceService(MockPriceProvider(), tracked_ids=["bitcoin", "ethereum"])
    return PriceBroadcaster(service, interval_seconds=0)


# ============================================================================
# BROADCASTER
# ============================================================================

@pytest.mark.asyncio
async def test_tick_delivers_update_message(broadcaster):
    subscriber = RecordingSubscriber()
    broadcaster.add(subscriber)

    delivered = await broadcaster.tick()

    assert delivered == 1
    message = subscriber.messages[0]
    assert message["type"] == "priceUpdate"
    by_id = {item["id"]: item for item in message["data"]}
    assert by_id["bitcoin"]["price"] == "50000"
    assert by_id["ethereum"]["percent_change_24h"] == "-1.2"
    assert "timestamp" in message


@pytest.mark.asyncio
async def test_failed_subscriber_is_dropped(broadcaster):
    healthy, broken = RecordingSubscriber(), RecordingSubscriber(broken=True)
    broadcaster.add(healthy)
    broadcaster.add(broken)

    delivered = await broadcaster.tick()

    assert delivered == 1
    assert broadcaster.subscriber_count == 1
    assert len(healthy.messages) == 1


@pytest.mark.asyncio
async def test_tick_without_subscribers_still_refreshes(broadcaster):
    assert await broadcaster.tick() == 0
    assert broadcaster.price_service.cache.snapshot.fetched_at is not None


@pytest.mark.asyncio
async def test_zero_interval_never_starts(broadcaster):
    broadcaster.start()
    assert broadcaster.running is False


@pytest.mark.asyncio
async def test_timer_runs_and_stops():
    service = PriceService(MockPriceProvider(fail=True), tracked_ids=["bitcoin"])
    broadcaster = PriceBroadcaster(service, interval_seconds=0.01)
    subscriber = RecordingSubscriber()
    broadcaster.add(subscriber)

    broadcaster.start()
    await asyncio.sleep(0.05)
    assert broadcaster.running
    await broadcaster.stop()

    assert broadcaster.running is False
    # Failing refreshes keep the loop alive and still publish (empty) snapshots
    assert subscriber.messages
    assert subscriber.messages[0]["data"] == []


class BrokenPriceProvider(MockPriceProvider):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.attempts = 0

    async def get_quotes(self, ids):
        self.attempts += 1
        raise KeyError("unexpected payload shape")


@pytest.mark.asyncio
async def test_timer_survives_unexpected_errors():
    provider = BrokenPriceProvider()
    broadcaster = PriceBroadcaster(PriceService(provider, tracked_ids=["bitcoin"]), interval_seconds=0.01)

    broadcaster.start()
    await asyncio.sleep(0.05)

    assert broadcaster.running
    assert provider.attempts > 1
    await broadcaster.stop()
    assert broadcaster.running is False


# ============================================================================
# SESSIONS
# ============================================================================

def test_session_lifecycle():
    registry = SessionRegistry()
    session = registry.create()

    assert registry.get(session.session_id) is session
    assert registry.get_or_create(session.session_id) is session
    assert registry.get("unknown") is None
    assert len(registry) == 1


def test_expired_session_is_replaced():
    registry = SessionRegistry()
    session = registry.create()
    session.expires_at = utcnow() - timedelta(seconds=1)

    assert registry.get(session.session_id) is None
    assert registry.get_or_create(session.session_id).session_id != session.session_id


def test_forget_deleted_portfolio():
    registry = SessionRegistry()
    first, second = registry.create(), registry.create()
    registry.set_active_portfolio(first.session_id, 3)
    registry.set_active_portfolio(second.session_id, 4)

    assert registry.forget_portfolio(3) == 1
    assert first.active_portfolio_id is None
    assert second.active_portfolio_id == 4
