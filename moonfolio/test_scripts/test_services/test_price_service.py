"""
Tests for PriceService: batching, caching, strict vs degraded reads, refresh.

Reference: moonfolio/app/services/price_source.py
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Sequence

import pytest

from moonfolio.app.schemas.prices import PXQuote
from moonfolio.app.services.errors import UpstreamUnavailableError
from moonfolio.app.services.price_source import PriceService, batched
from moonfolio.app.services.price_source_providers.mockprov import MockPriceProvider
from moonfolio.app.utils.datetime_utils import utcnow


class SlowPriceProvider(MockPriceProvider):
    async def get_quotes(self, ids: Sequence[str]) -> Dict[str, PXQuote]:
        await asyncio.sleep(5)
        return {}


class FlakyPriceProvider(MockPriceProvider):
    """Fails every batch containing one of ``bad_ids``."""

    def __init__(self, bad_ids=(), **kwargs):
        super().__init__(**kwargs)
        self.bad_ids = set(bad_ids)

    async def get_quotes(self, ids: Sequence[str]) -> Dict[str, PXQuote]:
        if self.bad_ids & set(ids):
            self.calls.append(list(ids))
            raise UpstreamUnavailableError("batch down")
        return await super().get_quotes(ids)


# ============================================================================
# BATCHING
# ============================================================================

def test_batched_dedupes_and_splits():
    ids = [f"coin-{i}" for i in range(23)] + ["coin-0"]
    batches = batched(ids, 10)
    assert [len(b) for b in batches] == [10, 10, 3]
    assert batches[0][0] == "coin-0"


@pytest.mark.asyncio
async def test_quotes_fetched_in_batches_of_ten():
    quotes = {f"coin-{i}": PXQuote(price=Decimal(i + 1)) for i in range(25)}
    provider = MockPriceProvider(quotes=quotes)
    service = PriceService(provider, batch_size=10)

    result = await service.get_quotes(list(quotes))

    assert len(result) == 25
    assert [len(call) for call in provider.calls] == [10, 10, 5]


@pytest.mark.asyncio
async def test_unknown_ids_are_omitted(price_service, price_provider):
    result = await price_service.get_quotes(["bitcoin", "no-such-coin", "bitcoin"])

    assert set(result) == {"bitcoin"}
    assert result["bitcoin"].price == Decimal("50000")
    assert price_provider.calls == [["bitcoin", "no-such-coin"]]


@pytest.mark.asyncio
async def test_empty_request_costs_nothing(price_service, price_provider):
    assert await price_service.get_quotes([]) == {}
    assert price_provider.calls == []


# ============================================================================
# FAILURE MODES
# ============================================================================

@pytest.mark.asyncio
async def test_degraded_read_leaves_quotes_out():
    service = PriceService(MockPriceProvider(fail=True))

    assert await service.get_quotes(["bitcoin"]) == {}
    assert await service.get_quote("bitcoin") is None


@pytest.mark.asyncio
async def test_strict_read_raises():
    service = PriceService(MockPriceProvider(fail=True))

    with pytest.raises(UpstreamUnavailableError):
        await service.get_quotes(["bitcoin"], strict=True)


@pytest.mark.asyncio
async def test_timeout_becomes_upstream_error():
    service = PriceService(SlowPriceProvider(), timeout_seconds=0.05)

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await service.get_quotes(["bitcoin"], strict=True)

    assert exc_info.value.error_code == "TIMEOUT"
    assert exc_info.value.to_dict()["retry_safe"] is True


@pytest.mark.asyncio
async def test_one_failed_batch_does_not_hide_the_others():
    quotes = {f"coin-{i}": PXQuote(price=Decimal("1")) for i in range(12)}
    service = PriceService(FlakyPriceProvider(quotes=quotes, bad_ids={"coin-11"}), batch_size=10)

    result = await service.get_quotes(list(quotes))

    assert len(result) == 10
    assert "coin-11" not in result


# ============================================================================
# CACHE AND REFRESH
# ============================================================================

@pytest.mark.asyncio
async def test_refresh_fills_cache_for_readers():
    provider = MockPriceProvider()
    service = PriceService(provider, tracked_ids=["bitcoin", "ethereum"])

    snapshot = await service.refresh()
    provider.calls.clear()
    result = await service.get_quotes(["ethereum"])

    assert set(snapshot.quotes) == {"bitcoin", "ethereum"}
    assert result["ethereum"].price == Decimal("3000")
    assert provider.calls == []


@pytest.mark.asyncio
async def test_stale_cache_is_not_served():
    provider = MockPriceProvider()
    service = PriceService(provider, max_age_seconds=0, tracked_ids=["bitcoin"])
    await service.refresh()
    provider.calls.clear()

    await asyncio.sleep(0.01)
    await service.get_quotes(["bitcoin"])

    assert provider.calls == [["bitcoin"]]


@pytest.mark.asyncio
async def test_read_ids_join_the_watch_list(price_service):
    await price_service.get_quotes(["chainlink"])
    assert "chainlink" in price_service.watched_ids


@pytest.mark.asyncio
async def test_refresh_keeps_previous_quotes_of_failed_batch():
    provider = FlakyPriceProvider()
    service = PriceService(provider, batch_size=1, tracked_ids=["bitcoin", "ethereum"])
    first = await service.refresh()

    provider.bad_ids = {"ethereum"}
    provider.quotes["bitcoin"] = PXQuote(price=Decimal("60000"))
    second = await service.refresh()

    assert second is not first
    assert second.quotes["bitcoin"].price == Decimal("60000")
    assert second.quotes["ethereum"] == first.quotes["ethereum"]
    # The snapshot readers held is untouched
    assert first.quotes["bitcoin"].price == Decimal("50000")


@pytest.mark.asyncio
async def test_carried_over_quotes_keep_their_age():
    provider = FlakyPriceProvider()
    service = PriceService(provider, max_age_seconds=120, tracked_ids=["bitcoin"])
    first = await service.refresh()
    an_hour_ago = utcnow() - timedelta(hours=1)
    service.cache.swap(first.quotes, {pid: an_hour_ago for pid in first.quotes}, an_hour_ago)

    provider.bad_ids = {"bitcoin"}
    carried = await service.refresh()

    assert carried.quotes["bitcoin"] == first.quotes["bitcoin"]
    assert carried.quoted_at["bitcoin"] == an_hour_ago
    assert carried.fresh_quotes(["bitcoin"], service.max_age) == {}

    # Once the provider is back, readers get the new price instead of the old one
    provider.bad_ids = set()
    provider.quotes["bitcoin"] = PXQuote(price=Decimal("61000"))
    quotes = await service.get_quotes(["bitcoin"])

    assert quotes["bitcoin"].price == Decimal("61000")


@pytest.mark.asyncio
async def test_market_passthrough(price_service):
    markets = await price_service.get_markets(2)
    assert [coin.id for coin in markets] == ["bitcoin", "ethereum"]

    results = await price_service.search("link")
    assert [r.id for r in results] == ["chainlink"]

    history = await price_service.get_history("bitcoin", 3)
    assert len(history) == 4
