"""
Mock price provider for testing purposes only.

Returns fixed quotes from an in-memory table and never touches the
network. Select it with PRICE_PROVIDER=mockprov.

WARNING: This provider is for TESTING ONLY. Do not use in production code.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from moonfolio.app.schemas.prices import PXMarketCoin, PXPricePoint, PXQuote, PXSearchResult
from moonfolio.app.services.errors import NotFoundError, UpstreamUnavailableError
from moonfolio.app.services.price_source import PriceSourceProvider
from moonfolio.app.services.provider_registry import PriceProviderRegistry, register_provider
from moonfolio.app.utils.datetime_utils import utcnow

DEFAULT_QUOTES: Dict[str, PXQuote] = {
    "bitcoin": PXQuote(price=Decimal("50000"), percent_change_24h=Decimal("2.5")),
    "ethereum": PXQuote(price=Decimal("3000"), percent_change_24h=Decimal("-1.2")),
    "usd-coin": PXQuote(price=Decimal("1"), percent_change_24h=Decimal("0")),
    "tether": PXQuote(price=Decimal("1"), percent_change_24h=Decimal("0.01")),
    "chainlink": PXQuote(price=Decimal("15"), percent_change_24h=Decimal("4")),
    }

NAMES = {"bitcoin": ("BTC", "Bitcoin"), "ethereum": ("ETH", "Ethereum"), "usd-coin": ("USDC", "USD Coin"),
         "tether": ("USDT", "Tether"), "chainlink": ("LINK", "Chainlink")}


@register_provider(PriceProviderRegistry)
class MockPriceProvider(PriceSourceProvider):
    """
    Mock provider - fixed quotes, call counting, optional failure switch.

    WARNING: FOR TESTING ONLY - DO NOT USE IN PRODUCTION
    """

    def __init__(self, quotes: Optional[Mapping[str, PXQuote]] = None, fail: bool = False, **_):
        self.quotes = dict(DEFAULT_QUOTES if quotes is None else quotes)
        self.fail = fail
        self.calls: List[List[str]] = []

    @property
    def provider_code(self) -> str:
        return "mockprov"

    @property
    def provider_name(self) -> str:
        return "Mock Price Provider (TESTING ONLY)"

    def _maybe_fail(self) -> None:
        if self.fail:
            raise UpstreamUnavailableError("Mock provider is switched to failure mode", error_code="FETCH_ERROR")

    async def get_quotes(self, ids: Sequence[str]) -> Dict[str, PXQuote]:
        self.calls.append(list(ids))
        self._maybe_fail()
        return {pid: self.quotes[pid] for pid in ids if pid in self.quotes}

    async def get_markets(self, limit: int) -> List[PXMarketCoin]:
        self._maybe_fail()
        coins = []
        for rank, (pid, quote) in enumerate(sorted(self.quotes.items(), key=lambda kv: -kv[1].price), start=1):
            symbol, name = NAMES.get(pid, (pid.upper(), pid.title()))
            coins.append(PXMarketCoin(id=pid, symbol=symbol, name=name, current_price=quote.price,
                                      price_change_percentage_24h=quote.percent_change_24h, market_cap_rank=rank))
        return coins[:limit]

    async def search(self, query: str) -> List[PXSearchResult]:
        self._maybe_fail()
        needle = query.lower()
        results = []
        for pid in sorted(self.quotes):
            symbol, name = NAMES.get(pid, (pid.upper(), pid.title()))
            if needle in pid or needle in symbol.lower() or needle in name.lower():
                results.append(PXSearchResult(id=pid, symbol=symbol, name=name))
        return results

    async def get_history(self, price_id: str, days: int) -> List[PXPricePoint]:
        self._maybe_fail()
        quote = self.quotes.get(price_id)
        if quote is None:
            raise NotFoundError(f"Unknown price id {price_id}", details={"price_id": price_id})
        now = utcnow()
        return [PXPricePoint(timestamp=now - timedelta(days=days - i), price=quote.price) for i in range(days + 1)]
