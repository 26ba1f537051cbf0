"""
CoinGecko market-data provider.

Endpoints used (v3):
- /simple/price?ids=...&vs_currencies=usd&include_24hr_change=true
- /coins/markets?vs_currency=usd&order=market_cap_desc&per_page=N
- /search?query=...
- /coins/{id}/market_chart?vs_currency=usd&days=N

An API key, when configured, is sent as ``x-cg-pro-api-key``.
"""
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import httpx

from moonfolio.app.config import get_settings
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.prices import PXMarketCoin, PXPricePoint, PXQuote, PXSearchResult
from moonfolio.app.services.errors import NotFoundError, UpstreamUnavailableError
from moonfolio.app.services.price_source import PriceSourceProvider
from moonfolio.app.services.provider_registry import PriceProviderRegistry, register_provider
from moonfolio.app.utils.datetime_utils import from_unix_millis
from moonfolio.app.utils.decimal_utils import to_decimal

logger = get_logger(__name__)

VS_CURRENCY = "usd"


def _dec(value) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


@register_provider(PriceProviderRegistry)
class CoinGeckoProvider(PriceSourceProvider):
    """CoinGecko public/pro API over httpx."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout_seconds: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.api_url = (api_url or settings.COINGECKO_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.COINGECKO_API_KEY
        self.timeout_seconds = timeout_seconds or settings.UPSTREAM_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def provider_code(self) -> str:
        return "coingecko"

    @property
    def provider_name(self) -> str:
        return "CoinGecko"

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key
        return headers

    async def _get(self, path: str, params: dict) -> object:
        url = f"{self.api_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("CoinGecko request failed", path=path, error=str(e))
            raise UpstreamUnavailableError(f"CoinGecko request failed: {e}", error_code="FETCH_ERROR",
                                           details={"path": path}) from e

        if response.status_code == 404:
            raise NotFoundError("CoinGecko has no such resource", details={"path": path})
        if response.status_code == 429:
            raise UpstreamUnavailableError("CoinGecko rate limit reached", error_code="RATE_LIMITED",
                                           details={"path": path})
        if response.status_code >= 400:
            raise UpstreamUnavailableError(f"CoinGecko returned HTTP {response.status_code}",
                                           error_code="FETCH_ERROR",
                                           details={"path": path, "status": response.status_code})
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Invalid CoinGecko response", error_code="INVALID_RESPONSE",
                                           details={"path": path}) from e

    async def get_quotes(self, ids: Sequence[str]) -> Dict[str, PXQuote]:
        if not ids:
            return {}
        payload = await self._get("/simple/price", {
            "ids": ",".join(ids),
            "vs_currencies": VS_CURRENCY,
            "include_24hr_change": "true",
            })
        quotes: Dict[str, PXQuote] = {}
        try:
            for price_id, data in payload.items():
                price = data.get(VS_CURRENCY)
                if price is None:
                    continue
                quotes[price_id] = PXQuote(
                    price=to_decimal(price),
                    percent_change_24h=_dec(data.get(f"{VS_CURRENCY}_24h_change")) or Decimal("0"),
                    )
        except (AttributeError, ValueError) as e:
            raise UpstreamUnavailableError("Invalid CoinGecko quote payload", error_code="INVALID_RESPONSE") from e
        return quotes

    async def get_markets(self, limit: int) -> List[PXMarketCoin]:
        payload = await self._get("/coins/markets", {
            "vs_currency": VS_CURRENCY,
            "order": "market_cap_desc",
            "per_page": max(1, min(limit, 250)),
            "page": 1,
            "price_change_percentage": "24h",
            })
        return [
            PXMarketCoin(
                id=coin["id"],
                symbol=coin["symbol"].upper(),
                name=coin["name"],
                image=coin.get("image"),
                current_price=_dec(coin.get("current_price")),
                price_change_percentage_24h=_dec(coin.get("price_change_percentage_24h")),
                market_cap_rank=coin.get("market_cap_rank"),
                )
            for coin in payload
            ]

    async def search(self, query: str) -> List[PXSearchResult]:
        payload = await self._get("/search", {"query": query})
        return [
            PXSearchResult(
                id=coin["id"],
                symbol=coin["symbol"].upper(),
                name=coin["name"],
                thumb=coin.get("thumb"),
                market_cap_rank=coin.get("market_cap_rank"),
                )
            for coin in payload.get("coins", [])
            ]

    async def get_history(self, price_id: str, days: int) -> List[PXPricePoint]:
        payload = await self._get(f"/coins/{price_id}/market_chart", {"vs_currency": VS_CURRENCY, "days": days})
        return [
            PXPricePoint(timestamp=from_unix_millis(ts), price=to_decimal(price))
            for ts, price in payload.get("prices", [])
            ]
