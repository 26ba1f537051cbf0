"""
Price source: provider plugins, the shared quote cache and the PriceService.

ARCHITECTURE
============

PLUGIN (PriceSourceProvider implementations) is responsible for:
- Talking to one market-data API (HTTP, auth headers, response parsing)
- Omitting unknown ids from quote maps instead of failing
- Translating transport failures into UpstreamUnavailableError

CORE (PriceService) is responsible for:
- Batching distinct ids (PRICE_BATCH_SIZE per upstream call)
- Enforcing a timeout on every upstream call
- Serving fresh quotes from the shared PriceCache
- Degrading to "quote absent" on read paths, failing hard in strict mode
- Refreshing the cache: refresh() is the cache's only writer and swaps in a
  complete new snapshot, so readers never see a half-updated cache

Providers auto-register via @register_provider(PriceProviderRegistry).
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.prices import PXMarketCoin, PXPricePoint, PXQuote, PXSearchResult
from moonfolio.app.services.errors import UpstreamUnavailableError
from moonfolio.app.utils.datetime_utils import utcnow

logger = get_logger(__name__)

T = TypeVar("T")

# Ids added by readers stay on the refresh watch list up to this many
MAX_WATCHED_IDS = 500


# ============================================================================
# ABSTRACT BASE CLASS
# ============================================================================

class PriceSourceProvider(ABC):
    """
    Abstract base class for market-data providers (plugins).

    Required implementations:
    - provider_code / provider_name
    - get_quotes(): current USD price + 24h percent change per id
    - get_markets(): top coins by market cap
    - search(): coin lookup by free text
    - get_history(): USD price points over the last N days
    """

    @property
    @abstractmethod
    def provider_code(self) -> str:
        """Stable lowercase identifier used in settings (PRICE_PROVIDER)."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def get_quotes(self, ids: Sequence[str]) -> Dict[str, PXQuote]:
        """
        Quotes for up to one batch of ids.

        Unknown ids are simply absent from the result.

        Raises:
            UpstreamUnavailableError: the provider could not be reached or answered garbage
        """
        pass

    @abstractmethod
    async def get_markets(self, limit: int) -> List[PXMarketCoin]:
        pass

    @abstractmethod
    async def search(self, query: str) -> List[PXSearchResult]:
        pass

    @abstractmethod
    async def get_history(self, price_id: str, days: int) -> List[PXPricePoint]:
        """
        Raises:
            NotFoundError: unknown id
            UpstreamUnavailableError: provider failure
        """
        pass


# ============================================================================
# SHARED CACHE
# ============================================================================

@dataclass(frozen=True)
class PriceSnapshot:
    """
    Immutable set of quotes published together.

    ``quoted_at`` keeps the fetch time of every quote: a quote carried over
    from an earlier refresh keeps its original age.
    """
    quotes: Mapping[str, PXQuote]
    fetched_at: Optional[datetime] = None
    quoted_at: Mapping[str, datetime] = field(default_factory=dict)

    def fresh_quotes(self, ids: Iterable[str], max_age: timedelta,
                     now: Optional[datetime] = None) -> Dict[str, PXQuote]:
        """Quotes of ``ids`` fetched no longer than ``max_age`` ago."""
        now = now or utcnow()
        fresh = {}
        for price_id in ids:
            quoted_at = self.quoted_at.get(price_id)
            if price_id in self.quotes and quoted_at is not None and now - quoted_at <= max_age:
                fresh[price_id] = self.quotes[price_id]
        return fresh


class PriceCache:
    """
    Single-writer / many-reader quote cache.

    The current snapshot is replaced as a whole; readers holding the old
    one keep a consistent view.
    """

    def __init__(self):
        self._snapshot = PriceSnapshot(quotes=MappingProxyType({}))

    @property
    def snapshot(self) -> PriceSnapshot:
        return self._snapshot

    def swap(self, quotes: Mapping[str, PXQuote], quoted_at: Mapping[str, datetime],
             fetched_at: datetime) -> PriceSnapshot:
        self._snapshot = PriceSnapshot(
            quotes=MappingProxyType(dict(quotes)),
            fetched_at=fetched_at,
            quoted_at=MappingProxyType(dict(quoted_at)),
            )
        return self._snapshot


def batched(items: Iterable[str], size: int) -> List[List[str]]:
    """Split distinct items into lists of at most ``size`` (order preserved)."""
    unique = list(dict.fromkeys(items))
    return [unique[i:i + size] for i in range(0, len(unique), size)]


# ============================================================================
# SERVICE
# ============================================================================

class PriceService:
    """Batching, caching and timeout policy in front of one PriceSourceProvider."""

    def __init__(
        self,
        provider: PriceSourceProvider,
        batch_size: int = 10,
        timeout_seconds: float = 10.0,
        max_age_seconds: float = 120.0,
        tracked_ids: Iterable[str] = (),
        ):
        self.provider = provider
        self.batch_size = max(1, batch_size)
        self.timeout_seconds = timeout_seconds
        self.max_age = timedelta(seconds=max_age_seconds)
        self.cache = PriceCache()
        self._tracked = list(dict.fromkeys(tracked_ids))
        self._watched: Dict[str, None] = {}

    @property
    def watched_ids(self) -> List[str]:
        """Ids the refresh task fetches: configured ones first, then reader interest."""
        return list(dict.fromkeys([*self._tracked, *self._watched]))

    def _watch(self, ids: Iterable[str]) -> None:
        for price_id in ids:
            if price_id in self._watched or len(self._watched) >= MAX_WATCHED_IDS:
                continue
            self._watched[price_id] = None

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Price source timed out during {operation}",
                error_code="TIMEOUT",
                details={"provider": self.provider.provider_code, "timeout_seconds": self.timeout_seconds},
                ) from e

    # ===== READ PATH =====

    async def get_quotes(self, ids: Iterable[str], strict: bool = False) -> Dict[str, PXQuote]:
        """
        Quotes for ``ids``: fresh cached ones, the rest fetched in batches.

        Args:
            ids: price ids (duplicates ignored)
            strict: raise on upstream failure instead of leaving quotes out

        Returns:
            Map containing only the ids a quote exists for
        """
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return {}
        self._watch(wanted)

        result = self.cache.snapshot.fresh_quotes(wanted, self.max_age)

        missing = [pid for pid in wanted if pid not in result]
        for batch in batched(missing, self.batch_size):
            try:
                fetched = await self._call(self.provider.get_quotes(batch), "get_quotes")
            except UpstreamUnavailableError as e:
                if strict:
                    raise
                logger.warning("Quotes unavailable, serving without them", ids=batch, error=e.message)
                continue
            result.update({pid: quote for pid, quote in fetched.items() if pid in batch})
        return result

    async def get_quote(self, price_id: str, strict: bool = False) -> Optional[PXQuote]:
        return (await self.get_quotes([price_id], strict=strict)).get(price_id)

    # ===== REFRESH (cache writer) =====

    async def refresh(self) -> PriceSnapshot:
        """
        Fetch every watched id and swap the cache.

        Batches that fail keep their previous quotes with their original fetch
        time, so readers refetch them once they are older than max_age. The
        swap is still atomic.
        """
        previous = self.cache.snapshot
        quotes: Dict[str, PXQuote] = {}
        quoted_at: Dict[str, datetime] = {}
        failures = 0
        for batch in batched(self.watched_ids, self.batch_size):
            try:
                fetched = await self._call(self.provider.get_quotes(batch), "refresh")
            except UpstreamUnavailableError as e:
                failures += 1
                logger.warning("Price refresh batch failed, keeping previous quotes", ids=batch, error=e.message)
                for pid in batch:
                    if pid in previous.quotes and pid in previous.quoted_at:
                        quotes[pid] = previous.quotes[pid]
                        quoted_at[pid] = previous.quoted_at[pid]
                continue
            now = utcnow()
            quotes.update(fetched)
            quoted_at.update({pid: now for pid in fetched})

        snapshot = self.cache.swap(quotes, quoted_at, utcnow())
        logger.debug("Price cache refreshed", quotes=len(quotes), failed_batches=failures)
        return snapshot

    # ===== MARKET DATA PASSTHROUGH =====

    async def get_markets(self, limit: int = 20) -> List[PXMarketCoin]:
        return await self._call(self.provider.get_markets(limit), "get_markets")

    async def search(self, query: str) -> List[PXSearchResult]:
        return await self._call(self.provider.search(query), "search")

    async def get_history(self, price_id: str, days: int) -> List[PXPricePoint]:
        return await self._call(self.provider.get_history(price_id, days), "get_history")
