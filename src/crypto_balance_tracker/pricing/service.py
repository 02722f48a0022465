"""Global USD price cache shared by every scan."""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from decimal import Decimal

from crypto_balance_tracker.cache.ttl import TTLCache
from crypto_balance_tracker.config import DEFAULT_STABLECOINS, DEFAULT_WRAPPED_TOKENS
from crypto_balance_tracker.core.exceptions import UpstreamFetchError
from crypto_balance_tracker.core.models import BatchPriceResult, CacheStats, PriceRequest
from crypto_balance_tracker.pricing.base import PriceReader
from crypto_balance_tracker.rpc.retry import call_upstream

logger = logging.getLogger(__name__)

PRICE_CACHE_TTL = 10 * 60
STABLECOIN_PRICE = Decimal("1")


def calculate_usd_value(raw_amount: int | str, decimals: int, price: Decimal | None) -> Decimal | None:
    """
    Convert a base-unit amount to USD.

    Parameters
    ----------
    raw_amount : int | str
        Amount in base units
    decimals : int
        Token decimals
    price : Decimal | None
        USD price per whole token

    Returns
    -------
    Decimal | None
        ``raw_amount / 10**decimals * price``, or None when the price is unknown

    """
    if price is None:
        return None
    return Decimal(raw_amount) / (Decimal(10) ** decimals) * price


class PriceCacheService:
    """
    Cross-user cache of USD spot prices keyed by price id.

    Stablecoins are pegged at 1 USD without any lookup, and wrapped tokens are
    priced through their underlying asset's price id.

    Parameters
    ----------
    reader : PriceReader
        Upstream price source
    ttl : float
        Time-to-live of cached prices in seconds
    stablecoin_symbols : Iterable[str] | None
        Symbols pegged at 1 USD (case-insensitive)
    wrapped_tokens : dict[str, str] | None
        Wrapped token symbol to underlying price id
    fetch_timeout : float | None
        Timeout for each upstream call. None disables it.
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        reader: PriceReader,
        ttl: float = PRICE_CACHE_TTL,
        stablecoin_symbols: Iterable[str] | None = None,
        wrapped_tokens: dict[str, str] | None = None,
        fetch_timeout: float | None = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader = reader
        self.ttl = ttl
        self.fetch_timeout = fetch_timeout
        self.stablecoin_symbols = {s.upper() for s in (stablecoin_symbols or DEFAULT_STABLECOINS)}
        self.wrapped_tokens = {k.upper(): v for k, v in (wrapped_tokens or DEFAULT_WRAPPED_TOKENS).items()}
        self._cache: TTLCache[Decimal] = TTLCache(default_ttl=ttl, clock=clock)

    def is_stablecoin(self, symbol: str) -> bool:
        return symbol.upper() in self.stablecoin_symbols

    def resolve_lookup_id(self, price_id: str, symbol: str) -> str:
        """
        Cache/upstream key for a request: the underlying id for wrapped tokens.

        Parameters
        ----------
        price_id : str
            Requested price id
        symbol : str
            Asset symbol

        Returns
        -------
        str
            Lookup id

        """
        return self.wrapped_tokens.get(symbol.upper(), price_id)

    def price_key(self, price_id: str | None, symbol: str) -> str | None:
        """
        Id to request a price under, for assets that may lack a price id.

        Stablecoins without one are keyed by their lower-cased symbol and
        wrapped tokens by their underlying id. Any other asset without a price
        id cannot be priced.

        Parameters
        ----------
        price_id : str | None
            Configured price id, if any
        symbol : str
            Asset symbol

        Returns
        -------
        str | None
            Request id, or None if the asset cannot be priced

        """
        if price_id:
            return price_id
        if self.is_stablecoin(symbol):
            return symbol.lower()
        return self.wrapped_tokens.get(symbol.upper())

    async def get_price(self, price_id: str, symbol: str) -> Decimal | None:
        """
        Get the USD price of one asset.

        Parameters
        ----------
        price_id : str
            Price identifier
        symbol : str
            Asset symbol, used for the stablecoin and wrapped-token rules

        Returns
        -------
        Decimal | None
            USD price, or None if unavailable

        """
        if self.is_stablecoin(symbol):
            return STABLECOIN_PRICE

        lookup_id = self.resolve_lookup_id(price_id, symbol)
        if not lookup_id:
            return None

        cached = self._cache.get(lookup_id)
        if cached is not None:
            return cached

        try:
            price = await call_upstream(
                self.reader.fetch_price(lookup_id), self.fetch_timeout, f"price lookup for {lookup_id}"
            )
        except UpstreamFetchError as e:
            logger.warning("Price fetch for %s failed: %s", lookup_id, e)
            return None

        if price is not None:
            self._cache.set(lookup_id, price)
        return price

    async def get_prices(self, requests: Iterable[PriceRequest]) -> BatchPriceResult:
        """
        Get USD prices for several assets with a single upstream batch call.

        Cache misses are deduplicated by lookup id, so e.g. WETH and ETH share
        one fetch of 'ethereum'.

        Parameters
        ----------
        requests : Iterable[PriceRequest]
            Assets to price

        Returns
        -------
        BatchPriceResult
            Prices keyed by requested price id plus provenance lists

        """
        result = BatchPriceResult()
        to_fetch: dict[str, list[str]] = {}
        seen: set[str] = set()

        for request in requests:
            if request.price_id in seen:
                continue
            seen.add(request.price_id)

            if self.is_stablecoin(request.symbol):
                result.prices[request.price_id] = STABLECOIN_PRICE
                result.cached_ids.append(request.price_id)
                continue

            lookup_id = self.resolve_lookup_id(request.price_id, request.symbol)
            if not lookup_id:
                result.errored_ids.append(request.price_id)
                continue

            cached = self._cache.get(lookup_id)
            if cached is not None:
                result.prices[request.price_id] = cached
                result.cached_ids.append(request.price_id)
            else:
                to_fetch.setdefault(lookup_id, []).append(request.price_id)

        if not to_fetch:
            return result

        fetched = await self._fetch_batch(list(to_fetch))
        for lookup_id, requested_ids in to_fetch.items():
            price = fetched.get(lookup_id)
            if price is None:
                result.errored_ids.extend(requested_ids)
                continue
            self._cache.set(lookup_id, price)
            for requested_id in requested_ids:
                result.prices[requested_id] = price
                result.fetched_ids.append(requested_id)

        return result

    async def refresh(self, price_ids: Iterable[str]) -> dict[str, Decimal]:
        """
        Force-fetch lookup ids and overwrite the cache regardless of freshness.

        Parameters
        ----------
        price_ids : Iterable[str]
            Lookup ids (cache keys) to refresh

        Returns
        -------
        dict[str, Decimal]
            Prices that were fetched and cached

        """
        ids = list(dict.fromkeys(i for i in price_ids if i))
        if not ids:
            return {}

        fetched = await self._fetch_batch(ids)
        for price_id, price in fetched.items():
            self._cache.set(price_id, price)
        return fetched

    def expiring_ids(self, window: float) -> list[str]:
        """
        Cached ids whose remaining lifetime is positive but below window.

        Parameters
        ----------
        window : float
            Refresh window in seconds

        Returns
        -------
        list[str]
            Lookup ids about to expire

        """
        return [entry.key for entry in self._cache.stats().entries if 0 < entry.ttl - entry.age < window]

    def clear(self) -> None:
        """Clear cached prices and counters."""
        self._cache.clear()

    def stats(self) -> CacheStats:
        return self._cache.stats()

    def sweep(self) -> int:
        return self._cache.sweep()

    def start_sweeper(self) -> None:
        self._cache.start_sweeper()

    def stop_sweeper(self) -> asyncio.Task | None:
        return self._cache.stop_sweeper()

    async def _fetch_batch(self, lookup_ids: list[str]) -> dict[str, Decimal]:
        try:
            return await call_upstream(
                self.reader.fetch_prices_batch(lookup_ids), self.fetch_timeout, "batch price lookup"
            )
        except UpstreamFetchError as e:
            logger.warning("Batch price fetch for %d ids failed: %s", len(lookup_ids), e)
            return {}

