"""Service facade wiring caches, readers, scanner and background refresh."""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any

from crypto_balance_tracker.config import TrackerSettings
from crypto_balance_tracker.core.aggregator import aggregate_portfolios
from crypto_balance_tracker.core.coordinator import AddressProgressCallback, PortfolioCoordinator
from crypto_balance_tracker.core.exceptions import ValidationError
from crypto_balance_tracker.core.models import (
    AddressPortfolio,
    BatchPriceResult,
    ChainFamily,
    PortfolioSummary,
    PriceRequest,
    RefreshReport,
    ScanResult,
    WatchedAddress,
)
from crypto_balance_tracker.core.refresh import BackgroundRefresher
from crypto_balance_tracker.core.registry import NetworkRegistry, TokenRegistry, validate_address
from crypto_balance_tracker.core.scanner import BalanceScanner, ProgressCallback
from crypto_balance_tracker.pricing.base import PriceReader
from crypto_balance_tracker.pricing.coingecko import CoinGeckoPriceReader
from crypto_balance_tracker.pricing.service import PriceCacheService
from crypto_balance_tracker.rpc.base import ChainReader
from crypto_balance_tracker.rpc.provider import JsonRpcChainReader

logger = logging.getLogger(__name__)


class CacheType(StrEnum):
    """Cache selectable by ``clear_cache``."""

    PRICES = "prices"
    BALANCES = "balances"


class BalanceTrackerService:
    """
    Entry point used by the CLI and other outer layers.

    Owns the shared price cache, the per-address balance caches and the
    background refresher. Use ``from_settings()`` to build it with the
    default HTTP readers, or inject readers directly in tests.

    Parameters
    ----------
    chain_reader : ChainReader
        Source of raw balances
    price_reader : PriceReader
        Source of USD prices
    settings : TrackerSettings | None
        Runtime settings. Defaults are used if None.
    networks : NetworkRegistry | None
        Known networks. Loaded from the configured YAML file if None.
    tokens : TokenRegistry | None
        Known tokens. Loaded from the configured YAML file if None.
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        chain_reader: ChainReader,
        price_reader: PriceReader,
        settings: TrackerSettings | None = None,
        networks: NetworkRegistry | None = None,
        tokens: TokenRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self.chain_reader = chain_reader
        self.price_reader = price_reader
        self.networks = networks if networks is not None else NetworkRegistry.from_config(self.settings.networks_file)
        self.tokens = tokens if tokens is not None else TokenRegistry.from_config(self.settings.networks_file)

        self.prices = PriceCacheService(
            price_reader,
            ttl=self.settings.price_ttl,
            stablecoin_symbols=self.settings.stablecoin_symbols,
            wrapped_tokens=self.settings.wrapped_tokens,
            fetch_timeout=self.settings.fetch_timeout,
            clock=clock,
        )
        self.scanner = BalanceScanner(
            chain_reader,
            self.prices,
            self.networks,
            self.tokens,
            non_zero_balance_ttl=self.settings.non_zero_balance_ttl,
            zero_balance_ttl=self.settings.zero_balance_ttl,
            fetch_timeout=self.settings.fetch_timeout,
            sweep_interval=self.settings.sweep_interval,
            clock=clock,
        )
        self.refresher = BackgroundRefresher(
            self.scanner,
            interval=self.settings.refresh_interval,
            window=self.settings.refresh_window,
            initial_delay=self.settings.initial_refresh_delay,
        )
        self.coordinator = PortfolioCoordinator(
            self.scanner,
            max_concurrency=self.settings.max_concurrent_addresses,
            on_address_scanned=lambda watched: self.refresher.register(watched.address, watched.chain_family),
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: TrackerSettings | None = None) -> "BalanceTrackerService":
        """
        Build a service backed by JSON-RPC and CoinGecko readers.

        Parameters
        ----------
        settings : TrackerSettings | None
            Runtime settings. Read from the environment if None.

        Returns
        -------
        BalanceTrackerService
            Service owning both HTTP clients

        """
        settings = settings or TrackerSettings()
        chain_reader = JsonRpcChainReader(retry_config=settings.rpc_retry_config(), timeout=settings.request_timeout)
        price_reader = CoinGeckoPriceReader(
            base_url=settings.coingecko_base_url,
            api_key=settings.coingecko_api_key,
            timeout=settings.request_timeout,
        )
        return cls(chain_reader, price_reader, settings=settings)

    async def scan_address(
        self,
        address: str,
        *,
        force_refresh: bool = False,
        networks_to_scan: list[str] | None = None,
        chain_family: ChainFamily = ChainFamily.EVM,
        on_progress: ProgressCallback | None = None,
    ) -> ScanResult:
        """
        Scan one address and mark it active for background refresh.

        An empty or missing networks_to_scan scans every network of the family.

        Raises
        ------
        ValidationError
            If the address is malformed
        NotFoundError
            If networks_to_scan references an unknown network

        """
        validate_address(address, chain_family)
        self.refresher.register(address, chain_family)
        return await self.scanner.scan_address(
            address,
            force_refresh=force_refresh,
            networks_to_scan=networks_to_scan,
            chain_family=chain_family,
            on_progress=on_progress,
        )

    async def get_prices(self, requests: Iterable[PriceRequest]) -> BatchPriceResult:
        return await self.prices.get_prices(requests)

    async def scan_portfolios(
        self,
        addresses: list[WatchedAddress],
        *,
        force_refresh: bool = False,
        networks_to_scan: list[str] | None = None,
        on_progress: AddressProgressCallback | None = None,
    ) -> list[AddressPortfolio]:
        """Scan every watched address; failures are reported per portfolio."""
        return await self.coordinator.scan_all(
            addresses,
            force_refresh=force_refresh,
            networks_to_scan=networks_to_scan,
            on_progress=on_progress,
        )

    @staticmethod
    def summarize(portfolios: list[AddressPortfolio]) -> PortfolioSummary:
        return aggregate_portfolios(portfolios)

    def get_cache_stats(self) -> dict[str, Any]:
        """
        Statistics of every cache.

        Returns
        -------
        dict[str, Any]
            ``prices`` (CacheStats), ``balances`` and ``balance_states``
            (lists of OwnerCacheStats)

        """
        return {
            "prices": self.prices.stats(),
            "balances": self.scanner.balance_stats(),
            "balance_states": self.scanner.state_stats(),
        }

    def clear_cache(self, cache_type: CacheType | str, address: str | None = None) -> None:
        """
        Clear the price cache, or the balance cache of one or all addresses.

        Parameters
        ----------
        cache_type : CacheType | str
            ``"prices"`` or ``"balances"``
        address : str | None
            Address whose balances are cleared. All addresses if None.

        Raises
        ------
        ValidationError
            If cache_type is unknown

        """
        try:
            cache_type = CacheType(cache_type)
        except ValueError as e:
            msg = f"Unknown cache type {cache_type!r}; expected one of {[t.value for t in CacheType]}"
            raise ValidationError(msg) from e

        if cache_type is CacheType.PRICES:
            self.prices.clear()
        elif address is not None:
            self.scanner.clear_owner(address)
        else:
            self.scanner.clear_all()
        logger.info("Cleared %s cache%s", cache_type.value, f" for {address}" if address else "")

    def remove_address(self, address: str) -> None:
        """Stop tracking an address: no more background refresh, caches released."""
        self.refresher.unregister(address)
        self.scanner.clear_owner(address)

    def refresh_status(self) -> dict[str, Any]:
        return {
            "is_running": self.refresher.is_running,
            "active_address_count": len(self.refresher.active_addresses),
            "active_addresses": self.refresher.active_addresses,
            "refresh_interval": self.refresher.interval,
            "cache_stats": self.get_cache_stats(),
        }

    async def trigger_refresh(self) -> RefreshReport:
        """Run one background refresh pass now."""
        return await self.refresher.refresh_once()

    def start(self) -> None:
        """
        Start background refresh and price sweeping.

        Raises
        ------
        RuntimeError
            If called outside a running event loop

        """
        self.refresher.start()
        self.prices.start_sweeper()

    async def close(self) -> None:
        """Stop background tasks, release caches and close readers that can be closed."""
        await self.refresher.stop()
        task = self.prices.stop_sweeper()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        await self.scanner.aclose()
        for reader in (self.chain_reader, self.price_reader):
            aclose = getattr(reader, "aclose", None)
            if aclose is not None:
                await aclose()

    async def __aenter__(self) -> "BalanceTrackerService":
        """Async context manager entry; starts background tasks."""
        self.start()
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.close()
