"""Balance scan orchestration with dynamic, balance-dependent cache TTLs."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal

from crypto_balance_tracker.cache.namespace import OwnerCacheNamespace
from crypto_balance_tracker.cache.ttl import DEFAULT_SWEEP_INTERVAL
from crypto_balance_tracker.core.exceptions import CacheConsistencyError, UpstreamFetchError
from crypto_balance_tracker.core.models import (
    Balance,
    BalanceReading,
    ChainFamily,
    Network,
    NetworkBalance,
    OwnerCacheStats,
    PriceRequest,
    RefreshStrategy,
    ScanProgress,
    ScanResult,
    ScanStatus,
    Token,
)
from crypto_balance_tracker.core.registry import NetworkRegistry, TokenRegistry
from crypto_balance_tracker.pricing.service import PriceCacheService, calculate_usd_value
from crypto_balance_tracker.rpc.base import ChainReader
from crypto_balance_tracker.rpc.retry import call_upstream

logger = logging.getLogger(__name__)

NON_ZERO_BALANCE_TTL = 10 * 60
ZERO_BALANCE_TTL = 60 * 60

ProgressCallback = Callable[[ScanProgress], None]


class BalanceScanner:
    """
    Scans address balances across networks, serving fresh results from cache.

    Two per-address caches are kept side by side: the NetworkBalance payloads
    and the boolean balance state of each network. Both are written with the
    same TTL, and on read the cached payload is only considered fresh while
    its age is within the TTL implied by the recorded balance state.

    Parameters
    ----------
    chain_reader : ChainReader
        Source of raw native and token balances
    price_service : PriceCacheService
        Shared USD price cache
    networks : NetworkRegistry
        Known networks
    tokens : TokenRegistry
        Tokens scanned on each network
    non_zero_balance_ttl : float
        TTL in seconds for networks holding any balance
    zero_balance_ttl : float
        TTL in seconds for empty networks
    fetch_timeout : float | None
        Timeout for each upstream call. None disables it.
    sweep_interval : float | None
        Interval of the per-address cache sweeps. None disables sweep tasks.
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        chain_reader: ChainReader,
        price_service: PriceCacheService,
        networks: NetworkRegistry,
        tokens: TokenRegistry,
        non_zero_balance_ttl: float = NON_ZERO_BALANCE_TTL,
        zero_balance_ttl: float = ZERO_BALANCE_TTL,
        fetch_timeout: float | None = 30.0,
        sweep_interval: float | None = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.chain_reader = chain_reader
        self.price_service = price_service
        self.networks = networks
        self.tokens = tokens
        self.non_zero_balance_ttl = non_zero_balance_ttl
        self.zero_balance_ttl = zero_balance_ttl
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self.balance_cache: OwnerCacheNamespace[NetworkBalance] = OwnerCacheNamespace(
            default_ttl=non_zero_balance_ttl, sweep_interval=sweep_interval, clock=clock
        )
        self.state_cache: OwnerCacheNamespace[bool] = OwnerCacheNamespace(
            default_ttl=non_zero_balance_ttl, sweep_interval=sweep_interval, clock=clock
        )

    def determine_ttl(self, has_balance: bool) -> float:
        """
        Cache TTL for a network given whether it holds any balance.

        Empty networks rarely change, so they are cached longer.

        Parameters
        ----------
        has_balance : bool
            Whether the network holds a non-zero native or token balance

        Returns
        -------
        float
            TTL in seconds

        """
        return self.non_zero_balance_ttl if has_balance else self.zero_balance_ttl

    def recorded_balance_state(self, address: str, network_id: str) -> bool | None:
        """Balance state recorded by the last successful scan, or None."""
        entry = self.state_cache.get_entry(address, network_id)
        return None if entry is None else entry.value

    def get_cached_balance(self, address: str, network_id: str) -> NetworkBalance | None:
        """
        Get the cached NetworkBalance if it is still fresh.

        Freshness is re-derived from the recorded balance state instead of the
        TTL stored with the entry, so a TTL policy change applies to entries
        written before it.

        Parameters
        ----------
        address : str
            Wallet address
        network_id : str
            Network identifier

        Returns
        -------
        NetworkBalance | None
            Cached payload, or None on a miss or when stale

        Raises
        ------
        CacheConsistencyError
            If the payload and the recorded balance state disagree

        """
        entry = self.balance_cache.get_entry(address, network_id)
        if entry is None:
            self.balance_cache.record_lookup(address, hit=False)
            return None

        state = self.recorded_balance_state(address, network_id)
        if state is not None and state != entry.value.has_non_zero_balance:
            msg = f"Balance state of {address} on {network_id} disagrees with cached balances"
            raise CacheConsistencyError(msg)

        fresh = entry.age(self._clock()) <= self.determine_ttl(bool(state))
        self.balance_cache.record_lookup(address, hit=fresh)
        return entry.value if fresh else None

    def time_until_expiry(self, address: str, network_id: str) -> float | None:
        """
        Seconds until the cached entry for (address, network) goes stale.

        Returns
        -------
        float | None
            Remaining lifetime under the recorded balance state, or None
            when nothing is cached

        """
        entry = self.balance_cache.get_entry(address, network_id)
        if entry is None:
            return None
        state = self.recorded_balance_state(address, network_id)
        return self.determine_ttl(bool(state)) - entry.age(self._clock())

    async def scan_network(self, address: str, network: Network, *, force_refresh: bool = True) -> NetworkBalance:
        """
        Scan one network for an address and cache the result.

        Token failures drop that token; a native balance failure fails the
        whole network and nothing is cached.

        Parameters
        ----------
        address : str
            Wallet address
        network : Network
            Network to scan
        force_refresh : bool
            If False, a fresh cached result is returned as is

        Returns
        -------
        NetworkBalance
            Balances of the address on the network

        Raises
        ------
        UpstreamFetchError
            If the native balance cannot be fetched

        """
        if not force_refresh:
            cached = self.get_cached_balance(address, network.id)
            if cached is not None:
                return cached

        fetched_at = self._clock()
        native = await self._call_upstream(
            self.chain_reader.fetch_native_balance(address, network),
            f"native balance of {address} on {network.id}",
        )

        tokens = self.tokens.tokens_for(network.id)
        readings = await asyncio.gather(*(self._fetch_token(address, network, token) for token in tokens))
        # (token, reading, price key) for every token actually held
        held_tokens = [
            (token, reading, self.price_service.price_key(token.price_id, token.symbol))
            for token, reading in zip(tokens, readings, strict=True)
            if reading is not None and reading.raw_amount > 0
        ]

        requests = [PriceRequest(price_id=key, symbol=token.symbol) for token, _, key in held_tokens if key]
        if native.raw_amount > 0:
            requests.append(PriceRequest(price_id=network.native_token.price_id, symbol=network.native_token.symbol))
        prices = (await self.price_service.get_prices(requests)).prices if requests else {}

        native_balance = None
        if native.raw_amount > 0:
            native_token = network.native_token
            native_balance = Balance(
                symbol=native_token.symbol,
                raw_amount=str(native.raw_amount),
                formatted_amount=native.formatted_amount,
                decimals=native_token.decimals,
                usd_value=calculate_usd_value(
                    native.raw_amount, native_token.decimals, prices.get(native_token.price_id)
                ),
                is_native=True,
            )

        token_balances = [
            Balance(
                symbol=token.symbol,
                raw_amount=str(reading.raw_amount),
                formatted_amount=reading.formatted_amount,
                decimals=token.decimals,
                usd_value=calculate_usd_value(reading.raw_amount, token.decimals, prices.get(key) if key else None),
                contract_address=token.address,
            )
            for token, reading, key in held_tokens
        ]

        all_balances = [native_balance, *token_balances] if native_balance else token_balances
        total = sum((b.usd_value for b in all_balances if b.usd_value is not None), Decimal("0"))
        has_balance = native_balance is not None or bool(token_balances)

        result = NetworkBalance(
            network_id=network.id,
            network_name=network.name,
            native_balance=native_balance,
            token_balances=token_balances,
            total_usd_value=total,
            has_non_zero_balance=has_balance,
            fetched_at=fetched_at,
        )

        ttl = self.determine_ttl(has_balance)
        self.balance_cache.set(address, network.id, result, ttl)
        self.state_cache.set(address, network.id, has_balance, ttl)
        logger.debug("Cached %s on %s for %ss (has balance: %s)", address, network.id, ttl, has_balance)
        return result

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
        Scan an address on several networks concurrently.

        A failing network is reported in the result and never aborts the
        other networks.

        Parameters
        ----------
        address : str
            Wallet address
        force_refresh : bool
            Ignore cached results
        networks_to_scan : list[str] | None
            Network ids to scan. None or an empty list means every network
            of the family.
        chain_family : ChainFamily
            Family used to pick the default networks
        on_progress : ProgressCallback | None
            Called with a ScanProgress as each network starts and finishes

        Returns
        -------
        ScanResult
            Balances in request order plus cache provenance

        Raises
        ------
        NotFoundError
            If networks_to_scan references an unknown network

        """
        if networks_to_scan:
            networks = [self.networks.get(network_id) for network_id in networks_to_scan]
        else:
            networks = self.networks.for_family(chain_family)

        outcomes = await asyncio.gather(
            *(self._scan_or_error(address, network, force_refresh, on_progress) for network in networks)
        )

        result = ScanResult(address=address)
        for network, (balance, from_cache) in zip(networks, outcomes, strict=True):
            result.balances.append(balance)
            if balance.error is not None:
                result.errored_network_ids.append(network.id)
                continue

            result.total_usd_value += balance.total_usd_value
            if from_cache:
                result.cached_network_ids.append(network.id)
            else:
                result.fetched_network_ids.append(network.id)
            result.refresh_strategy.append(
                RefreshStrategy(
                    network_id=network.id,
                    had_balance=balance.has_non_zero_balance,
                    ttl=self.determine_ttl(balance.has_non_zero_balance),
                )
            )

        logger.info(
            "Scanned %s: %d cached, %d fetched, %d errored",
            address,
            len(result.cached_network_ids),
            len(result.fetched_network_ids),
            len(result.errored_network_ids),
        )
        return result

    async def _scan_or_error(
        self,
        address: str,
        network: Network,
        force_refresh: bool,
        on_progress: ProgressCallback | None,
    ) -> tuple[NetworkBalance, bool]:
        if not force_refresh:
            try:
                cached = self.get_cached_balance(address, network.id)
            except CacheConsistencyError as e:
                # Drop the contradictory pair; the rescan below rewrites both caches
                logger.error("Discarding cached balances: %s", e)
                self.balance_cache.delete(address, network.id)
                self.state_cache.delete(address, network.id)
                cached = None
            if cached is not None:
                self._notify(on_progress, network, ScanStatus.COMPLETED)
                return cached, True

        self._notify(on_progress, network, ScanStatus.SCANNING)
        try:
            balance = await self.scan_network(address, network, force_refresh=True)
        except UpstreamFetchError as e:
            logger.warning("Scan of %s on %s failed: %s", address, network.id, e)
            error = str(e)
        except Exception as e:
            logger.exception("Unexpected error scanning %s on %s", address, network.id)
            error = str(e) or type(e).__name__
        else:
            self._notify(on_progress, network, ScanStatus.COMPLETED)
            return balance, False

        self._notify(on_progress, network, ScanStatus.ERROR, error)
        errored = NetworkBalance(
            network_id=network.id,
            network_name=network.name,
            fetched_at=self._clock(),
            error=error,
        )
        return errored, False

    @staticmethod
    def _notify(
        on_progress: ProgressCallback | None,
        network: Network,
        status: ScanStatus,
        error: str | None = None,
    ) -> None:
        if on_progress is not None:
            on_progress(ScanProgress(network_id=network.id, network_name=network.name, status=status, error=error))

    async def _fetch_token(self, address: str, network: Network, token: Token) -> BalanceReading | None:
        try:
            return await self._call_upstream(
                self.chain_reader.fetch_token_balance(address, network, token),
                f"{token.symbol} balance of {address} on {network.id}",
            )
        except UpstreamFetchError as e:
            logger.warning("Skipping %s on %s: %s", token.symbol, network.id, e)
            return None

    async def _call_upstream(self, call: Awaitable[BalanceReading], description: str) -> BalanceReading:
        return await call_upstream(call, self.fetch_timeout, description)

    def clear_owner(self, address: str) -> None:
        """Drop every cached result of an address."""
        self.balance_cache.clear_owner(address)
        self.state_cache.clear_owner(address)

    def clear_all(self) -> None:
        """Drop every cached balance result."""
        self.balance_cache.clear_all()
        self.state_cache.clear_all()

    def balance_stats(self) -> list[OwnerCacheStats]:
        return self.balance_cache.stats_for_all_owners()

    def state_stats(self) -> list[OwnerCacheStats]:
        return self.state_cache.stats_for_all_owners()

    async def aclose(self) -> None:
        """Release both caches and their sweep tasks."""
        await self.balance_cache.aclose()
        await self.state_cache.aclose()
