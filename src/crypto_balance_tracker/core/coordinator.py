"""Scanning of several watched addresses with bounded concurrency."""

import asyncio
import logging
import time
from collections.abc import Callable
from functools import partial

from crypto_balance_tracker.core.exceptions import TrackerError
from crypto_balance_tracker.core.models import AddressPortfolio, ScanProgress, WatchedAddress
from crypto_balance_tracker.core.registry import validate_address
from crypto_balance_tracker.core.scanner import BalanceScanner

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4

AddressProgressCallback = Callable[[WatchedAddress, ScanProgress], None]


class PortfolioCoordinator:
    """
    Builds an AddressPortfolio for every watched address.

    Each address is scanned under its own cache owner. A failing address is
    returned as a portfolio carrying an ``error`` and never stops the others.

    Parameters
    ----------
    scanner : BalanceScanner
        Scanner used for every address
    max_concurrency : int
        Maximum number of addresses scanned at once
    on_address_scanned : Callable[[WatchedAddress], None] | None
        Called with each valid address before it is scanned, e.g. to mark it active
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        scanner: BalanceScanner,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        on_address_scanned: Callable[[WatchedAddress], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        self.scanner = scanner
        self.max_concurrency = max_concurrency
        self.on_address_scanned = on_address_scanned
        self._clock = clock

    async def scan_all(
        self,
        addresses: list[WatchedAddress],
        *,
        force_refresh: bool = False,
        networks_to_scan: list[str] | None = None,
        on_progress: AddressProgressCallback | None = None,
    ) -> list[AddressPortfolio]:
        """
        Scan every address and return their portfolios in input order.

        Parameters
        ----------
        addresses : list[WatchedAddress]
            Addresses to scan
        force_refresh : bool
            Ignore cached results
        networks_to_scan : list[str] | None
            Network ids to scan for each address. None or an empty list means
            every network of the address's chain family.
        on_progress : AddressProgressCallback | None
            Called with the address and a ScanProgress per network update

        Returns
        -------
        list[AddressPortfolio]
            One portfolio per address

        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def scan_one(watched: WatchedAddress) -> AddressPortfolio:
            async with semaphore:
                return await self._scan_address(watched, force_refresh, networks_to_scan, on_progress)

        return list(await asyncio.gather(*(scan_one(watched) for watched in addresses)))

    async def _scan_address(
        self,
        watched: WatchedAddress,
        force_refresh: bool,
        networks_to_scan: list[str] | None,
        on_progress: AddressProgressCallback | None,
    ) -> AddressPortfolio:
        started_at = self._clock()
        callback = partial(on_progress, watched) if on_progress is not None else None

        try:
            validate_address(watched.address, watched.chain_family)
            if self.on_address_scanned is not None:
                self.on_address_scanned(watched)
            result = await self.scanner.scan_address(
                watched.address,
                force_refresh=force_refresh,
                networks_to_scan=networks_to_scan,
                chain_family=watched.chain_family,
                on_progress=callback,
            )
        except TrackerError as e:
            logger.warning("Scan of address %s failed: %s", watched.address, e)
            error = e.message
        except Exception as e:
            logger.exception("Unexpected error scanning address %s", watched.address)
            error = str(e) or type(e).__name__
        else:
            return AddressPortfolio(
                address_id=watched.id,
                address=watched.address,
                label=watched.label,
                network_balances=result.balances,
                total_usd_value=result.total_usd_value,
                last_scanned_at=started_at,
            )

        return AddressPortfolio(
            address_id=watched.id,
            address=watched.address,
            label=watched.label,
            last_scanned_at=started_at,
            error=error,
        )
