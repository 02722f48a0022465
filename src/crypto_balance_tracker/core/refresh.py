"""Background refresh of cache entries that are about to expire."""

import asyncio
import logging

from crypto_balance_tracker.cache.namespace import normalize_owner
from crypto_balance_tracker.core.exceptions import TrackerError
from crypto_balance_tracker.core.models import ChainFamily, RefreshReport
from crypto_balance_tracker.core.scanner import BalanceScanner

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 5 * 60
DEFAULT_REFRESH_WINDOW = 2 * 60
DEFAULT_INITIAL_DELAY = 60


class BackgroundRefresher:
    """
    Periodically re-scans cache entries of active addresses before they expire.

    Only entries whose remaining lifetime is positive and below the refresh
    window are refreshed. Expired entries and inactive addresses are left to
    be fetched on demand.

    Parameters
    ----------
    scanner : BalanceScanner
        Scanner whose caches are kept warm; its price service is warmed too
    interval : float
        Seconds between refresh runs
    window : float
        Remaining lifetime in seconds below which an entry is refreshed
    initial_delay : float
        Seconds before the first run after ``start()``

    """

    def __init__(
        self,
        scanner: BalanceScanner,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        window: float = DEFAULT_REFRESH_WINDOW,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
    ) -> None:
        self.scanner = scanner
        self.interval = interval
        self.window = window
        self.initial_delay = initial_delay
        self._active: dict[str, ChainFamily] = {}
        self._task: asyncio.Task | None = None

    def register(self, address: str, chain_family: ChainFamily = ChainFamily.EVM) -> None:
        """Mark an address as active so its entries are kept warm."""
        self._active[normalize_owner(address)] = chain_family

    def unregister(self, address: str) -> bool:
        """
        Stop refreshing an address.

        Returns
        -------
        bool
            True if the address was active

        """
        return self._active.pop(normalize_owner(address), None) is not None

    def is_active(self, address: str) -> bool:
        return normalize_owner(address) in self._active

    @property
    def active_addresses(self) -> list[str]:
        return list(self._active)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_once(self) -> RefreshReport:
        """
        Run one refresh pass.

        Returns
        -------
        RefreshReport
            Refreshed network ids per address and refreshed price ids

        """
        report = RefreshReport()

        for address, chain_family in list(self._active.items()):
            for network in self.scanner.networks.for_family(chain_family):
                remaining = self.scanner.time_until_expiry(address, network.id)
                if remaining is None or not 0 < remaining < self.window:
                    continue

                try:
                    await self.scanner.scan_network(address, network, force_refresh=True)
                except TrackerError as e:
                    logger.warning("Background refresh of %s on %s failed: %s", address, network.id, e)
                    continue
                report.networks.setdefault(address, []).append(network.id)

        price_ids = self.scanner.price_service.expiring_ids(self.window)
        if price_ids:
            prices = await self.scanner.price_service.refresh(price_ids)
            report.price_ids = list(prices)

        if report.networks or report.price_ids:
            logger.info(
                "Background refresh updated %d address(es), %d price(s)",
                len(report.networks),
                len(report.price_ids),
            )
        return report

    def start(self) -> None:
        """
        Start the periodic refresh task on the running event loop.

        Raises
        ------
        RuntimeError
            If called outside a running event loop

        """
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run_forever())
        logger.info("Background refresh started (interval %ss, window %ss)", self.interval, self.window)

    async def stop(self) -> None:
        """Cancel the periodic refresh task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Background refresh stopped")

    async def _run_forever(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.refresh_once()
            except Exception:
                logger.exception("Background refresh run failed")
            await asyncio.sleep(self.interval)
