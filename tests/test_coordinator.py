"""Tests for multi-address scanning."""

import asyncio
from decimal import Decimal

import pytest

from crypto_balance_tracker.core.coordinator import PortfolioCoordinator
from crypto_balance_tracker.core.models import ScanStatus, WatchedAddress

from .conftest import ADDRESS, ETH, OTHER_ADDRESS


def _watched(address_id, address, label=None):
    return WatchedAddress(id=address_id, address=address, label=label, added_at=0.0)


@pytest.mark.asyncio
async def test_scan_all_builds_portfolios_in_order(scanner, chain_reader, clock):
    """Each address gets a portfolio with its balances and total."""
    chain_reader.native["ethereum"] = ETH
    coordinator = PortfolioCoordinator(scanner, clock=clock)

    portfolios = await coordinator.scan_all(
        [_watched("1", ADDRESS, "main"), _watched("2", OTHER_ADDRESS)],
        networks_to_scan=["ethereum"],
    )

    assert [p.address_id for p in portfolios] == ["1", "2"]
    assert portfolios[0].label == "main"
    assert portfolios[0].total_usd_value == Decimal("3000")
    assert portfolios[0].last_scanned_at == clock.now
    assert portfolios[0].error is None
    assert sorted(scanner.balance_cache.owners()) == [ADDRESS, OTHER_ADDRESS]


@pytest.mark.asyncio
async def test_invalid_address_does_not_abort_others(scanner, clock):
    """A malformed address becomes an errored portfolio."""
    coordinator = PortfolioCoordinator(scanner, clock=clock)

    portfolios = await coordinator.scan_all(
        [_watched("1", "0x1234"), _watched("2", ADDRESS)],
        networks_to_scan=["ethereum"],
    )

    assert "Invalid" in portfolios[0].error
    assert portfolios[0].network_balances == []
    assert portfolios[1].error is None
    assert [b.network_id for b in portfolios[1].network_balances] == ["ethereum"]


@pytest.mark.asyncio
async def test_unknown_network_is_reported_per_address(scanner, clock):
    """Unknown networks surface as an address-level error."""
    coordinator = PortfolioCoordinator(scanner, clock=clock)

    portfolios = await coordinator.scan_all([_watched("1", ADDRESS)], networks_to_scan=["nowhere"])

    assert "nowhere" in portfolios[0].error


@pytest.mark.asyncio
async def test_network_failures_stay_inside_portfolio(scanner, chain_reader, clock):
    """Network errors are kept in the balances, not promoted to the address."""
    chain_reader.failing_networks.add("polygon")
    coordinator = PortfolioCoordinator(scanner, clock=clock)

    (portfolio,) = await coordinator.scan_all([_watched("1", ADDRESS)], networks_to_scan=["ethereum", "polygon"])

    assert portfolio.error is None
    assert portfolio.network_balances[1].error is not None


@pytest.mark.asyncio
async def test_concurrency_is_bounded(scanner, chain_reader, clock):
    """No more than max_concurrency addresses are scanned at once."""
    in_flight = set()
    peak = 0
    original = chain_reader.fetch_native_balance

    async def tracking_fetch(address, network):
        nonlocal peak
        in_flight.add(address)
        peak = max(peak, len(in_flight))
        try:
            await asyncio.sleep(0.01)
            return await original(address, network)
        finally:
            in_flight.discard(address)

    chain_reader.fetch_native_balance = tracking_fetch
    addresses = [_watched(str(i), "0x" + f"{i:040x}") for i in range(1, 7)]
    coordinator = PortfolioCoordinator(scanner, max_concurrency=2, clock=clock)

    portfolios = await coordinator.scan_all(addresses, networks_to_scan=["ethereum"])

    assert len(portfolios) == 6
    assert peak == 2


def test_rejects_non_positive_concurrency(scanner):
    with pytest.raises(ValueError):
        PortfolioCoordinator(scanner, max_concurrency=0)


@pytest.mark.asyncio
async def test_callbacks(scanner, clock):
    """Valid addresses are announced and per-network progress is forwarded."""
    announced = []
    updates = []
    coordinator = PortfolioCoordinator(scanner, on_address_scanned=announced.append, clock=clock)

    await coordinator.scan_all(
        [_watched("1", ADDRESS), _watched("2", "bogus")],
        networks_to_scan=["ethereum"],
        on_progress=lambda watched, progress: updates.append((watched.id, progress.status)),
    )

    assert [w.id for w in announced] == ["1"]
    assert updates == [("1", ScanStatus.SCANNING), ("1", ScanStatus.COMPLETED)]
