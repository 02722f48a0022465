"""Tests for the background refresher."""

import asyncio
from decimal import Decimal

import pytest

from crypto_balance_tracker.core.refresh import BackgroundRefresher

from .conftest import ADDRESS, ETH, OTHER_ADDRESS


@pytest.fixture
def refresher(scanner):
    return BackgroundRefresher(scanner, interval=300, window=120, initial_delay=60)


def test_register_and_unregister(refresher):
    """Active addresses are tracked case-insensitively."""
    refresher.register("0x" + "A" * 40)

    assert refresher.is_active(ADDRESS)
    assert refresher.active_addresses == [ADDRESS]
    assert refresher.unregister(ADDRESS) is True
    assert refresher.unregister(ADDRESS) is False
    assert refresher.active_addresses == []


@pytest.mark.asyncio
async def test_refreshes_entries_about_to_expire(refresher, scanner, chain_reader, clock):
    """An entry inside the refresh window is rescanned and its lifetime restarted."""
    chain_reader.native["ethereum"] = ETH
    await scanner.scan_address(ADDRESS, networks_to_scan=["ethereum"])
    refresher.register(ADDRESS)

    clock.advance(500)
    chain_reader.native["ethereum"] = 2 * ETH
    report = await refresher.refresh_once()

    assert report.networks == {ADDRESS: ["ethereum"]}
    assert len(chain_reader.native_calls) == 2
    assert scanner.time_until_expiry(ADDRESS, "ethereum") == 600
    cached = scanner.get_cached_balance(ADDRESS, "ethereum")
    assert cached.native_balance.formatted_amount == "2"


@pytest.mark.asyncio
async def test_skips_fresh_expired_and_missing_entries(refresher, scanner, chain_reader, clock):
    """Fresh, already-expired and never-scanned entries are left alone."""
    chain_reader.native["ethereum"] = ETH
    await scanner.scan_address(ADDRESS, networks_to_scan=["ethereum", "arbitrum"])
    refresher.register(ADDRESS)

    clock.advance(100)
    assert (await refresher.refresh_once()).networks == {}

    clock.advance(600)
    report = await refresher.refresh_once()

    assert report.networks == {}
    assert len(chain_reader.native_calls) == 2


@pytest.mark.asyncio
async def test_zero_balance_entries_use_long_ttl(refresher, scanner, clock):
    """Empty networks are refreshed near the end of their 60-minute TTL."""
    await scanner.scan_address(ADDRESS, networks_to_scan=["arbitrum"])
    refresher.register(ADDRESS)

    clock.advance(500)
    assert (await refresher.refresh_once()).networks == {}

    clock.advance(3000)
    assert (await refresher.refresh_once()).networks == {ADDRESS: ["arbitrum"]}


@pytest.mark.asyncio
async def test_inactive_addresses_are_not_refreshed(refresher, scanner, chain_reader, clock):
    """Only registered addresses are kept warm."""
    chain_reader.native["ethereum"] = ETH
    await scanner.scan_address(ADDRESS, networks_to_scan=["ethereum"])
    await scanner.scan_address(OTHER_ADDRESS, networks_to_scan=["ethereum"])
    refresher.register(OTHER_ADDRESS)
    refresher.register(ADDRESS)
    refresher.unregister(ADDRESS)

    clock.advance(500)
    report = await refresher.refresh_once()

    assert report.networks == {OTHER_ADDRESS: ["ethereum"]}


@pytest.mark.asyncio
async def test_failed_refresh_keeps_old_entry(refresher, scanner, chain_reader, clock):
    """A failing background rescan is logged and leaves the cache untouched."""
    chain_reader.native["ethereum"] = ETH
    await scanner.scan_address(ADDRESS, networks_to_scan=["ethereum"])
    refresher.register(ADDRESS)

    clock.advance(500)
    chain_reader.failing_networks.add("ethereum")
    report = await refresher.refresh_once()

    assert report.networks == {}
    assert scanner.time_until_expiry(ADDRESS, "ethereum") == 100


@pytest.mark.asyncio
async def test_refreshes_expiring_prices(refresher, price_service, price_reader, clock):
    """Prices inside the window are force-fetched in one batch."""
    await price_service.get_price("ethereum", "ETH")
    clock.advance(500)
    price_reader.prices["ethereum"] = Decimal("3300")

    report = await refresher.refresh_once()

    assert report.price_ids == ["ethereum"]
    assert price_reader.batch_calls == [["ethereum"]]
    assert await price_service.get_price("ethereum", "ETH") == Decimal("3300")


@pytest.mark.asyncio
async def test_start_and_stop(scanner, chain_reader, clock):
    """The periodic task runs refresh passes until stopped."""
    chain_reader.native["ethereum"] = ETH
    await scanner.scan_address(ADDRESS, networks_to_scan=["ethereum"])
    clock.advance(500)

    refresher = BackgroundRefresher(scanner, interval=0.01, window=120, initial_delay=0)
    refresher.register(ADDRESS)
    refresher.start()
    assert refresher.is_running

    await asyncio.sleep(0.05)
    await refresher.stop()

    assert not refresher.is_running
    assert len(chain_reader.native_calls) >= 2
    await refresher.stop()
