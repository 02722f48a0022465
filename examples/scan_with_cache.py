"""
Example script showing cached balance scans against public RPC endpoints.

The first scan fetches every network; the second one is answered from the
balance cache. Networks with a balance are kept for 10 minutes, empty ones
for 60 minutes.

Requirements:
1. Network access to the RPC endpoints in data/networks.yaml
2. BALANCE_TRACKER_COINGECKO_API_KEY environment variable (optional)
   - Or use a .env file in the project root

Usage:
    python examples/scan_with_cache.py [ADDRESS]
"""

import asyncio
import sys
import time

from crypto_balance_tracker.core.aggregator import format_token_amount, format_usd_value
from crypto_balance_tracker.service import BalanceTrackerService

DEFAULT_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth
NETWORKS = ["ethereum", "base", "arbitrum"]


async def main(address: str) -> None:
    """Scan an address twice and show where each result came from."""
    print("Balance scan with caching")
    print("=" * 50)
    print(f"Address: {address}")
    print()

    async with BalanceTrackerService.from_settings() as service:
        for attempt in (1, 2):
            started = time.perf_counter()
            result = await service.scan_address(address, networks_to_scan=NETWORKS)
            elapsed = time.perf_counter() - started

            print(f"Scan {attempt} took {elapsed:.2f}s")
            print(f"  Fetched: {', '.join(result.fetched_network_ids) or '-'}")
            print(f"  Cached:  {', '.join(result.cached_network_ids) or '-'}")
            print(f"  Errored: {', '.join(result.errored_network_ids) or '-'}")
            print()

        for balance in result.balances:
            print(f"{balance.network_name}: {format_usd_value(balance.total_usd_value)}")
            if balance.error:
                print(f"  Error: {balance.error}")
            held = [b for b in (balance.native_balance, *balance.token_balances) if b is not None]
            for held_balance in held:
                amount = format_token_amount(held_balance.formatted_amount, held_balance.decimals)
                print(f"  {held_balance.symbol}: {amount} ({format_usd_value(held_balance.usd_value)})")

        print()
        print(f"Total: {format_usd_value(result.total_usd_value)}")
        for strategy in result.refresh_strategy:
            print(f"  {strategy.network_id}: next refresh in {strategy.ttl / 60:.0f} min")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_ADDRESS))
