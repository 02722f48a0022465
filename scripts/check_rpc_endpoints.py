"""Diagnostic script: check every configured RPC endpoint with a raw eth_getBalance."""

import asyncio
import sys
import time

from crypto_balance_tracker.core.exceptions import UpstreamFetchError
from crypto_balance_tracker.core.registry import NetworkRegistry
from crypto_balance_tracker.rpc import JsonRpcChainReader, RetryConfig

TARGET_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth


async def check_network(reader: JsonRpcChainReader, network, address: str) -> bool:
    """Fetch the native balance on one network and print the outcome."""
    started = time.perf_counter()
    try:
        reading = await reader.fetch_native_balance(address, network)
    except UpstreamFetchError as e:
        print(f"  FAIL {network.id:<12} {network.rpc_url}")
        print(f"       {e.message}")
        return False

    elapsed = time.perf_counter() - started
    print(
        f"  OK   {network.id:<12} {reading.formatted_amount} {network.native_token.symbol} "
        f"({elapsed * 1000:.0f} ms)"
    )
    return True


async def main(address: str) -> int:
    registry = NetworkRegistry.from_config()
    print(f"Checking {len(registry)} networks for {address}")

    async with JsonRpcChainReader(retry_config=RetryConfig(max_retries=0), timeout=10.0) as reader:
        results = await asyncio.gather(*(check_network(reader, n, address) for n in registry.list_networks()))

    failed = results.count(False)
    print(f"\n{len(results) - failed} reachable, {failed} failing")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else TARGET_ADDRESS)))
