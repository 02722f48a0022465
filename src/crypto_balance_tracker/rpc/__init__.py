"""RPC layer with JSON-RPC balance reading and retry logic."""

from crypto_balance_tracker.rpc.provider import JsonRpcChainReader, format_units
from crypto_balance_tracker.rpc.retry import RetryConfig, async_retry, call_upstream

__all__ = [
    "JsonRpcChainReader",
    "RetryConfig",
    "async_retry",
    "call_upstream",
    "format_units",
]
