"""Network and token configuration data."""

from crypto_balance_tracker.data.loader import (
    DEFAULT_NETWORKS_FILE,
    get_all_supported_networks,
    get_chain_id,
    get_default_tokens,
    get_network_config,
    get_rpc_endpoint,
    load_network_config,
)

__all__ = [
    "DEFAULT_NETWORKS_FILE",
    "get_all_supported_networks",
    "get_chain_id",
    "get_default_tokens",
    "get_network_config",
    "get_rpc_endpoint",
    "load_network_config",
]
