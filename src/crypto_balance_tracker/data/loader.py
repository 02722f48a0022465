"""Network and token configuration loader."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

DEFAULT_NETWORKS_FILE = Path(__file__).parent / "networks.yaml"


@lru_cache(maxsize=8)
def load_network_config(path: Path | None = None) -> dict[str, Any]:
    """
    Load network and token definitions from a YAML file.

    Parameters
    ----------
    path : Path | None
        YAML file to read. Uses the bundled networks.yaml if None.

    Returns
    -------
    dict[str, Any]
        Configuration with a top-level ``networks`` mapping

    """
    path = path or DEFAULT_NETWORKS_FILE
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def get_network_config(network_id: str, path: Path | None = None) -> dict[str, Any]:
    """
    Get configuration for a specific network.

    Parameters
    ----------
    network_id : str
        Network identifier (e.g., 'ethereum', 'base')
    path : Path | None
        Alternative YAML file

    Returns
    -------
    dict[str, Any]
        Network configuration including native token and tokens

    Raises
    ------
    KeyError
        If network is not found in configuration

    """
    return load_network_config(path)["networks"][network_id]


def get_all_supported_networks(path: Path | None = None) -> list[str]:
    """
    Get list of all configured network ids, in file order.

    Returns
    -------
    list[str]
        List of network ids

    """
    return list(load_network_config(path)["networks"].keys())


def get_chain_id(network_id: str, path: Path | None = None) -> int:
    """Get numeric chain ID of a network."""
    return get_network_config(network_id, path)["chain_id"]


def get_rpc_endpoint(network_id: str, path: Path | None = None) -> str:
    """Get the JSON-RPC endpoint of a network."""
    return get_network_config(network_id, path)["rpc_url"]


def get_default_tokens(network_id: str, path: Path | None = None) -> list[dict[str, Any]]:
    """
    Get the default token definitions of a network.

    Returns
    -------
    list[dict[str, Any]]
        Token definitions; empty if the network defines none

    """
    return list(get_network_config(network_id, path).get("tokens") or [])
