"""Tests for data loading and configuration."""

import pytest

from crypto_balance_tracker.data import (
    get_all_supported_networks,
    get_chain_id,
    get_default_tokens,
    get_network_config,
    get_rpc_endpoint,
)

CUSTOM_NETWORKS = """
networks:
  devnet:
    name: Devnet
    chain_id: 31337
    rpc_url: http://127.0.0.1:8545
    native_token: {symbol: ETH, decimals: 18, price_id: ethereum}
"""


def test_get_all_supported_networks():
    """Test getting all supported network ids."""
    networks = get_all_supported_networks()

    assert isinstance(networks, list)
    assert networks[0] == "ethereum"
    assert "base" in networks
    assert len(networks) >= 5


def test_get_network_config():
    """Test getting network configuration."""
    config = get_network_config("ethereum")

    assert config["chain_id"] == 1
    assert config["native_token"]["symbol"] == "ETH"
    assert config["native_token"]["price_id"] == "ethereum"


def test_get_chain_id():
    assert get_chain_id("ethereum") == 1
    assert get_chain_id("base") == 8453


def test_get_rpc_endpoint():
    assert get_rpc_endpoint("ethereum").startswith("https://")


def test_get_default_tokens():
    """Every default token carries an address, decimals and price id."""
    tokens = get_default_tokens("ethereum")

    assert {t["symbol"] for t in tokens} >= {"USDC", "USDT", "DAI", "WETH"}
    for token in tokens:
        assert token["address"].startswith("0x")
        assert len(token["address"]) == 42
        assert isinstance(token["decimals"], int)
        assert token["price_id"]


def test_unknown_network_raises():
    with pytest.raises(KeyError):
        get_network_config("nonexistent")


def test_custom_networks_file(tmp_path):
    """An alternative YAML file replaces the bundled networks."""
    path = tmp_path / "networks.yaml"
    path.write_text(CUSTOM_NETWORKS, encoding="utf-8")

    assert get_all_supported_networks(path) == ["devnet"]
    assert get_chain_id("devnet", path) == 31337
    assert get_default_tokens("devnet", path) == []
