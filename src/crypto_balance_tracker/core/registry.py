"""Network and token registries plus address validation."""

import re
from pathlib import Path

from crypto_balance_tracker.core.exceptions import NotFoundError, ValidationError
from crypto_balance_tracker.core.models import ChainFamily, NativeToken, Network, Token
from crypto_balance_tracker.data import get_all_supported_networks, get_default_tokens, get_network_config

ADDRESS_PATTERNS: dict[ChainFamily, re.Pattern[str]] = {
    ChainFamily.EVM: re.compile(r"^0x[a-fA-F0-9]{40}$"),
}


def is_valid_address(address: str, chain_family: ChainFamily = ChainFamily.EVM) -> bool:
    """
    Validate an address format for a chain family.

    Only EVM addresses are supported; every other family is rejected.

    Parameters
    ----------
    address : str
        Address to validate
    chain_family : ChainFamily
        Family the address belongs to

    Returns
    -------
    bool
        True if the address is well-formed

    """
    pattern = ADDRESS_PATTERNS.get(chain_family)
    if pattern is None:
        return False
    return bool(pattern.match(address))


def validate_address(address: str, chain_family: ChainFamily = ChainFamily.EVM) -> str:
    """
    Return the address unchanged, or raise if malformed.

    Raises
    ------
    ValidationError
        If the address does not match its family's format

    """
    if not is_valid_address(address, chain_family):
        msg = f"Invalid {chain_family.value} address: {address!r}"
        raise ValidationError(msg)
    return address


def truncate_address(address: str, start_chars: int = 6, end_chars: int = 4) -> str:
    """Shorten an address for display, e.g. ``0x1234...5678``."""
    if len(address) <= start_chars + end_chars:
        return address
    return f"{address[:start_chars]}...{address[-end_chars:]}"


class NetworkRegistry:
    """
    Registry of known networks, keyed by network id.

    Networks keep their registration order, which is the default scan order.

    Parameters
    ----------
    networks : list[Network] | None
        Initial networks

    """

    def __init__(self, networks: list[Network] | None = None) -> None:
        self._networks: dict[str, Network] = {}
        for network in networks or []:
            self.register(network)

    @classmethod
    def from_config(cls, path: Path | None = None) -> "NetworkRegistry":
        """
        Build a registry from the networks YAML file.

        Parameters
        ----------
        path : Path | None
            Alternative YAML file. Uses the bundled defaults if None.

        Returns
        -------
        NetworkRegistry
            Registry with every configured network

        """
        networks = []
        for network_id in get_all_supported_networks(path):
            config = get_network_config(network_id, path)
            networks.append(
                Network(
                    id=network_id,
                    name=config["name"],
                    chain_id=config["chain_id"],
                    rpc_url=config["rpc_url"],
                    native_token=NativeToken(**config["native_token"]),
                    block_explorer_url=config.get("block_explorer_url"),
                    multicall_address=config.get("multicall_address"),
                    chain_family=ChainFamily(config.get("chain_family", ChainFamily.EVM)),
                )
            )
        return cls(networks)

    def register(self, network: Network) -> Network:
        """
        Register a network.

        Raises
        ------
        ValidationError
            If a network with the same id is already registered

        """
        if network.id in self._networks:
            msg = f"Network {network.id!r} is already registered"
            raise ValidationError(msg)
        self._networks[network.id] = network
        return network

    def get(self, network_id: str) -> Network:
        """
        Get a network by id.

        Raises
        ------
        NotFoundError
            If the network is unknown

        """
        network = self._networks.get(network_id)
        if network is None:
            msg = f"Network {network_id!r} not found"
            raise NotFoundError(msg)
        return network

    def find(self, network_id: str) -> Network | None:
        """Get a network by id, or None."""
        return self._networks.get(network_id)

    def by_chain_id(self, chain_id: int) -> Network | None:
        """Get a network by numeric chain ID, or None."""
        return next((n for n in self._networks.values() if n.chain_id == chain_id), None)

    def for_family(self, chain_family: ChainFamily) -> list[Network]:
        """All networks of a chain family, in registration order."""
        return [n for n in self._networks.values() if n.chain_family == chain_family]

    def list_networks(self) -> list[Network]:
        """All networks, in registration order."""
        return list(self._networks.values())

    def __contains__(self, network_id: object) -> bool:
        return network_id in self._networks

    def __len__(self) -> int:
        return len(self._networks)


class TokenRegistry:
    """
    Default and user-added tokens per network.

    Tokens are unique per (network id, lower-cased contract address). A custom
    token registered at a default token's address overrides it.

    """

    def __init__(self, default_tokens: dict[str, list[Token]] | None = None) -> None:
        self._defaults: dict[str, dict[str, Token]] = {}
        self._custom: dict[str, dict[str, Token]] = {}
        for network_id, tokens in (default_tokens or {}).items():
            bucket = self._defaults.setdefault(network_id, {})
            for token in tokens:
                bucket[token.address.lower()] = token

    @classmethod
    def from_config(cls, path: Path | None = None) -> "TokenRegistry":
        """Build a registry from the default tokens of the networks YAML file."""
        return cls(
            {
                network_id: [Token(**token) for token in get_default_tokens(network_id, path)]
                for network_id in get_all_supported_networks(path)
            }
        )

    def tokens_for(self, network_id: str) -> list[Token]:
        """
        Tokens scanned on a network: defaults merged with custom tokens.

        Parameters
        ----------
        network_id : str
            Network identifier

        Returns
        -------
        list[Token]
            Tokens, defaults first

        """
        merged = dict(self._defaults.get(network_id, {}))
        merged.update(self._custom.get(network_id, {}))
        return list(merged.values())

    def default_tokens(self, network_id: str) -> list[Token]:
        return list(self._defaults.get(network_id, {}).values())

    def custom_tokens(self, network_id: str) -> list[Token]:
        return list(self._custom.get(network_id, {}).values())

    def add_custom_token(self, network_id: str, token: Token) -> Token:
        """
        Add a user token to a network.

        Raises
        ------
        ValidationError
            If the contract address is malformed or already a custom token

        """
        if not is_valid_address(token.address):
            msg = f"Invalid token contract address: {token.address!r}"
            raise ValidationError(msg)

        bucket = self._custom.setdefault(network_id, {})
        key = token.address.lower()
        if key in bucket:
            msg = f"Token {token.address} already added on {network_id}"
            raise ValidationError(msg)

        custom = token.model_copy(update={"is_custom": True})
        bucket[key] = custom
        return custom

    def remove_custom_token(self, network_id: str, address: str) -> None:
        """
        Remove a user token.

        Raises
        ------
        NotFoundError
            If no such custom token exists

        """
        bucket = self._custom.get(network_id, {})
        if bucket.pop(address.lower(), None) is None:
            msg = f"Custom token {address} not found on {network_id}"
            raise NotFoundError(msg)

    def find(self, network_id: str, address: str) -> Token | None:
        key = address.lower()
        return self._custom.get(network_id, {}).get(key) or self._defaults.get(network_id, {}).get(key)

    def all_tokens(self) -> list[Token]:
        """Every known token, unique by symbol."""
        unique: dict[str, Token] = {}
        for buckets in (self._defaults, self._custom):
            for tokens in buckets.values():
                for token in tokens.values():
                    unique.setdefault(token.symbol, token)
        return list(unique.values())
