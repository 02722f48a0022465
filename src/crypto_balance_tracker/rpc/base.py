"""Interface for on-chain balance readers."""

from typing import Protocol

from crypto_balance_tracker.core.models import BalanceReading, Network, Token


class ChainReader(Protocol):
    """
    Reads raw balances from a blockchain.

    Implementations raise on failure; the scanner converts any exception into
    an upstream error at the narrowest scope.

    Methods
    -------
    fetch_native_balance(address, network)
        Native asset balance of an address
    fetch_token_balance(address, network, token)
        Token balance of an address

    """

    async def fetch_native_balance(self, address: str, network: Network) -> BalanceReading: ...

    async def fetch_token_balance(self, address: str, network: Network, token: Token) -> BalanceReading: ...
