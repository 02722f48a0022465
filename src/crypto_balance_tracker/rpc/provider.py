"""JSON-RPC chain reader for EVM networks over httpx."""

import itertools
import logging
from decimal import Decimal
from typing import Any

import httpx

from crypto_balance_tracker.core.exceptions import UpstreamFetchError
from crypto_balance_tracker.core.models import BalanceReading, ChainFamily, Network, Token
from crypto_balance_tracker.rpc.retry import RetryConfig, async_retry

logger = logging.getLogger(__name__)

# ERC-20 balanceOf(address)
BALANCE_OF_SELECTOR = "0x70a08231"


def format_units(raw_amount: int, decimals: int) -> str:
    """
    Render a base-unit amount as a decimal string.

    Parameters
    ----------
    raw_amount : int
        Amount in base units
    decimals : int
        Number of decimal places

    Returns
    -------
    str
        Human-readable amount without trailing zeros (e.g., '2.5', '100')

    Examples
    --------
    >>> format_units(2_500_000_000_000_000_000, 18)
    '2.5'

    """
    value = Decimal(raw_amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def pad_address(address: str) -> str:
    """
    Pad an address to a 32-byte ABI word (without 0x prefix).

    Parameters
    ----------
    address : str
        Ethereum address (0x prefixed)

    Returns
    -------
    str
        64 hex characters

    """
    return address.lower().removeprefix("0x").zfill(64)


def parse_quantity(value: Any) -> int:
    """Parse a hex JSON-RPC quantity; empty results (``0x``) read as zero."""
    if not isinstance(value, str) or not value.startswith("0x"):
        msg = f"Unexpected JSON-RPC quantity: {value!r}"
        raise UpstreamFetchError(msg)
    if value == "0x":
        return 0
    try:
        return int(value, 16)
    except ValueError as e:
        msg = f"Unexpected JSON-RPC quantity: {value!r}"
        raise UpstreamFetchError(msg) from e


class JsonRpcChainReader:
    """
    Reads native and ERC-20 balances through an EVM node's JSON-RPC API.

    Each request is retried with exponential backoff before an
    UpstreamFetchError is raised.

    Parameters
    ----------
    retry_config : RetryConfig | None
        Retry configuration for each JSON-RPC request
    timeout : float
        HTTP timeout of one request attempt, in seconds
    client : httpx.AsyncClient | None
        Pre-configured client (mainly for tests). Created if None.

    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.retry_config = retry_config or RetryConfig(
            max_retries=3,
            base_delay=1.0,
            max_delay=30.0,
            exponential_base=2.0,
        )
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self._request = async_retry(self.retry_config)(self._send)

    async def fetch_native_balance(self, address: str, network: Network) -> BalanceReading:
        """
        Fetch the native asset balance via ``eth_getBalance``.

        Raises
        ------
        UpstreamFetchError
            If the network is not EVM or the request fails

        """
        self._require_evm(network)
        raw = parse_quantity(await self._request(network, "eth_getBalance", [address, "latest"]))
        return BalanceReading(raw_amount=raw, formatted_amount=format_units(raw, network.native_token.decimals))

    async def fetch_token_balance(self, address: str, network: Network, token: Token) -> BalanceReading:
        """
        Fetch an ERC-20 balance via ``eth_call`` of ``balanceOf``.

        Raises
        ------
        UpstreamFetchError
            If the network is not EVM or the request fails

        """
        self._require_evm(network)
        call = {"to": token.address, "data": BALANCE_OF_SELECTOR + pad_address(address)}
        raw = parse_quantity(await self._request(network, "eth_call", [call, "latest"]))
        return BalanceReading(raw_amount=raw, formatted_amount=format_units(raw, token.decimals))

    @staticmethod
    def _require_evm(network: Network) -> None:
        if network.chain_family != ChainFamily.EVM:
            msg = f"{network.chain_family.value} networks are not supported yet ({network.id})"
            raise UpstreamFetchError(msg)

    async def _send(self, network: Network, method: str, params: list[Any]) -> Any:
        """
        Send one JSON-RPC request.

        Parameters
        ----------
        network : Network
            Network whose RPC endpoint is called
        method : str
            RPC method name (e.g., 'eth_getBalance', 'eth_call')
        params : list[Any]
            Method parameters

        Returns
        -------
        Any
            The ``result`` member of the response

        Raises
        ------
        UpstreamFetchError
            On HTTP failures, invalid JSON or a JSON-RPC error object

        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self.client.post(network.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            msg = f"{method} on {network.id} failed: {e}"
            raise UpstreamFetchError(msg) from e
        except ValueError as e:
            msg = f"{method} on {network.id} returned invalid JSON"
            raise UpstreamFetchError(msg) from e

        if not isinstance(body, dict):
            msg = f"{method} on {network.id} returned an unexpected payload"
            raise UpstreamFetchError(msg)
        if body.get("error"):
            error = body["error"]
            detail = error.get("message", error) if isinstance(error, dict) else error
            msg = f"{method} on {network.id} returned an error: {detail}"
            raise UpstreamFetchError(msg)
        return body.get("result")

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "JsonRpcChainReader":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.aclose()
