"""Shared fixtures and fakes for crypto-balance-tracker tests."""

import asyncio
from decimal import Decimal

import pytest

from crypto_balance_tracker.core.models import BalanceReading, NativeToken, Network, Token
from crypto_balance_tracker.core.registry import NetworkRegistry, TokenRegistry
from crypto_balance_tracker.core.scanner import BalanceScanner
from crypto_balance_tracker.pricing.service import PriceCacheService
from crypto_balance_tracker.rpc.provider import format_units

ADDRESS = "0x" + "a" * 40
OTHER_ADDRESS = "0x" + "b" * 40

POLYGON_USDC = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
ETHEREUM_USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ETHEREUM_WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
ETHEREUM_PEPE = "0x6982508145454Ce325dDbE47a25d4ec3d2311933"

ETH = 10**18


class FakeClock:
    """Controllable time source returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChainReader:
    """In-memory chain reader with per-network and per-token failure switches."""

    def __init__(self) -> None:
        self.native: dict[str, int] = {}
        self.tokens: dict[tuple[str, str], int] = {}
        self.failing_networks: set[str] = set()
        self.failing_tokens: set[tuple[str, str]] = set()
        self.delay = 0.0
        self.native_calls: list[tuple[str, str]] = []
        self.token_calls: list[tuple[str, str, str]] = []

    async def fetch_native_balance(self, address: str, network: Network) -> BalanceReading:
        self.native_calls.append((address, network.id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if network.id in self.failing_networks:
            msg = f"RPC unavailable for {network.id}"
            raise RuntimeError(msg)
        raw = self.native.get(network.id, 0)
        return BalanceReading(raw_amount=raw, formatted_amount=format_units(raw, network.native_token.decimals))

    async def fetch_token_balance(self, address: str, network: Network, token: Token) -> BalanceReading:
        key = (network.id, token.address.lower())
        self.token_calls.append((address, network.id, token.symbol))
        if key in self.failing_tokens:
            msg = f"balanceOf reverted for {token.symbol}"
            raise RuntimeError(msg)
        raw = self.tokens.get(key, 0)
        return BalanceReading(raw_amount=raw, formatted_amount=format_units(raw, token.decimals))

    def set_token(self, network_id: str, token_address: str, raw: int) -> None:
        self.tokens[(network_id, token_address.lower())] = raw

    def fail_token(self, network_id: str, token_address: str) -> None:
        self.failing_tokens.add((network_id, token_address.lower()))


class FakePriceReader:
    """In-memory price reader recording every upstream call."""

    def __init__(self, prices: dict[str, Decimal] | None = None) -> None:
        self.prices = dict(prices or {})
        self.fail = False
        self.single_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    async def fetch_price(self, price_id: str) -> Decimal | None:
        self.single_calls.append(price_id)
        if self.fail:
            msg = "price provider down"
            raise RuntimeError(msg)
        return self.prices.get(price_id)

    async def fetch_prices_batch(self, price_ids: list[str]) -> dict[str, Decimal]:
        self.batch_calls.append(list(price_ids))
        if self.fail:
            msg = "price provider down"
            raise RuntimeError(msg)
        return {price_id: self.prices[price_id] for price_id in price_ids if price_id in self.prices}


def make_network(network_id: str, chain_id: int, symbol: str, price_id: str) -> Network:
    return Network(
        id=network_id,
        name=network_id.capitalize(),
        chain_id=chain_id,
        rpc_url=f"https://{network_id}.rpc.test",
        native_token=NativeToken(symbol=symbol, decimals=18, price_id=price_id),
    )


@pytest.fixture
def clock():
    """Clock frozen at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def networks():
    """Ethereum, Polygon and Arbitrum, in that order."""
    return NetworkRegistry(
        [
            make_network("ethereum", 1, "ETH", "ethereum"),
            make_network("polygon", 137, "MATIC", "matic-network"),
            make_network("arbitrum", 42161, "ETH", "ethereum"),
        ]
    )


@pytest.fixture
def tokens():
    """USDC and WETH on Ethereum, an unpriced meme token, and USDC on Polygon."""
    return TokenRegistry(
        {
            "ethereum": [
                Token(symbol="USDC", address=ETHEREUM_USDC, decimals=6, price_id="usd-coin"),
                Token(symbol="WETH", address=ETHEREUM_WETH, decimals=18, price_id="weth"),
                Token(symbol="PEPE", address=ETHEREUM_PEPE, decimals=18),
            ],
            "polygon": [
                Token(symbol="USDC", address=POLYGON_USDC, decimals=6, price_id="usd-coin"),
            ],
        }
    )


@pytest.fixture
def chain_reader():
    return FakeChainReader()


@pytest.fixture
def price_reader():
    return FakePriceReader({"ethereum": Decimal("3000"), "matic-network": Decimal("0.5")})


@pytest.fixture
def price_service(price_reader, clock):
    return PriceCacheService(price_reader, clock=clock)


@pytest.fixture
def scanner(chain_reader, price_service, networks, tokens, clock):
    """Scanner without background sweep tasks."""
    return BalanceScanner(chain_reader, price_service, networks, tokens, sweep_interval=None, clock=clock)
