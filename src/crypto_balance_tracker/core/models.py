"""Data models for networks, tokens, balances, scans and portfolio summaries."""

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChainFamily(StrEnum):
    """Family of chains sharing an address format."""

    EVM = "evm"
    BITCOIN = "bitcoin"
    SOLANA = "solana"
    POLKADOT = "polkadot"


class ScanStatus(StrEnum):
    """Progress state of a single network scan."""

    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"
    ERROR = "error"


class NativeToken(BaseModel):
    """
    Native asset of a network.

    Attributes
    ----------
    symbol : str
        Asset symbol (e.g., 'ETH', 'MATIC')
    decimals : int
        Number of decimal places
    price_id : str
        Price identifier used for USD lookups (e.g., 'ethereum')

    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    decimals: int
    price_id: str


class Network(BaseModel):
    """
    Immutable network descriptor.

    Attributes
    ----------
    id : str
        Unique network identifier (e.g., 'ethereum', 'polygon')
    name : str
        Display name
    chain_id : int
        Numeric chain ID
    rpc_url : str
        JSON-RPC endpoint
    native_token : NativeToken
        Native asset information
    block_explorer_url : str | None
        Block explorer base URL
    multicall_address : str | None
        Multicall3 contract address, if deployed
    chain_family : ChainFamily
        Address family served by this network

    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    chain_id: int
    rpc_url: str
    native_token: NativeToken
    block_explorer_url: str | None = None
    multicall_address: str | None = None
    chain_family: ChainFamily = ChainFamily.EVM


class Token(BaseModel):
    """
    Fungible token information.

    Attributes
    ----------
    symbol : str
        Token symbol (e.g., 'USDC')
    address : str
        Token contract address
    decimals : int
        Number of decimal places
    price_id : str | None
        Price identifier, if the token can be priced
    name : str | None
        Full token name
    is_custom : bool
        Whether the token was added by the user

    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    address: str
    decimals: int
    price_id: str | None = None
    name: str | None = None
    is_custom: bool = False


class BalanceReading(BaseModel):
    """Raw reading returned by a chain reader."""

    model_config = ConfigDict(frozen=True)

    raw_amount: int
    formatted_amount: str


class Balance(BaseModel):
    """
    Native or token balance with its USD value.

    Never mutated after creation. ``usd_value`` is None when no price was
    available, which is distinct from a zero value.

    Attributes
    ----------
    symbol : str
        Asset symbol
    raw_amount : str
        Integer amount in base units, as a decimal string
    formatted_amount : str
        Human-readable amount
    decimals : int
        Number of decimal places
    usd_value : Decimal | None
        USD value, or None if unpriced
    is_native : bool
        Whether this is the network's native asset
    contract_address : str | None
        Token contract address for non-native balances

    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    raw_amount: str
    formatted_amount: str
    decimals: int
    usd_value: Decimal | None = None
    is_native: bool = False
    contract_address: str | None = None


class NetworkBalance(BaseModel):
    """
    All balances of one address on one network, from one scan.

    Attributes
    ----------
    network_id : str
        Network identifier
    network_name : str
        Network display name
    native_balance : Balance | None
        Native balance, present only when non-zero
    token_balances : list[Balance]
        Non-zero token balances
    total_usd_value : Decimal
        Sum of all priced balances
    has_non_zero_balance : bool
        Whether any native or token balance is present
    fetched_at : float
        Epoch seconds when the scan started
    error : str | None
        Network-level error, if the scan failed

    """

    model_config = ConfigDict(frozen=True)

    network_id: str
    network_name: str
    native_balance: Balance | None = None
    token_balances: list[Balance] = Field(default_factory=list)
    total_usd_value: Decimal = Decimal("0")
    has_non_zero_balance: bool = False
    fetched_at: float
    error: str | None = None


class RefreshStrategy(BaseModel):
    """TTL decision applied to one network in a scan."""

    network_id: str
    had_balance: bool
    ttl: float


class ScanResult(BaseModel):
    """
    Result of scanning one address across networks.

    Attributes
    ----------
    address : str
        Scanned address
    balances : list[NetworkBalance]
        One entry per scanned network, in request order
    total_usd_value : Decimal
        Sum across networks
    cached_network_ids : list[str]
        Networks served from cache
    fetched_network_ids : list[str]
        Networks freshly scanned
    errored_network_ids : list[str]
        Networks whose scan failed
    refresh_strategy : list[RefreshStrategy]
        TTL decision per non-errored network

    """

    address: str
    balances: list[NetworkBalance] = Field(default_factory=list)
    total_usd_value: Decimal = Decimal("0")
    cached_network_ids: list[str] = Field(default_factory=list)
    fetched_network_ids: list[str] = Field(default_factory=list)
    errored_network_ids: list[str] = Field(default_factory=list)
    refresh_strategy: list[RefreshStrategy] = Field(default_factory=list)

    def network_errors(self) -> list[dict[str, str]]:
        """
        List network-level errors of this scan.

        Returns
        -------
        list[dict[str, str]]
            ``{"network_id": ..., "error": ...}`` for every errored network

        """
        return [
            {"network_id": balance.network_id, "error": balance.error}
            for balance in self.balances
            if balance.error is not None
        ]


class PriceRequest(BaseModel):
    """A price lookup for one asset."""

    price_id: str
    symbol: str


class BatchPriceResult(BaseModel):
    """
    Outcome of a batch price lookup, keyed by requested price id.

    Attributes
    ----------
    prices : dict[str, Decimal]
        Resolved prices
    cached_ids : list[str]
        Ids answered from cache (or the stablecoin peg)
    fetched_ids : list[str]
        Ids fetched upstream
    errored_ids : list[str]
        Ids that could not be priced

    """

    prices: dict[str, Decimal] = Field(default_factory=dict)
    cached_ids: list[str] = Field(default_factory=list)
    fetched_ids: list[str] = Field(default_factory=list)
    errored_ids: list[str] = Field(default_factory=list)


class WatchedAddress(BaseModel):
    """
    Tracked address record, persisted by the caller.

    Attributes
    ----------
    id : str
        Unique identifier
    address : str
        Blockchain address
    chain_family : ChainFamily
        Address family
    label : str | None
        Optional alias
    added_at : float
        Epoch seconds when the address was added
    last_scanned : float | None
        Epoch seconds of the last scan
    networks_scanned : list[str]
        Network ids covered by the last scan

    """

    id: str
    address: str
    chain_family: ChainFamily = ChainFamily.EVM
    label: str | None = None
    added_at: float
    last_scanned: float | None = None
    networks_scanned: list[str] = Field(default_factory=list)


class AddressPortfolio(BaseModel):
    """
    Complete portfolio of one watched address, rebuilt on every scan.

    Attributes
    ----------
    address_id : str
        Watched address identifier
    address : str
        Blockchain address
    label : str | None
        Optional alias
    network_balances : list[NetworkBalance]
        Balances per network
    total_usd_value : Decimal
        Sum across networks
    last_scanned_at : float
        Epoch seconds of the scan
    error : str | None
        Address-level failure (e.g. validation), if any

    """

    address_id: str
    address: str
    label: str | None = None
    network_balances: list[NetworkBalance] = Field(default_factory=list)
    total_usd_value: Decimal = Decimal("0")
    last_scanned_at: float
    error: str | None = None


class NetworkBreakdown(BaseModel):
    """USD value held on one network across all portfolios."""

    network_id: str
    network_name: str
    total_usd_value: Decimal
    percentage: float


class AssetBreakdown(BaseModel):
    """Amount and USD value of one asset symbol across all portfolios."""

    symbol: str
    total_amount: str
    total_usd_value: Decimal
    percentage: float


class PortfolioSummary(BaseModel):
    """
    Aggregated view across address portfolios. Derived, never persisted.

    Attributes
    ----------
    total_usd_value : Decimal
        Grand total in USD
    total_addresses : int
        Number of portfolios aggregated
    network_breakdown : list[NetworkBreakdown]
        Value per network, descending
    asset_breakdown : list[AssetBreakdown]
        Value per asset symbol, descending

    """

    total_usd_value: Decimal = Decimal("0")
    total_addresses: int = 0
    network_breakdown: list[NetworkBreakdown] = Field(default_factory=list)
    asset_breakdown: list[AssetBreakdown] = Field(default_factory=list)


class ScanProgress(BaseModel):
    """Progress notification for one network of an address scan."""

    network_id: str
    network_name: str
    status: ScanStatus
    error: str | None = None


class CacheEntryStats(BaseModel):
    """Age and TTL of a single cache entry, in seconds."""

    key: str
    age: float
    ttl: float


class CacheStats(BaseModel):
    """Introspection snapshot of a TTL cache."""

    size: int
    hits: int
    misses: int
    entries: list[CacheEntryStats] = Field(default_factory=list)


class OwnerCacheStats(BaseModel):
    """Cache statistics of one owner in a namespace."""

    owner: str
    stats: CacheStats


class RefreshReport(BaseModel):
    """What one background refresh run updated."""

    networks: dict[str, list[str]] = Field(default_factory=dict)
    price_ids: list[str] = Field(default_factory=list)
