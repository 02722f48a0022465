"""Core functionality including models, exceptions and registries."""

from crypto_balance_tracker.core.exceptions import (
    CacheConsistencyError,
    NotFoundError,
    TrackerError,
    UpstreamFetchError,
    ValidationError,
)
from crypto_balance_tracker.core.models import (
    AddressPortfolio,
    Balance,
    ChainFamily,
    Network,
    NetworkBalance,
    PortfolioSummary,
    ScanResult,
    Token,
    WatchedAddress,
)
from crypto_balance_tracker.core.registry import NetworkRegistry, TokenRegistry

__all__ = [
    "AddressPortfolio",
    "Balance",
    "CacheConsistencyError",
    "ChainFamily",
    "Network",
    "NetworkBalance",
    "NetworkRegistry",
    "NotFoundError",
    "PortfolioSummary",
    "ScanResult",
    "Token",
    "TokenRegistry",
    "TrackerError",
    "UpstreamFetchError",
    "ValidationError",
    "WatchedAddress",
]
