"""Pricing services for USD value enrichment."""

from crypto_balance_tracker.pricing.coingecko import CoinGeckoPriceReader
from crypto_balance_tracker.pricing.service import PriceCacheService, calculate_usd_value

__all__ = [
    "CoinGeckoPriceReader",
    "PriceCacheService",
    "calculate_usd_value",
]
