"""In-memory TTL caches, globally shared or partitioned per owner."""

from crypto_balance_tracker.cache.namespace import OwnerCacheNamespace, normalize_owner
from crypto_balance_tracker.cache.ttl import CacheEntry, TTLCache

__all__ = [
    "CacheEntry",
    "OwnerCacheNamespace",
    "TTLCache",
    "normalize_owner",
]
