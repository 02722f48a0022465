"""Per-owner partitioning of TTL caches."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Generic, TypeVar

from crypto_balance_tracker.cache.ttl import DEFAULT_SWEEP_INTERVAL, DEFAULT_TTL, CacheEntry, TTLCache
from crypto_balance_tracker.core.models import CacheStats, OwnerCacheStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_owner(owner: str) -> str:
    """
    Normalize an owner id for use as a namespace key.

    EVM addresses are case-insensitive, so ``0xABC...`` and ``0xabc...``
    must land in the same bucket.

    """
    return owner.strip().lower()


class OwnerCacheNamespace(Generic[T]):
    """
    Registry of independent TTL caches, one per owner (wallet address).

    Owner caches are created lazily on first write and released with
    ``clear_owner()``, which also cancels that owner's sweep task.

    Parameters
    ----------
    default_ttl : float
        Default TTL in seconds for every owner cache
    sweep_interval : float | None
        Interval of each owner's periodic sweep. None disables sweep tasks.
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float | None = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._caches: dict[str, TTLCache[T]] = {}

    def _owner_cache(self, owner: str) -> TTLCache[T]:
        key = normalize_owner(owner)
        cache = self._caches.get(key)
        if cache is None:
            cache = TTLCache(
                default_ttl=self.default_ttl,
                sweep_interval=self.sweep_interval or DEFAULT_SWEEP_INTERVAL,
                clock=self._clock,
            )
            self._caches[key] = cache
            self._maybe_start_sweeper(cache)
        return cache

    def _maybe_start_sweeper(self, cache: TTLCache[T]) -> None:
        if self.sweep_interval is None:
            return
        try:
            cache.start_sweeper()
        except RuntimeError:
            # No running loop: lazy expiry still applies, eager sweeps come from sweep()
            logger.debug("No running event loop, owner cache created without sweep task")

    def _existing(self, owner: str) -> TTLCache[T] | None:
        return self._caches.get(normalize_owner(owner))

    def set(self, owner: str, key: str, value: T, ttl: float | None = None) -> None:
        """Store a value in the owner's cache, creating the cache if needed."""
        self._owner_cache(owner).set(key, value, ttl)

    def get(self, owner: str, key: str) -> T | None:
        """Get a live value from the owner's cache."""
        cache = self._existing(owner)
        if cache is None:
            return None
        return cache.get(key)

    def get_entry(self, owner: str, key: str) -> CacheEntry[T] | None:
        """Get a live entry with metadata from the owner's cache."""
        cache = self._existing(owner)
        if cache is None:
            return None
        return cache.get_entry(key)

    def record_lookup(self, owner: str, hit: bool) -> None:
        """Count a hit or miss on the owner's cache, if it has one."""
        cache = self._existing(owner)
        if cache is not None:
            cache.record_lookup(hit)

    def delete(self, owner: str, key: str) -> bool:
        """Remove one key from the owner's cache."""
        cache = self._existing(owner)
        if cache is None:
            return False
        return cache.delete(key)

    def clear_owner(self, owner: str) -> None:
        """Release the owner's cache and its sweep task."""
        cache = self._caches.pop(normalize_owner(owner), None)
        if cache is not None:
            cache.stop_sweeper()
            cache.clear()

    def clear_all(self) -> None:
        """Release every owner's cache."""
        for cache in self._caches.values():
            cache.stop_sweeper()
            cache.clear()
        self._caches.clear()

    def owners(self) -> list[str]:
        """List normalized owner ids that currently have a cache."""
        return list(self._caches)

    def sweep(self) -> dict[str, int]:
        """
        Remove expired entries from every owner cache.

        Returns
        -------
        dict[str, int]
            Number of entries removed per owner

        """
        return {owner: cache.sweep() for owner, cache in self._caches.items()}

    def stats_for_owner(self, owner: str) -> CacheStats | None:
        """Statistics of one owner's cache, or None if it has none."""
        cache = self._existing(owner)
        if cache is None:
            return None
        return cache.stats()

    def stats_for_all_owners(self) -> list[OwnerCacheStats]:
        """Statistics of every owner's cache."""
        return [OwnerCacheStats(owner=owner, stats=cache.stats()) for owner, cache in self._caches.items()]

    async def aclose(self) -> None:
        """Release every cache and wait for sweep tasks to finish cancelling."""
        tasks = [task for cache in self._caches.values() if (task := cache.stop_sweeper()) is not None]
        self.clear_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
