"""TTL-based in-memory cache with hit/miss accounting and periodic sweeping."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

from crypto_balance_tracker.core.models import CacheEntryStats, CacheStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 10 * 60
DEFAULT_SWEEP_INTERVAL = 5 * 60


class CacheEntry(Generic[T]):
    """
    Cache entry with TTL support.

    Expiry is strictly elapsed-time based: an entry is expired once
    ``now - created_at > ttl``. Reading an entry never extends its lifetime.

    Parameters
    ----------
    value : T
        Cached value
    ttl : float
        Time-to-live in seconds
    created_at : float
        Creation timestamp (epoch seconds)

    """

    def __init__(self, value: T, ttl: float, created_at: float) -> None:
        self.value = value
        self.ttl = ttl
        self.created_at = created_at
        self.last_accessed_at = created_at

    def age(self, now: float) -> float:
        """Seconds elapsed since creation."""
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        """
        Check if cache entry has expired.

        Parameters
        ----------
        now : float
            Current timestamp (epoch seconds)

        Returns
        -------
        bool
            True if expired, False otherwise

        """
        return self.age(now) > self.ttl


class TTLCache(Generic[T]):
    """
    In-memory key/value cache with per-entry TTL.

    Expired entries are removed lazily when read and eagerly by ``sweep()``,
    which a background task can run on a fixed interval.

    Parameters
    ----------
    default_ttl : float
        Default time-to-live in seconds for entries stored without one
    sweep_interval : float
        Seconds between background sweeps once ``start_sweeper()`` is called
    clock : Callable[[], float]
        Time source returning epoch seconds

    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._cache: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._sweep_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """
        Store value in cache, replacing any existing entry.

        Parameters
        ----------
        key : str
            Cache key
        value : T
            Value to cache
        ttl : float | None
            Time-to-live in seconds. Uses default_ttl if None.

        """
        if ttl is None:
            ttl = self.default_ttl
        self._cache[key] = CacheEntry(value, ttl, self._clock())

    def get(self, key: str) -> T | None:
        """
        Get cached value if it exists and hasn't expired.

        A live entry counts as a hit and has its access time refreshed; a
        missing or expired entry counts as a miss and expired entries are
        deleted.

        Parameters
        ----------
        key : str
            Cache key

        Returns
        -------
        T | None
            Cached value if found and valid, None otherwise

        """
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    def get_entry(self, key: str) -> CacheEntry[T] | None:
        """
        Get the live entry with its metadata.

        Same expiry semantics as ``get()`` but does not touch the hit/miss
        counters. Callers use ``created_at`` and ``ttl`` to apply their own
        staleness policy.

        Parameters
        ----------
        key : str
            Cache key

        Returns
        -------
        CacheEntry[T] | None
            Entry if found and valid, None otherwise

        """
        return self._live_entry(key)

    def record_lookup(self, hit: bool) -> None:
        """Count a lookup whose outcome the caller decided after ``get_entry()``."""
        if hit:
            self._hits += 1
        else:
            self._misses += 1

    def _live_entry(self, key: str) -> CacheEntry[T] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._cache[key]
            return None

        entry.last_accessed_at = now
        return entry

    def has(self, key: str) -> bool:
        """Check whether a live entry exists for key."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        """
        Remove an entry.

        Returns
        -------
        bool
            True if an entry was removed

        """
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cached entries and reset hit/miss counters."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    def sweep(self) -> int:
        """
        Remove all expired entries from cache.

        Returns
        -------
        int
            Number of entries removed

        """
        now = self._clock()
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    def stats(self) -> CacheStats:
        """
        Snapshot of size, counters and entry ages. Does not mutate the cache.

        Returns
        -------
        CacheStats
            Cache statistics

        """
        now = self._clock()
        entries = [
            CacheEntryStats(key=key, age=entry.age(now), ttl=entry.ttl) for key, entry in self._cache.items()
        ]
        return CacheStats(size=len(self._cache), hits=self._hits, misses=self._misses, entries=entries)

    async def get_or_set(self, key: str, factory: Callable[[], Awaitable[T]], ttl: float | None = None) -> T:
        """
        Return the cached value, or await factory and cache its result.

        Parameters
        ----------
        key : str
            Cache key
        factory : Callable[[], Awaitable[T]]
            Coroutine function producing the value on a miss
        ttl : float | None
            Time-to-live for a newly produced value

        Returns
        -------
        T
            Cached or freshly produced value

        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        self.set(key, value, ttl)
        return value

    def get_many(self, keys: Iterable[str]) -> dict[str, T | None]:
        """Get several keys at once."""
        return {key: self.get(key) for key in keys}

    def set_many(self, items: Iterable[tuple[str, T, float | None]]) -> None:
        """Set several ``(key, value, ttl)`` items at once."""
        for key, value, ttl in items:
            self.set(key, value, ttl)

    @property
    def sweeper_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start_sweeper(self) -> None:
        """
        Start the periodic sweep task on the running event loop.

        Raises
        ------
        RuntimeError
            If called outside a running event loop

        """
        if self.sweeper_running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_forever())

    def stop_sweeper(self) -> asyncio.Task | None:
        """
        Cancel the periodic sweep task, if any.

        Returns
        -------
        asyncio.Task | None
            The cancelled task, so async callers can await its completion

        """
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
        return task

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.debug("Swept %d expired cache entries", removed)
