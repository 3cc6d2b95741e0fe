"""
Time-bounded caches owned by a single component instance.

Entries are advisory: a miss or an expired entry only means the caller
recomputes. Nothing here is process-global, so each router or detector can
run against an isolated cache. Operations take an instance lock, so a cache
shared with the monitor's scan thread stays consistent.
"""

import threading
from typing import Dict, Generic, Hashable, Iterator, Optional, Tuple, TypeVar

from .interfaces import TimeProvider, get_time_provider
from .types import ArbitrageOpportunity

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Mapping whose entries expire ``ttl_sec`` seconds after being stored.

    Args:
        ttl_sec: Entry lifetime in seconds
        max_entries: Oldest entries are evicted beyond this size
        time_provider: Clock used for expiry (injectable for tests)
    """

    def __init__(
        self,
        ttl_sec: float,
        max_entries: int = 10000,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.ttl_sec = ttl_sec
        self.max_entries = max_entries
        self._time = time_provider or get_time_provider()
        self._entries: Dict[Hashable, Tuple[float, V]] = {}
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    def _now(self) -> float:
        return self._time.current_timestamp()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if self._now() - stored_at >= self.ttl_sec:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                # dicts keep insertion order, so the first key is the oldest
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = (self._now(), value)

    def cleanup_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            now = self._now()
            expired = [
                key
                for key, (stored_at, _) in self._entries.items()
                if now - stored_at >= self.ttl_sec
            ]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def items(self) -> Iterator[Tuple[Hashable, V]]:
        """Live (unexpired) entries."""
        now = self._now()
        with self._lock:
            entries = list(self._entries.items())
        for key, (stored_at, value) in entries:
            if now - stored_at < self.ttl_sec:
                yield key, value

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None


class OpportunityCache:
    """
    Best-known arbitrage opportunity per ordered asset cycle.

    Written only by the scan that owns it; consumers call ``snapshot()``.
    """

    def __init__(
        self,
        ttl_sec: float = 60.0,
        time_provider: Optional[TimeProvider] = None,
    ):
        self._cache: TTLCache[ArbitrageOpportunity] = TTLCache(
            ttl_sec, time_provider=time_provider
        )

    def offer(self, opportunity: ArbitrageOpportunity) -> bool:
        """
        Store the opportunity if it is new or strictly more profitable.

        Returns:
            True if the cache entry was created or replaced
        """
        key = opportunity.cycle_key
        existing = self._cache.get(key)
        if existing is not None and existing.profit_bps >= opportunity.profit_bps:
            return False
        self._cache.set(key, opportunity)
        return True

    def get(self, cycle_key: str) -> Optional[ArbitrageOpportunity]:
        return self._cache.get(cycle_key)

    def snapshot(self) -> Dict[str, ArbitrageOpportunity]:
        """Copy of all live entries."""
        return {key: value for key, value in self._cache.items()}

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
