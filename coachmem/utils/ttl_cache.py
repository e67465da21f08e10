"""
In-process TTL cache shared by the context aggregators.

Entries expire `ttl` seconds after insertion. The cache is bounded and evicts the
least recently used entry when full. Only the event loop thread touches it.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional

from cachetools import TLRUCache

from .logging_config import get_logger

logger = get_logger(__name__)


class _Miss:

    def __repr__(self) -> str:
        return 'MISS'

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


def cache_key(user_id: str, *parts: str) -> str:
    """Build a namespaced key, e.g. cache_key('u1', 'semantic', query[:50]) -> 'u1:semantic:...'."""
    return ':'.join([user_id, *parts])


def _expires_at(_key: str, entry: tuple, now: float) -> float:
    return now + entry[1]


class TTLCache:
    """Bounded key/value cache with per-entry time-to-live, backed by cachetools.TLRUCache."""

    def __init__(self, max_entries: int = 5000, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            max_entries: Maximum number of live entries before LRU eviction
            clock: Monotonic seconds source, injectable for tests
        """
        self.max_entries = max_entries
        # Values are stored as (value, ttl) so the expiry can be computed per entry
        self._entries = TLRUCache(maxsize=max_entries, ttu=_expires_at, timer=clock or time.monotonic)
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any:
        """Return the cached value or MISS. A read at exactly the TTL is a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            self._entries.expire()
            return MISS

        self._hits += 1
        return entry[0]

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        full = key not in self._entries and len(self._entries) >= self.max_entries
        self._entries[key] = (value, ttl)
        if full:
            logger.debug(f'Cache full, evicted least recently used entry for {key}')

    async def get_or_compute(self, key: str, ttl: float, compute: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value, computing and storing it on a miss.

        Exceptions from `compute` propagate and nothing is cached. Concurrent
        misses on the same key may both compute; the last write wins.
        """
        value = self.get(key)
        if value is not MISS:
            return value

        value = await compute()
        self.set(key, value, ttl)
        return value

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix. Returns the number removed."""
        self._entries.expire()
        removed = 0
        for key in [key for key in list(self._entries.keys()) if key.startswith(prefix)]:
            if self._entries.pop(key, None) is not None:
                removed += 1
        if removed:
            logger.debug(f'Invalidated {removed} cache entries for prefix {prefix}')
        return removed

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        before = len(self._entries)
        self._entries.expire()
        return before - len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {'entries': len(self._entries), 'hits': self._hits, 'misses': self._misses}
