"""
Bounded result caches.

Caches here are capacity-capped memo tables. There is no eviction: once a
cache holds ``max_entries`` items, further inserts are dropped until the
cache is cleared. Lookups keep working, so a full cache degrades to misses
for new keys rather than failing.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar
import logging

from .utils import UNIX_EPOCH, to_naive_utc

logger = logging.getLogger(__name__)

V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheStats:
    """Counters for a bounded cache."""

    hits: int = 0
    misses: int = 0
    rejected: int = 0
    size: int = 0
    max_entries: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "rejected": self.rejected,
            "size": self.size,
            "max_entries": self.max_entries,
        }


class BoundedCache(Generic[V]):
    """Insert-until-full memo table."""

    def __init__(self, max_entries: int, name: str = "cache") -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.name = name
        self._entries: Dict[Hashable, V] = {}
        self._hits = 0
        self._misses = 0
        self._rejected = 0
        self._warned_full = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.max_entries

    def get(self, key: Hashable, default: Optional[V] = None) -> Optional[V]:
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            self._misses += 1
            return default
        self._hits += 1
        return value  # type: ignore[return-value]

    def put(self, key: Hashable, value: V) -> bool:
        """
        Store a value.

        Returns:
            True if the value is now cached, False if the cache was full
        """
        if key in self._entries:
            self._entries[key] = value
            return True

        if self.is_full:
            self._rejected += 1
            if not self._warned_full:
                logger.warning(
                    f"{self.name} reached {self.max_entries} entries; "
                    f"new results will not be cached until it is cleared"
                )
                self._warned_full = True
            return False

        self._entries[key] = value
        return True

    def get_or_compute(self, key: Hashable, compute: Callable[[], V]) -> V:
        """Return the cached value for key, computing and admitting it on a miss."""
        value = self._entries.get(key, _MISSING)
        if value is not _MISSING:
            self._hits += 1
            return value  # type: ignore[return-value]

        self._misses += 1
        computed = compute()
        self.put(key, computed)
        return computed

    def invalidate(self, predicate: Callable[[Hashable], bool]) -> int:
        """Remove every entry whose key matches predicate. Returns count removed."""
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self._warned_full = False
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        self._warned_full = False

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            rejected=self._rejected,
            size=len(self._entries),
            max_entries=self.max_entries,
        )


def time_bucket(timestamp: datetime, bucket_seconds: float) -> int:
    """Index of the fixed-width time bucket containing timestamp (nearest bucket)."""
    epoch_seconds = (to_naive_utc(timestamp) - UNIX_EPOCH).total_seconds()
    return int(round(epoch_seconds / bucket_seconds))


def pass_cache_key(
    object_id: str,
    station_key: Tuple[float, float, float],
    start_time: datetime,
    end_time: datetime,
    *parameters: Any,
) -> Tuple[Any, ...]:
    """Composite key for a full pass-search result."""
    return (object_id, station_key, start_time, end_time) + tuple(parameters)
