"""
In-memory, scope-partitioned cache of aggregated items with an adaptive TTL.

One entry for the global scope plus one per category. Process-local: not
shared across workers.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from bookmarkr_news.models.content import CacheEntry, ContentItem
from bookmarkr_news.utils.date_extraction import utc_now

GLOBAL_SCOPE = "__all__"

# Slow-moving categories refresh less often
CATEGORY_TTL_FACTORS: Dict[str, float] = {
    "science": 2.0,
    "design": 2.0,
    "ai": 1.5,
    "business": 1.0,
    "technology": 1.0,
    "news": 0.75,
}

LOW_TRAFFIC_MULTIPLIER = 2.0


def _local_hour(now: datetime) -> int:
    return now.astimezone().hour


class AdaptiveTTL:
    """base TTL × category factor, doubled inside the low-traffic window."""

    def __init__(
        self,
        base_minutes: float = 15,
        category_factors: Optional[Dict[str, float]] = None,
        low_traffic_start: int = 0,
        low_traffic_end: int = 6,
        hour_of: Callable[[datetime], int] = _local_hour,
    ):
        self.base = timedelta(minutes=base_minutes)
        self.category_factors = category_factors if category_factors is not None else dict(CATEGORY_TTL_FACTORS)
        self.low_traffic_start = low_traffic_start
        self.low_traffic_end = low_traffic_end
        self._hour_of = hour_of

    def is_low_traffic(self, now: datetime) -> bool:
        hour = self._hour_of(now)
        if self.low_traffic_start <= self.low_traffic_end:
            return self.low_traffic_start <= hour < self.low_traffic_end
        # Window wraps midnight, e.g. 22 → 5
        return hour >= self.low_traffic_start or hour < self.low_traffic_end

    def ttl_for(self, scope: Optional[str], now: datetime) -> timedelta:
        factor = 1.0 if scope in (None, GLOBAL_SCOPE) else self.category_factors.get(scope, 1.0)
        if self.is_low_traffic(now):
            factor *= LOW_TRAFFIC_MULTIPLIER
        return self.base * factor


class CacheStore:
    """
    Scoped cache entries. Only the aggregator writes; everyone reads.
    A fresh hit returns the stored list object itself.
    """

    def __init__(self, ttl: Optional[AdaptiveTTL] = None, clock: Callable[[], datetime] = utc_now):
        self.ttl = ttl or AdaptiveTTL()
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def scope_key(category: Optional[str]) -> str:
        return category or GLOBAL_SCOPE

    def get_entry(self, category: Optional[str]) -> Optional[CacheEntry]:
        return self._entries.get(self.scope_key(category))

    def is_fresh(self, category: Optional[str]) -> bool:
        entry = self.get_entry(category)
        if entry is None:
            return False
        now = self._clock()
        ttl = self.ttl.ttl_for(self.scope_key(category), now)
        return entry.age_seconds(now) <= ttl.total_seconds()

    def get_fresh(self, category: Optional[str]) -> Optional[List[ContentItem]]:
        """Items for the scope if within TTL, else None."""
        if self.is_fresh(category):
            self.hits += 1
            return self._entries[self.scope_key(category)].items
        self.misses += 1
        return None

    def get_stale(self, category: Optional[str]) -> Optional[List[ContentItem]]:
        """Items for the scope regardless of age (None if never stored)."""
        entry = self.get_entry(category)
        return entry.items if entry is not None else None

    def put(self, category: Optional[str], items: List[ContentItem]) -> CacheEntry:
        entry = CacheEntry(items=items, last_updated=self._clock())
        self._entries[self.scope_key(category)] = entry
        self.logger.debug(f"Cached {len(items)} items for scope {self.scope_key(category)}")
        return entry

    def clear(self, category: Optional[str] = None) -> None:
        if category is None:
            self._entries.clear()
        else:
            self._entries.pop(self.scope_key(category), None)

    def get_cache_statistics(self) -> Dict[str, Any]:
        now = self._clock()
        scopes = {}
        for scope, entry in self._entries.items():
            scopes[scope] = {
                "items": len(entry.items),
                "age_seconds": round(entry.age_seconds(now), 1),
                "ttl_seconds": self.ttl.ttl_for(scope, now).total_seconds(),
                "fresh": entry.age_seconds(now) <= self.ttl.ttl_for(scope, now).total_seconds(),
            }
        return {"hits": self.hits, "misses": self.misses, "scopes": scopes}
