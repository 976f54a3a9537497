"""
In-process TTL cache for neighborhood scores.

Keys are (lat, lng, radius) with coordinates rounded to 4 decimal places
(~10 m), so repeated lookups for the same parcel share an entry.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from fedspace.models import FederalNeighborhoodScore

log = logging.getLogger(__name__)

CacheKey = Tuple[float, float, float]


class ScoreCache:
    """
    Thread-safe TTL cache of FederalNeighborhoodScore results.

    Usage:
        cache = ScoreCache(ttl_hours=24)
        score = cache.get(lat, lng, 5)
        if score is None:
            score = calculate_federal_neighborhood_score(lat, lng, 5, index)
            cache.put(lat, lng, 5, score)
    """

    def __init__(self, ttl_hours: float = 24.0, max_entries: int = 10_000):
        self.ttl = timedelta(hours=ttl_hours)
        self.max_entries = max_entries
        self._entries: Dict[CacheKey, Tuple[datetime, FederalNeighborhoodScore]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(lat: float, lng: float, radius_miles: float) -> CacheKey:
        return (round(lat, 4), round(lng, 4), float(radius_miles))

    def get(self, lat: float, lng: float, radius_miles: float,
            now: Optional[datetime] = None) -> Optional[FederalNeighborhoodScore]:
        key = self.make_key(lat, lng, radius_miles)
        now = now or datetime.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, score = entry
            if now - stored_at >= self.ttl:
                del self._entries[key]
                self.misses += 1
                log.debug(f"Score cache entry expired for {key}")
                return None
            self.hits += 1
            return score

    def put(self, lat: float, lng: float, radius_miles: float, score: FederalNeighborhoodScore,
            now: Optional[datetime] = None):
        key = self.make_key(lat, lng, radius_miles)
        with self._lock:
            if len(self._entries) >= self.max_entries and key not in self._entries:
                # Evict the oldest entry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (now or datetime.now(), score)

    def invalidate(self, lat: Optional[float] = None, lng: Optional[float] = None,
                   radius_miles: Optional[float] = None):
        """Drop one entry, or everything when called without arguments."""
        with self._lock:
            if lat is None or lng is None or radius_miles is None:
                self._entries.clear()
                return
            self._entries.pop(self.make_key(lat, lng, radius_miles), None)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = now or datetime.now()
        with self._lock:
            expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            log.info(f"Purged {len(expired)} expired neighborhood scores")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
