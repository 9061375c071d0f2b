"""
In-process price store with TTL metadata.
"""
import threading
import logging
import time
from typing import Dict, Optional

from .core import CacheEntry, CacheKey, Clock, QuoteSource, is_valid_price
from .errors import InvalidValueError

logger = logging.getLogger("price_cache.store")


class CacheStore:
    """
    Key -> CacheEntry map.

    Entries are immutable, so a put is a single reference swap under the
    lock and readers never see a half-updated entry. Nothing is ever evicted:
    the last good value for a key stays available as a stale fallback.
    """

    def __init__(self, ttl_seconds: float = 180.0, clock: Clock = time.time):
        """
        Args:
            ttl_seconds: How long a fetched value counts as fresh
            clock: Returns the current time in epoch seconds
        """
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, value: float, source: QuoteSource) -> CacheEntry:
        """
        Create or replace the entry for key, stamped with the current time.

        Raises:
            InvalidValueError: value is not a finite positive number
        """
        if not is_valid_price(value):
            raise InvalidValueError(f"Refusing to cache invalid price {value!r} for {key}")

        now = self._clock()
        entry = CacheEntry(
            value=float(value),
            fetched_at=now,
            expires_at=now + self._ttl,
            source=source,
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"Stored {key} = {entry.value} from {source.value}")
        return entry

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() < entry.expires_at

    def snapshot(self) -> Dict[CacheKey, CacheEntry]:
        """Point-in-time copy of all entries."""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries
