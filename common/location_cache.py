"""
In-memory cache of volume server locations keyed by file id.

Placement is immutable once a file id has been assigned, so a stale entry is
still correct; entries simply expire after a freshness window so that moved
or re-replicated volumes are eventually picked up again.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from common.constants import LOCATION_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class LocationCacheEntry:
    """
    Single location cache entry.

    Attributes:
        locations: Volume server addresses in "HOST:PORT" format
        stored_at: Clock reading when the entry was written
    """
    locations: List[str]
    stored_at: float


class LocationCache:
    """
    Thread-safe cache of file id -> volume server addresses.

    Owned by a client instance. The clock is injectable so expiry can be
    driven deterministically.
    """

    def __init__(
        self,
        ttl_seconds: float = LOCATION_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize location cache.

        Args:
            ttl_seconds: Freshness window for an entry
            clock: Monotonic time source in seconds
        """
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, LocationCacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, key: str) -> Optional[List[str]]:
        """
        Return cached locations for key if present and still fresh.

        Args:
            key: File id

        Returns:
            List of addresses, or None on miss or expiry
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if self._clock() - entry.stored_at >= self._ttl_seconds:
                del self._entries[key]
                logger.debug(f"Location cache entry expired for {key}")
                return None

            return list(entry.locations)

    def put(self, key: str, locations: List[str]) -> None:
        """
        Store locations for key, replacing any previous entry.

        Args:
            key: File id
            locations: Volume server addresses
        """
        with self._lock:
            self._entries[key] = LocationCacheEntry(
                locations=list(locations),
                stored_at=self._clock()
            )

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
