"""
💾 Cache stores
==============
Small key/value cache abstraction with a wall-clock TTL, injected into the
historical collector (datasets) and the forecast engine (trained models).
Last writer wins; no locking.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """get/set/delete with staleness decided by the store's TTL"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the value, or None when missing or older than the TTL"""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store the value stamped with the current wall-clock time"""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Drop the key if present"""


class InMemoryTTLCache(CacheStore):
    """
    Process-local cache

    Args:
        ttl_seconds: Entries older than this are treated as missing (None = never expire)
        max_entries: Least recently used entries are evicted past this size
        clock: Callable returning seconds, injectable for tests
    """

    def __init__(self, ttl_seconds: Optional[float] = None, max_entries: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, stored_at = entry
        age = self.clock() - stored_at
        if self.ttl_seconds is not None and age >= self.ttl_seconds:
            logger.info(f"⏰ Cache expired for {key} ({age / 3600:.1f}h old)")
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self.clock())
        self._entries.move_to_end(key)

        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.info(f"🧹 Evicted {evicted} from cache")

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
