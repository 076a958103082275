"""Bounded TTL cache for model responses.

Entries expire a fixed time after insertion and the least recently used
entry is evicted when the cache is full. All access goes through one lock.
"""

import json
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Sequence

import structlog

from .models import CacheEntry

logger = structlog.get_logger(__name__)


class ResponseCache:
    """Thread-safe LRU cache with a time-to-live per entry."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry after insertion
            max_entries: Maximum number of live entries
            clock: Monotonic clock in seconds
        """
        self.ttl_seconds = max(0.0, ttl_seconds)
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(self.__class__.__name__)

    @staticmethod
    def make_key(model: str, description: str, candidate_ids: Sequence[str]) -> str:
        """Generate a cache key for a model, description and candidate set."""
        # JSON encoding keeps separators inside ids or descriptions unambiguous
        return json.dumps([model, description, list(candidate_ids)], ensure_ascii=False)

    def get(self, key: str) -> Optional[str]:
        """Get a cached response if present and not expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self.ttl_seconds):
                # Remove expired entry
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.response_text

    def put(self, key: str, response_text: str) -> None:
        """Cache a response, evicting least recently used entries if full."""
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key, response_text=response_text, created_at=self._clock()
            )
            self._entries.move_to_end(key)
            evicted = 0
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                evicted += 1

        self.logger.debug(
            "Cached model response", ttl=self.ttl_seconds, evicted=evicted
        )

    def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired_keys = [
                key
                for key, entry in self._entries.items()
                if entry.is_expired(now, self.ttl_seconds)
            ]
            for key in expired_keys:
                del self._entries[key]

        if expired_keys:
            self.logger.info(
                "Cleaned up expired cache entries", count=len(expired_keys)
            )

        return len(expired_keys)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
