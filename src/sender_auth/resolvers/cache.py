"""TTL cache used for DKIM public key lookups."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..constants import DKIM_KEY_CACHE_TTL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DNSCacheEntry:
    """A cached value and the clock reading after which it is stale."""

    key: str
    value: Any
    expires_at: float


class TTLCache:
    """
    Thread-safe key/value cache with per-entry expiry.

    The clock is injectable so tests can move time forward without sleeping.
    Reads and writes take a single lock around the entry map; two threads
    missing the same key at once may both query DNS, and the last write wins.

    Example:
        >>> cache = TTLCache(default_ttl=60.0)
        >>> cache.set("s1._domainkey.example.com", key)
        >>> cache.get("s1._domainkey.example.com")
    """

    def __init__(
        self,
        default_ttl: float = DKIM_KEY_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            default_ttl: Lifetime in seconds for entries stored without an explicit TTL
            clock: Function returning the current time in seconds
        """
        self.default_ttl = default_ttl
        self.clock = clock
        self._entries: dict[str, DNSCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> DNSCacheEntry:
        """Store ``value`` under ``key``, replacing any previous entry."""
        lifetime = self.default_ttl if ttl is None else ttl
        entry = DNSCacheEntry(key=key, value=value, expires_at=self.clock() + lifetime)
        with self._lock:
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Flush every entry."""
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
