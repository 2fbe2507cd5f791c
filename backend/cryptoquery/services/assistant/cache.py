"""In-memory field cache with TTL expiry and partial-key lookups."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ... import config

logger = logging.getLogger(__name__)

# Cached values must stay JSON-compatible so they can be returned as-is.
JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]
CacheValue = Dict[str, JSONValue]


@dataclass
class CacheEntry:
    key: str
    value: CacheValue
    stored_at: float


class TTLCache:
    """Thread-safe in-memory cache whose entries expire after a fixed TTL.

    Expired entries are evicted lazily on `get` and eagerly by `cleanup`,
    which the maintenance loop runs periodically. Empty values are never
    stored, so "no data" can't come back later as a false hit.

    `set_partial` stores a batch twice: once under the composite key of the
    whole field set, and once per field as a single-field mapping. A later
    query for any subset of those fields can then be served from the cache.
    """

    def __init__(
        self,
        ttl_seconds: float = config.CACHE_TTL_MS / 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def composite_key(keys: Iterable[str]) -> str:
        """Key under which a batch for `keys` is stored."""
        return config.CACHE_KEY_DELIMITER.join(sorted(keys))

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds

    def get(self, key: str) -> Optional[CacheValue]:
        """Return the value stored under `key`, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                return None

            self._hits += 1
            return entry.value

    def set(self, key: str, value: CacheValue) -> None:
        """Store `value` under `key`. Empty values are discarded."""
        if not value:
            return

        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    def get_partial(self, keys: Iterable[str]) -> Dict[str, CacheValue]:
        """Look up several keys at once.

        Only keys that are present and unexpired appear in the result. When
        more than one key is requested and a batch for exactly that set was
        stored, it is included under its composite key as well.
        """
        keys = set(keys)
        result: Dict[str, CacheValue] = {}

        for key in keys:
            value = self.get(key)
            if value:
                result[key] = value

        if len(keys) > 1:
            composite = self.composite_key(keys)
            value = self.get(composite)
            if value:
                result[composite] = value

        return result

    def set_partial(self, keys: Iterable[str], data: CacheValue) -> None:
        """Store a batch under its composite key and each field on its own."""
        self.set(self.composite_key(keys), data)

        for field, value in data.items():
            self.set(field, {field: value})

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items()
                if self._is_expired(entry, now)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"[Cache] Swept {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        """Size and hit/miss counters (for monitoring)."""
        with self._lock:
            return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
