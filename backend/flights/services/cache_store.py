"""
Two-tier flight cache on top of a Django cache backend.

Every route key has a *fresh* entry, authoritative for `ttl` seconds, and a
*stale* shadow kept for twice as long. The shadow is only read when a live
fetch fails. Two process-wide scalars record the last successful write for
the health endpoint.
"""
import hashlib
import logging
import threading
import time
from dataclasses import dataclass

from flights.offers import FlightOffer, RouteQuery

logger = logging.getLogger(__name__)

STALE_SUFFIX = "_stale"
LAST_WRITE_TIMESTAMP_KEY = "last_scrape_timestamp"
LAST_WRITE_KEY_KEY = "last_scrape_cache_key"

STALE_TTL_FACTOR = 2
METADATA_TTL_FACTOR = 24


@dataclass(frozen=True)
class CacheEntry:
    key: str
    offers: tuple[FlightOffer, ...]
    strategy: str
    written_at: float


class ResilientCacheStore:
    def __init__(self, backend, ttl: int, prefix: str = "flights_"):
        self._backend = backend
        self._ttl = int(ttl)
        self._prefix = prefix
        self._guard = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    @property
    def ttl(self) -> int:
        return self._ttl

    @property
    def stale_ttl(self) -> int:
        return self._ttl * STALE_TTL_FACTOR

    def make_key(self, query: RouteQuery) -> str:
        digest = hashlib.md5(query.cache_token().encode("utf-8")).hexdigest()
        return f"{self._prefix}{digest}"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _read(self, cache_key: str, lock_key: str) -> CacheEntry | None:
        with self._lock_for(lock_key):
            value = self._backend.get(cache_key)
        return value if isinstance(value, CacheEntry) else None

    def get_fresh(self, key: str) -> CacheEntry | None:
        return self._read(key, key)

    def get_stale(self, key: str) -> CacheEntry | None:
        return self._read(key + STALE_SUFFIX, key)

    def put_fresh(self, key: str, entry: CacheEntry) -> None:
        with self._lock_for(key):
            self._backend.set(key, entry, timeout=self._ttl)
            self._record_write(key, entry.written_at)

    def put_stale(self, key: str, entry: CacheEntry) -> None:
        with self._lock_for(key):
            self._backend.set(key + STALE_SUFFIX, entry, timeout=self.stale_ttl)

    def put(self, key: str, entry: CacheEntry) -> None:
        """Fresh entry and stale shadow, written as one step for the key."""
        with self._lock_for(key):
            self._backend.set(key, entry, timeout=self._ttl)
            self._backend.set(key + STALE_SUFFIX, entry, timeout=self.stale_ttl)
            self._record_write(key, entry.written_at)
        logger.info("Cached flights", extra={"cache_key": key, "count": len(entry.offers)})

    def _record_write(self, key: str, written_at: float) -> None:
        timeout = self._ttl * METADATA_TTL_FACTOR
        self._backend.set(LAST_WRITE_TIMESTAMP_KEY, int(written_at), timeout=timeout)
        self._backend.set(LAST_WRITE_KEY_KEY, key, timeout=timeout)

    def get_last_write_timestamp(self) -> int | None:
        return self._backend.get(LAST_WRITE_TIMESTAMP_KEY)

    def get_last_write_key(self) -> str | None:
        return self._backend.get(LAST_WRITE_KEY_KEY)

    def make_entry(self, key: str, offers, strategy: str) -> CacheEntry:
        return CacheEntry(key=key, offers=tuple(offers), strategy=strategy, written_at=time.time())

    def clear(self) -> None:
        self._backend.clear()
        with self._guard:
            self._key_locks.clear()
