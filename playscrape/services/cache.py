from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Callable, Optional

import structlog

from playscrape.models.app_record import AppRecord, CacheEntry
from playscrape.utils.rwlock import ReadWriteLock

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 6 * 60 * 60

Clock = Callable[[], float]


class ResultCache:
    """In-memory identifier -> AppRecord store with a fixed time-to-live.

    Entries are only ever evicted by age, on the read that discovers they
    expired. There is no capacity bound and no background sweep. The store
    lives for the lifetime of the process.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._stats_lock = threading.Lock()
        self._counters: Counter[str] = Counter()

    def get(self, identifier: str) -> Optional[AppRecord]:
        with self._lock.read():
            entry = self._entries.get(identifier)
            now = self._clock()
            expired = entry is not None and entry.is_expired(now, self.ttl_seconds)

        if entry is None:
            self._count("misses")
            return None

        if expired:
            self._evict_if_expired(identifier)
            self._count("misses")
            return None

        self._count("hits")
        return entry.record

    def put(self, identifier: str, record: AppRecord) -> None:
        entry = CacheEntry(record=record, created_at=self._clock())
        with self._lock.write():
            self._entries[identifier] = entry

    def invalidate(self, identifier: str) -> bool:
        with self._lock.write():
            return self._entries.pop(identifier, None) is not None

    def clear(self) -> None:
        with self._lock.write():
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        with self._lock.read():
            return identifier in self._entries

    def stats(self) -> dict[str, float | int]:
        with self._stats_lock:
            counters = {
                name: self._counters[name]
                for name in ("hits", "misses", "expirations")
            }
        return {
            "size": len(self),
            "ttl_seconds": self.ttl_seconds,
            **counters,
        }

    def _count(self, counter: str) -> None:
        with self._stats_lock:
            self._counters[counter] += 1

    def _evict_if_expired(self, identifier: str) -> None:
        with self._lock.write():
            # A concurrent put may have refreshed the entry since the read.
            entry = self._entries.get(identifier)
            if entry is None:
                return
            now = self._clock()
            if not entry.is_expired(now, self.ttl_seconds):
                return
            del self._entries[identifier]
        self._count("expirations")
        logger.info(
            "cache.expired",
            identifier=identifier,
            age_seconds=round(entry.age(now), 3),
            ttl_seconds=self.ttl_seconds,
        )
