"""TTL cache shared by all domains to avoid redundant upstream fetches.

Expired entries read as misses straight away, but are only evicted by
``sweep()``, which the scheduler calls on its own cadence.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger("knight-watch")


class _Miss:
    _instance: "_Miss | None" = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fingerprint(domain: str, subject: str, **params: Any) -> str:
    """Build a cache key from domain, subject and any fetch parameters."""
    parts = [domain, subject.strip().lower()]
    parts.extend(f"{k}={params[k]}" for k in sorted(params))
    return ":".join(parts)


@dataclass
class CacheEntry:
    key: Hashable
    value: Any
    fetched_at: datetime


class TTLCache:
    """Thread-safe expiring cache.

    Concurrent writers for the same key are allowed; last write wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, key: Hashable) -> Any:
        """Return the cached value, or ``MISS`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return MISS
        if self._clock() - entry.fetched_at >= self._ttl:
            return MISS
        logger.debug(f"Cache hit: {key}")
        return entry.value

    def put(self, key: Hashable, value: Any) -> None:
        entry = CacheEntry(key=key, value=value, fetched_at=self._clock())
        with self._lock:
            self._entries[key] = entry

    def sweep(self) -> int:
        """Evict every expired entry.  Returns the number removed."""
        now = self._clock()
        with self._lock:
            stale = [
                k for k, e in self._entries.items() if now - e.fetched_at >= self._ttl
            ]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(f"Cache sweep evicted {len(stale)} entries")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
