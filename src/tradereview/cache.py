"""Ingestion cache backends — Memory (LRU, per-key build locks) and None.

Keys are ``(instrument, fingerprint)`` pairs. A source file that changes on
disk gets a new fingerprint and therefore a fresh build; the stale entry
ages out through LRU eviction.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, Hashable]


class CacheBackend(ABC):
    """Abstract ingestion cache interface."""

    @abstractmethod
    def get_or_build(self, key: CacheKey, builder: Callable[[], T]) -> T:
        """Return the cached value for ``key``, building it on a miss."""
        ...

    @abstractmethod
    def has_data(self, key: CacheKey) -> bool:
        ...

    @abstractmethod
    def clear(self, instrument: str) -> None:
        ...

    @abstractmethod
    def clear_all(self) -> None:
        ...


class NoCache(CacheBackend):
    """No-op cache — builds on every call."""

    def get_or_build(self, key, builder):  # type: ignore[override]
        return builder()

    def has_data(self, key):  # type: ignore[override]
        return False

    def clear(self, instrument):  # type: ignore[override]
        pass

    def clear_all(self):
        pass


class _InFlight:
    """Build lock for one key plus the number of callers using it."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class MemoryCache(CacheBackend):
    """In-memory LRU cache of built ingestions.

    Each key has its own build lock: concurrent requests for the same key
    wait for the one in-flight build instead of duplicating it, while builds
    for other keys proceed in parallel. A build that raises stores nothing;
    the next waiter retries it.

    Build locks live only while some caller is using them. They are created
    and dropped under the store lock, so eviction and ``clear`` never touch
    a lock another thread holds or waits on.
    """

    def __init__(self, max_entries: int = 32) -> None:
        self.max_entries = max_entries
        self._store: OrderedDict[CacheKey, object] = OrderedDict()
        self._lock = threading.Lock()
        self._in_flight: dict[CacheKey, _InFlight] = {}

    def _lookup(self, key: CacheKey) -> tuple[bool, object]:
        with self._lock:
            return self._lookup_locked(key)

    def _lookup_locked(self, key: CacheKey) -> tuple[bool, object]:
        if key in self._store:
            self._store.move_to_end(key)  # refresh LRU position
            return True, self._store[key]
        return False, None

    def _evict_lru(self) -> None:
        while len(self._store) > self.max_entries:
            evicted, _ = self._store.popitem(last=False)
            logger.debug("Evicted %s from ingestion cache", evicted)

    def get_or_build(self, key: CacheKey, builder: Callable[[], T]) -> T:
        with self._lock:
            hit, value = self._lookup_locked(key)
            if hit:
                return value  # type: ignore[return-value]
            flight = self._in_flight.get(key)
            if flight is None:
                flight = self._in_flight[key] = _InFlight()
            flight.users += 1

        try:
            with flight.lock:
                # Another thread may have finished the build while we waited.
                hit, value = self._lookup(key)
                if hit:
                    return value  # type: ignore[return-value]
                built = builder()
                with self._lock:
                    self._store[key] = built
                    self._store.move_to_end(key)
                    self._evict_lru()
                return built
        finally:
            with self._lock:
                flight.users -= 1
                if flight.users == 0:
                    del self._in_flight[key]

    def has_data(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._store

    def clear(self, instrument: str) -> None:
        with self._lock:
            for key in [k for k in self._store if k[0] == instrument]:
                del self._store[key]

    def clear_all(self) -> None:
        with self._lock:
            self._store.clear()
