"""
Injectable key/value cache with per-entry TTL.

Components that cache (the threshold provider) receive a Cache instance
instead of holding module-level state, so tests and concurrent schema
configurations get isolated caches.
"""
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class Cache(ABC):
    """Minimal cache contract: get / set with TTL / delete / clear."""

    @abstractmethod
    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value or None when absent or expired."""

    @abstractmethod
    def set(self, key: Hashable, value: Any, ttl_seconds: float) -> None:
        """Store a value that expires after ttl_seconds."""

    @abstractmethod
    def delete(self, key: Hashable) -> None:
        """Drop a single key (no error if absent)."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every key."""


class InMemoryTTLCache(Cache):
    """Thread-safe in-process TTL cache."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)
