"""Bounded memo of IP address -> country code."""

from __future__ import annotations

import threading
from typing import Dict, Optional, Union

from .constants import CACHE_CAPACITY


class _NotFound:
    """Marker for addresses the database has no country for."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()

CachedValue = Union[str, _NotFound]


class ResolutionCache:
    """
    Fixed-capacity cache with first-in-first-out eviction.

    When a new key is inserted into a full cache, the key that was inserted
    earliest among those still held is dropped. Reads never change an
    entry's position, so this is not an LRU even though callers often call
    it one. "Not found" answers are stored as ``NOT_FOUND`` so unresolvable
    addresses are not looked up again.
    """

    def __init__(self, capacity: int = CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        # dicts keep insertion order; the first key is the oldest
        self._entries: Dict[str, CachedValue] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, ip: str) -> Optional[CachedValue]:
        """Return the cached country code, ``NOT_FOUND``, or None when absent."""
        with self._lock:
            return self._entries.get(ip)

    def put(self, ip: str, country_code: Optional[str]) -> None:
        value: CachedValue = country_code if country_code else NOT_FOUND
        with self._lock:
            if ip in self._entries:
                # Overwrite in place; position stays where it was first inserted
                self._entries[ip] = value
                return
            if len(self._entries) >= self._capacity:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[ip] = value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "capacity": self._capacity}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, ip: object) -> bool:
        with self._lock:
            return ip in self._entries
