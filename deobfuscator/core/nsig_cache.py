"""
Cache of deobfuscated throttling ("n") parameters.

A video has 10 to 30 formats and every streaming url of a response carries
the same obfuscated n value, so after the first format the rest are
rewritten from this cache without evaluating the player script again.

Eviction is first-in-first-out: a lookup does not renew an entry.
"""

import threading
from collections import OrderedDict

NSIG_CACHE_CAPACITY = 50


class ThrottlingParameterCache:
    """Bounded, insertion-ordered map of obfuscated -> deobfuscated n values."""

    def __init__(self, capacity: int = NSIG_CACHE_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, value: str):
        """Insert *key*; an existing entry keeps its first value and position."""
        with self._lock:
            if key in self._entries:
                return
            self._entries[key] = value
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
