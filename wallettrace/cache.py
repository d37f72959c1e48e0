"""In-process TTL cache shared by the fetchers.

Entries carry an absolute expiry (epoch seconds) or 0 for "never expires".
Expired entries are dropped lazily on read; there is no background sweeper
and no size bound, so callers keep TTLs short for high-cardinality keys.

Keys are namespaced strings, e.g. ``trace:<chain>:<address>:<fingerprint>``.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Any, Callable

# Default TTLs (seconds) used by the fetchers
TRANSFER_TTL = 20.0
CONTRACT_TTL = 60.0
LOOKUP_TTL = 15.0


@dataclass
class _Entry:
    value: Any
    expires_at: float  # epoch seconds; 0 = no expiry


class TTLCache:
    """
    Expiring key-value store.

    ``get`` returns a deep copy so callers can never mutate a cached value
    in place. ``set`` always replaces the whole entry.
    """

    def __init__(self, default_ttl: float = 0.0, clock: Callable[[], float] = time.time) -> None:
        self._default_ttl = max(0.0, default_ttl)
        self._clock = clock
        self._store: dict[str, _Entry] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return default
        if entry.expires_at and self._clock() > entry.expires_at:
            del self._store[key]
            return default
        return copy.deepcopy(entry.value)

    def __contains__(self, key: str) -> bool:
        return self.get(key, MISSING) is not MISSING

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl if ttl > 0 else 0.0
        self._store[key] = _Entry(value=copy.deepcopy(value), expires_at=expires_at)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


# Sentinel for "absent", since None is a legitimate cached value
MISSING = object()
