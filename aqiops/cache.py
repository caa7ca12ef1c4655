"""In-process TTL cache placed in front of each provider adapter."""

from __future__ import annotations

import re
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

DEFAULT_TTL_SECONDS = 300.0

_WHITESPACE = re.compile(r"\s+")


def _normalize_part(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, bool):
        return str(part).lower()
    if isinstance(part, (int, float)):
        # Coordinates and radii collapse to four decimals (~11 m).
        return f"{float(part):.4f}"
    return _WHITESPACE.sub(" ", str(part)).strip().casefold()


def make_key(*parts: Any) -> str:
    """Build a cache key from query parameters.

    Text is case-folded and whitespace-collapsed so that ``"Bangkok"``,
    ``" bangkok "`` and ``"BANGKOK"`` share an entry.
    """
    return ":".join(_normalize_part(p) for p in parts)


class TTLCache:
    """Thread-safe key/value store whose entries expire after a TTL.

    Expired entries are evicted lazily when read; there is no background
    sweep.  Keys passed to ``get``/``set`` are normalized with the same
    rules as ``make_key``.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        time_func: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._time_func = time_func
        self._storage: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        key = make_key(key)
        with self._lock:
            item = self._storage.get(key)
            if item is None:
                self._misses += 1
                return None
            value, expires_at = item
            if expires_at <= self._time_func():
                del self._storage[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._storage[make_key(key)] = (value, self._time_func() + ttl)

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, int]:
        """Return hit/miss counters and the number of live keys."""
        with self._lock:
            now = self._time_func()
            live = sum(1 for _, expires_at in self._storage.values() if expires_at > now)
            return {"hits": self._hits, "misses": self._misses, "keyCount": live}

    def __len__(self) -> int:
        return self.stats()["keyCount"]


__all__ = ["TTLCache", "make_key", "DEFAULT_TTL_SECONDS"]
