"""In-memory key/value cache with per-entry expiry.

Entries expire lazily on read; ``cleanup()`` purges them eagerly. Nothing is
persisted, so a fresh process always starts cold.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class ExpiringCache(Generic[T]):
    """TTL cache for one kind of GitHub payload (contents, file text, search)."""

    def __init__(
        self,
        name: str,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.data

    def set(self, key: str, data: T, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate(self, match: Union[str, Callable[[str], bool]]) -> int:
        """Remove keys containing *match* (or satisfying it, if callable)."""
        predicate = match if callable(match) else (lambda key: match in key)
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def keys(self) -> List[str]:
        return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "total": len(self._entries),
            "expired": sum(1 for entry in self._entries.values() if entry.expired(now)),
            "hits": self.hits,
            "misses": self.misses,
        }

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)
