"""
Time-to-live cache for in-flight and completed lookups.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from .models import CacheEntry


T = TypeVar("T")


class TTLCache(Generic[T]):
    """Map keys to futures stamped with their creation time.

    Validity is checked lazily on read; nothing is evicted in the background.
    Entries are replaced whole, never mutated.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[CacheEntry[T]]:
        return self._entries.get(key)

    def set(self, key: Hashable, future: "asyncio.Future[T]") -> CacheEntry[T]:
        entry = CacheEntry(value=future, created_at=self.clock())
        self._entries[key] = entry
        return entry

    def is_valid(self, entry: CacheEntry[T], ttl: float) -> bool:
        return entry.is_valid(ttl, self.clock())

    def discard(self, key: Hashable, future: Optional["asyncio.Future[T]"] = None) -> None:
        """Remove ``key``; with ``future`` given, only if the entry still holds it."""
        entry = self._entries.get(key)
        if entry is None:
            return
        if future is not None and entry.value is not future:
            return
        del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
