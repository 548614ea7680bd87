"""Cache store interface and the in-process implementation."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from jobmatch.matching.models import MatchResult

DEFAULT_TTL_SECONDS = 6 * 60 * 60
DEFAULT_MAX_ENTRIES = 10_000


@dataclass(frozen=True)
class CacheEntry:
    """A stored match result keyed by request fingerprint."""

    fingerprint: str
    result: MatchResult
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl_seconds


@runtime_checkable
class CacheStore(Protocol):
    """Anything the matching service can read and write results through.

    Stores own their TTL and clock, so entries are created through
    `new_entry` rather than built by the caller.
    """

    def new_entry(self, fingerprint: str, result: MatchResult) -> CacheEntry: ...

    async def get(self, fingerprint: str) -> CacheEntry | None: ...

    async def put(self, entry: CacheEntry) -> None: ...


class InMemoryCacheStore:
    """Process-local cache with TTL expiry and LRU eviction.

    Expired entries are dropped when read. When the store is full the
    least recently used entry is evicted to make room.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def new_entry(self, fingerprint: str, result: MatchResult) -> CacheEntry:
        """Build an entry stamped with this store's clock and TTL."""
        return CacheEntry(
            fingerprint=fingerprint,
            result=result,
            created_at=self.clock(),
            ttl_seconds=self.ttl_seconds,
        )

    async def get(self, fingerprint: str) -> CacheEntry | None:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self._entries[fingerprint]
            return None
        self._entries.move_to_end(fingerprint)
        return entry

    async def put(self, entry: CacheEntry) -> None:
        self._entries[entry.fingerprint] = entry
        self._entries.move_to_end(entry.fingerprint)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
