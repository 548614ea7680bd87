"""Database repository for cached match results.

This module provides an async SQLite cache store so several processes
(for example a scheduler and an API worker) can share scored results.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite

from jobmatch.cache.store import DEFAULT_TTL_SECONDS, CacheEntry

if TYPE_CHECKING:
    from jobmatch.matching.models import MatchResult

logger = logging.getLogger(__name__)

# SQL schema for the cache table
CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS match_cache (
    fingerprint TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    created_at REAL NOT NULL,
    ttl_seconds REAL NOT NULL
)
"""

CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_match_cache_created ON match_cache(created_at);
"""


class SqliteCacheStore:
    """Async SQLite cache store.

    Entries are stored as JSON and expire `ttl_seconds` after they were
    written. Writes are upserts, so concurrent writers for the same
    fingerprint resolve to the last write.
    """

    def __init__(
        self,
        db_path: Path | str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
            ttl_seconds: Lifetime of entries created through `new_entry`.
            clock: Wall-clock source (epoch seconds).
        """
        self.db_path = Path(db_path)
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._connection: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()

    @asynccontextmanager
    async def _get_connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get a database connection.

        Yields:
            An aiosqlite connection.
        """
        if self._connection is None:
            async with self._connect_lock:
                # Concurrent first callers share the connection opened by the winner
                if self._connection is None:
                    connection = await aiosqlite.connect(self.db_path)
                    connection.row_factory = aiosqlite.Row
                    self._connection = connection
        yield self._connection

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._get_connection() as conn:
            await conn.execute(CREATE_TABLE_SQL)
            await conn.executescript(CREATE_INDEX_SQL)
            await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def new_entry(self, fingerprint: str, result: MatchResult) -> CacheEntry:
        return CacheEntry(
            fingerprint=fingerprint,
            result=result,
            created_at=self.clock(),
            ttl_seconds=self.ttl_seconds,
        )

    async def get(self, fingerprint: str) -> CacheEntry | None:
        """Get an unexpired entry by fingerprint.

        Args:
            fingerprint: The fingerprint to look up.

        Returns:
            The cache entry if found and still live, None otherwise.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM match_cache WHERE fingerprint = ?",
                (fingerprint,),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        from jobmatch.matching.models import MatchResult

        entry = CacheEntry(
            fingerprint=row["fingerprint"],
            result=MatchResult.from_dict(json.loads(row["payload"])),
            created_at=row["created_at"],
            ttl_seconds=row["ttl_seconds"],
        )
        if entry.is_expired(self.clock()):
            return None
        return entry

    async def put(self, entry: CacheEntry) -> None:
        """Insert or replace an entry.

        Args:
            entry: The cache entry to store.
        """
        payload = json.dumps(entry.result.to_dict(), sort_keys=True)
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO match_cache (
                    fingerprint, payload, created_at, ttl_seconds
                ) VALUES (?, ?, ?, ?)
                """,
                (entry.fingerprint, payload, entry.created_at, entry.ttl_seconds),
            )
            await conn.commit()

    async def prune_expired(self) -> int:
        """Delete all expired entries.

        Returns:
            The number of rows deleted.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM match_cache WHERE created_at + ttl_seconds <= ?",
                (self.clock(),),
            )
            await conn.commit()
            deleted = cursor.rowcount

        if deleted:
            logger.info("Pruned %d expired cache entries", deleted)
        return deleted

    async def count(self) -> int:
        """Return the number of stored entries, expired or not."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM match_cache")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
