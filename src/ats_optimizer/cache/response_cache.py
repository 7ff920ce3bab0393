"""Content-addressed caches for capability responses and parsed documents.

Keys are content hashes, so identical keys always carry identical values and
concurrent writers need no coordination beyond last-writer-wins.
"""

from __future__ import annotations

import hashlib
import sqlite3
import time
from pathlib import Path

DEFAULT_DB_PATH = Path.home() / ".ats-optimizer" / "cache.db"
DEFAULT_TTL_DAYS = 7


def content_hash(*parts: str) -> str:
    """Stable sha256 key over ``parts``."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class ResponseCache:
    """In-memory read-through cache with hit/miss counters."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> str | None:
        value = self._entries.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, key: str, value: str) -> None:
        self._entries[key] = value

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> int:
        """Clear all entries. Returns count of deleted entries."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> dict:
        return {"total": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteResponseCache(ResponseCache):
    """SQLite-backed response cache with TTL expiration."""

    def __init__(
        self,
        db_path: str | Path = DEFAULT_DB_PATH,
        ttl_days: int = DEFAULT_TTL_DAYS,
    ):
        super().__init__()
        self.db_path = Path(db_path)
        self.ttl_seconds = ttl_days * 86400
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS response_cache (
                    cache_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    cached_at REAL NOT NULL
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def get(self, key: str) -> str | None:
        """Get a cached payload if not expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload, cached_at FROM response_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()

        if row is None:
            self.misses += 1
            return None

        payload, cached_at = row
        if time.time() - cached_at > self.ttl_seconds:
            self.delete(key)
            self.misses += 1
            return None

        self.hits += 1
        return payload

    def put(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO response_cache
                   (cache_key, payload, cached_at)
                   VALUES (?, ?, ?)""",
                (key, value, time.time()),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM response_cache WHERE cache_key = ?", (key,))

    def clear(self) -> int:
        """Clear all cached entries. Returns count of deleted rows."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM response_cache")
            return cursor.rowcount

    def stats(self) -> dict:
        """Return cache statistics."""
        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM response_cache").fetchone()[0]
            expired = conn.execute(
                "SELECT COUNT(*) FROM response_cache WHERE ? - cached_at > ?",
                (time.time(), self.ttl_seconds),
            ).fetchone()[0]
        return {
            "total": total,
            "expired": expired,
            "active": total - expired,
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM response_cache").fetchone()[0]
