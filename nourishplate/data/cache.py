"""
NourishPlate — Local Result Cache.

Time-boxed cache for generated content, one SQLite row per key holding
{"facts": [...], "timestamp": <epoch ms>} as JSON text. Entries older than
the TTL are treated as absent and purged on read. Not shared across
processes that use different database files.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60  # 1 hour


class ResultCache:
    """SQLite-backed cache of generated fact batches."""

    def __init__(
        self,
        db_path: str | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if db_path is None or ttl_seconds is None:
            from nourishplate.config import settings
            db_path = db_path or settings.DATABASE_PATH
            ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CACHE_TTL_SECONDS

        self._db_path = db_path
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key    TEXT PRIMARY KEY,
                    value  TEXT NOT NULL
                )
            """)
        logger.debug("Cache table initialized at %s", self._db_path)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, key: str) -> list | None:
        """Return the cached facts for `key`, or None if absent, stale or corrupt."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None

        try:
            entry = json.loads(row["value"])
            facts = entry["facts"]
            timestamp = int(entry["timestamp"])
            if not isinstance(facts, list):
                raise TypeError(f"facts is {type(facts).__name__}, expected list")
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding corrupt cache entry '%s': %s", key, exc)
            self.clear(key)
            return None

        if self._now_ms() - timestamp < self._ttl_ms:
            return facts

        logger.info("Cache entry '%s' expired", key)
        self.clear(key)
        return None

    def set(self, key: str, facts: list) -> None:
        """Store `facts` under `key`, stamped with the current time."""
        value = json.dumps({"facts": facts, "timestamp": self._now_ms()})
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
        logger.debug("Cached %d item(s) under '%s'", len(facts), key)

    def clear(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        return cursor.rowcount > 0
