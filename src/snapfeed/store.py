"""SQLite key-value store with per-record expiry.

Plays the role of a hosted KV namespace: JSON values under string keys, each
record expiring ``expiration_ttl`` seconds after it was written. Expired
records read as absent and are purged by ``cleanup_expired``.

Backend failures surface as ``SnapfeedError(CACHE_UNAVAILABLE)``; deciding
whether that matters is the caller's job (``FeedCache`` treats it as a miss).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite
import structlog

from snapfeed.errors import ErrorCode, SnapfeedError

log = structlog.get_logger()

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    stored_at  TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""

_CREATE_KV_INDEX = "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_store(expires_at)"


class SqliteStore:
    """SQLite-backed key-value store implementing KeyValueStore."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_KV_TABLE)
        await self._db.execute(_CREATE_KV_INDEX)
        await self._db.commit()

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or ``None`` if absent or expired."""
        try:
            cursor = await self._db.execute(
                "SELECT value, expires_at FROM kv_store WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise SnapfeedError(
                code=ErrorCode.CACHE_UNAVAILABLE,
                message=f"Store read failed for {key}: {exc}",
            ) from exc

        if row is None:
            return None
        if datetime.fromisoformat(row[1]) <= datetime.now(UTC):
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            raise SnapfeedError(
                code=ErrorCode.CACHE_UNAVAILABLE,
                message=f"Stored value for {key} is not valid JSON",
            ) from exc

    async def put(self, key: str, value: Any, *, expiration_ttl: int) -> None:
        """Upsert a value that expires ``expiration_ttl`` seconds from now."""
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=expiration_ttl)
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, stored_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, json.dumps(value), now.isoformat(), expires_at.isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise SnapfeedError(
                code=ErrorCode.CACHE_UNAVAILABLE,
                message=f"Store write failed for {key}: {exc}",
            ) from exc

    async def cleanup_expired(self) -> int:
        """Delete expired records. Non-fatal on failure; returns the number deleted."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM kv_store WHERE expires_at <= ?",
                (datetime.now(UTC).isoformat(),),
            )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_cleanup_error", exc_info=True)
            return 0

        log.info("store_cleanup_complete", deleted=deleted)
        return deleted
