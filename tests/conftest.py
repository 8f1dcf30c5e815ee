"""Shared test fixtures for the snapfeed test suite."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite
import pytest

from snapfeed.cache import FeedCache
from snapfeed.config import Settings
from snapfeed.errors import ErrorCode, SnapfeedError
from snapfeed.store import SqliteStore

# 12:30 in Madrid (CEST, UTC+2)
FROZEN_NOW = datetime(2026, 10, 19, 10, 30, tzinfo=UTC)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MemoryStore:
    """In-memory KeyValueStore with expiry driven by a FrozenClock.

    Values are kept JSON-encoded so tests see the same round-trip as the
    SQLite store.
    """

    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, datetime]] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.puts: list[tuple[str, int]] = []

    async def get(self, key: str) -> Any | None:
        if self.fail_reads:
            raise SnapfeedError(code=ErrorCode.CACHE_UNAVAILABLE, message="store down")
        record = self._data.get(key)
        if record is None:
            return None
        value, expires_at = record
        if self._clock() >= expires_at:
            return None
        return json.loads(value)

    async def put(self, key: str, value: Any, *, expiration_ttl: int) -> None:
        if self.fail_writes:
            raise SnapfeedError(code=ErrorCode.CACHE_UNAVAILABLE, message="store down")
        self.puts.append((key, expiration_ttl))
        self._data[key] = (
            json.dumps(value),
            self._clock() + timedelta(seconds=expiration_ttl),
        )


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def memory_store(clock: FrozenClock) -> MemoryStore:
    return MemoryStore(clock)


@pytest.fixture()
def feed_cache(memory_store: MemoryStore, clock: FrozenClock) -> FeedCache:
    return FeedCache(memory_store, clock=clock)


@pytest.fixture()
async def sqlite_store() -> SqliteStore:
    async with aiosqlite.connect(":memory:") as db:
        store = SqliteStore(db)
        await store.init_db()
        yield store


@pytest.fixture()
def settings() -> Settings:
    """Settings with both upstream keys configured and no file/env influence."""
    return Settings(
        price={"api_key": "cg-test-key"},
        weather={"api_key": "aemet-test-key"},
    )
