"""Freshness-gated feed cache.

Wraps a ``KeyValueStore`` and answers two separate questions:

- ``get_fresh``: is there an envelope young enough to serve without calling
  upstream? Age is measured from the entry's own ``timestamp`` (when the
  envelope was computed), never from store metadata.
- ``get_stale``: is there any envelope at all? Used only after an upstream
  failure, as the last known-good answer.

The store's own expiry (``outer_ttl``) is a coarse safety bound set well above
every freshness window, so an envelope stays available as a fallback for a
while after it stops being fresh.

All operations degrade gracefully: read failures and unreadable records are
logged and treated as a miss, write failures are logged and ignored.
Infrastructure errors never cross the FeedCache boundary.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from snapfeed.errors import SnapfeedError
from snapfeed.models.cache import CacheEntry

if TYPE_CHECKING:
    from snapfeed.protocols import KeyValueStore

log = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


class FeedCache:
    """Freshness-gated cache implementing CacheProtocol."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def _read(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._store.get(key)
        except SnapfeedError:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None
        if raw is None:
            return None

        try:
            return CacheEntry.model_validate(raw)
        except ValidationError:
            log.warning("cache_entry_invalid", key=key, exc_info=True)
            return None

    async def get_fresh(self, key: str, max_age: timedelta) -> dict[str, Any] | None:
        """Return the cached payload only if it is younger than ``max_age``."""
        entry = await self._read(key)
        if entry is None:
            return None

        age = self._clock() - entry.timestamp
        if age < max_age:
            return entry.payload

        log.debug("cache_entry_stale", key=key, age_seconds=age.total_seconds())
        return None

    async def get_stale(self, key: str) -> dict[str, Any] | None:
        """Return the cached payload regardless of age."""
        entry = await self._read(key)
        return entry.payload if entry is not None else None

    async def put(self, key: str, payload: dict[str, Any], outer_ttl: int) -> None:
        """Store ``payload`` stamped with the current time. Non-fatal on failure."""
        entry = CacheEntry(timestamp=self._clock(), payload=payload)
        try:
            await self._store.put(
                key,
                entry.model_dump(mode="json"),
                expiration_ttl=outer_ttl,
            )
        except SnapfeedError:
            log.warning("cache_write_error", key=key, exc_info=True)
