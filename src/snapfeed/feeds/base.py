"""Fetch-with-cache-and-fallback procedure shared by every feed producer."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from snapfeed.errors import SnapfeedError

if TYPE_CHECKING:
    from snapfeed.config import FeedSettings
    from snapfeed.models.feed import FeedEnvelope
    from snapfeed.protocols import CacheProtocol

BuildFeed = Callable[[], Awaitable["FeedEnvelope"]]
FallbackFeed = Callable[[SnapfeedError], "FeedEnvelope"]


@dataclass(frozen=True)
class FeedSource:
    """Cache parameters for one producer."""

    key: str
    freshness: timedelta
    outer_ttl: int  # seconds; store-level expiry, >= freshness
    client_max_age: int  # seconds; sent to clients with fresh envelopes

    @classmethod
    def from_settings(cls, key: str, settings: FeedSettings) -> FeedSource:
        return cls(
            key=key,
            freshness=timedelta(seconds=settings.freshness_seconds),
            outer_ttl=settings.outer_ttl_seconds,
            client_max_age=settings.client_max_age,
        )


@dataclass(frozen=True)
class FeedResult:
    payload: dict[str, Any]
    fresh: bool  # False for stale fallback and fallback envelopes
    cached: bool
    client_max_age: int | None = None

    @property
    def cache_control(self) -> str | None:
        if not self.fresh or self.client_max_age is None:
            return None
        return f"public, max-age={self.client_max_age}"


async def serve_feed(
    source: FeedSource,
    cache: CacheProtocol,
    build: BuildFeed,
    *,
    fallback: FallbackFeed | None = None,
) -> FeedResult:
    """Serve a feed envelope, preferring a fresh cache entry over upstream.

    ``build`` performs the upstream call(s) and raises SnapfeedError on
    failure. Upstream failures fall back to the last cached envelope of any
    age, then to ``fallback`` when given; otherwise the error propagates.
    Fallback envelopes are never written to the cache.
    """
    log = structlog.get_logger().bind(cache_key=source.key)

    payload = await cache.get_fresh(source.key, source.freshness)
    if payload is not None:
        log.info("cache_hit", stale=False)
        return FeedResult(
            payload=payload,
            fresh=True,
            cached=True,
            client_max_age=source.client_max_age,
        )

    log.info("cache_miss_fetching")
    try:
        envelope = await build()
    except SnapfeedError as exc:
        if not exc.is_upstream:
            raise
        stale = await cache.get_stale(source.key)
        if stale is not None:
            log.warning("stale_fallback", code=exc.code, message=exc.message)
            return FeedResult(payload=stale, fresh=False, cached=True)
        if fallback is not None:
            log.warning("placeholder_fallback", code=exc.code, message=exc.message)
            return FeedResult(payload=fallback(exc).to_payload(), fresh=False, cached=False)
        raise

    payload = envelope.to_payload()
    await cache.put(source.key, payload, source.outer_ttl)
    return FeedResult(
        payload=payload,
        fresh=True,
        cached=False,
        client_max_age=source.client_max_age,
    )
