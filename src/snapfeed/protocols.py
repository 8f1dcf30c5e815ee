"""Protocol interfaces for swappable components.

Feed handlers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory stores
- Other key-value backends (e.g. Redis) to be swapped without changing feed code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from datetime import timedelta

    from snapfeed.models.image import ImageDescriptor


class KeyValueStore(Protocol):
    """A JSON key-value store with per-record expiry.

    Implementations raise ``SnapfeedError(CACHE_UNAVAILABLE)`` on backend
    failure. Expired records read as absent.
    """

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any, *, expiration_ttl: int) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the freshness-gated feed cache."""

    async def get_fresh(self, key: str, max_age: timedelta) -> dict[str, Any] | None: ...

    async def get_stale(self, key: str) -> dict[str, Any] | None: ...

    async def put(self, key: str, payload: dict[str, Any], outer_ttl: int) -> None: ...


class FetcherProtocol(Protocol):
    """Interface for the outbound HTTP fetcher."""

    async def fetch_json(self, url: str, headers: dict[str, str] | None = None) -> Any: ...

    async def fetch_image(
        self, url: str, headers: dict[str, str] | None = None
    ) -> ImageDescriptor: ...
