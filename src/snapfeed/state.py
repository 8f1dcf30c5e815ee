"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and handed to every feed handler. The store and cache live outside the
process in the key-value store; nothing here holds feed data in memory.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from snapfeed.cache import utc_now

if TYPE_CHECKING:
    import httpx

    from snapfeed.config import Settings
    from snapfeed.protocols import CacheProtocol, FetcherProtocol, KeyValueStore


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every feed handler."""

    settings: Settings
    store: KeyValueStore
    cache: CacheProtocol
    fetcher: FetcherProtocol
    http_client: httpx.AsyncClient | None = None
    clock: Callable[[], datetime] = field(default=utc_now)
