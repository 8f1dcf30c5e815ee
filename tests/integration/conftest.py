"""Integration test fixtures.

Provides a fully wired AppState (in-memory store, real Fetcher over an
httpx client that respx intercepts, frozen clock) and an ASGI client for the
Starlette app. Clock and store fixtures come from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from snapfeed.cache import FeedCache
from snapfeed.fetcher import Fetcher
from snapfeed.server import create_app
from snapfeed.state import AppState

if TYPE_CHECKING:
    from snapfeed.config import Settings
    from tests.conftest import FrozenClock, MemoryStore


@pytest.fixture()
async def app_state(
    settings: Settings, memory_store: MemoryStore, clock: FrozenClock
) -> AppState:
    async with httpx.AsyncClient() as upstream_client:
        yield AppState(
            settings=settings,
            store=memory_store,
            cache=FeedCache(memory_store, clock=clock),
            fetcher=Fetcher(upstream_client),
            http_client=upstream_client,
            clock=clock,
        )


@pytest.fixture()
async def client(app_state: AppState) -> httpx.AsyncClient:
    app = create_app(state=app_state)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as http:
        yield http
