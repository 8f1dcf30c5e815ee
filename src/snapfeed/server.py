"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState inside the Starlette lifespan
- Route requests to the feed handlers and static responses
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager, suppress
from importlib.resources import files
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

import snapfeed.feeds.price as f_price
import snapfeed.feeds.weather as f_weather
from snapfeed import __version__
from snapfeed.cache import FeedCache
from snapfeed.config import Settings
from snapfeed.errors import SnapfeedError
from snapfeed.fetcher import Fetcher, build_http_client
from snapfeed.middleware import RequestLoggingMiddleware
from snapfeed.schedulers import run_store_cleanup_scheduler
from snapfeed.state import AppState
from snapfeed.store import SqliteStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request

    from snapfeed.feeds.base import FeedResult

    FeedHandler = Callable[[str, AppState], Awaitable[FeedResult]]

log = structlog.get_logger()

PRICE_PATH = "/btc-usd.json"
WEATHER_PATH = "/aemet/mapa-isobaras.json"
FAVICON_MAX_AGE = 86400

FAVICON_SVG = files("snapfeed").joinpath("static/favicon.svg").read_bytes()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def build_state(settings: Settings) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    store = SqliteStore(db)
    await store.init_db()

    http_client = build_http_client(settings.fetcher)

    state = AppState(
        settings=settings,
        store=store,
        cache=FeedCache(store),
        fetcher=Fetcher(http_client),
        http_client=http_client,
    )
    cleanup_task = asyncio.create_task(run_store_cleanup_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        db_path=str(db_path),
        price_key_configured=bool(settings.price.api_key),
        weather_key_configured=bool(settings.weather.api_key),
    )

    try:
        yield state
    finally:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Responses and routes
# ---------------------------------------------------------------------------


class FeedJSONResponse(JSONResponse):
    """Pretty-printed UTF-8 JSON, as served to feed readers."""

    media_type = "application/json; charset=utf-8"

    def render(self, content: Any) -> bytes:
        return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


async def _serve_feed(request: Request, feed: str, handler: FeedHandler) -> Response:
    state: AppState = request.app.state.snapfeed
    try:
        result = await handler(str(request.url), state)
    except SnapfeedError as exc:
        log.warning("feed_error", feed=feed, code=exc.code, message=exc.message)
        return FeedJSONResponse(exc.to_dict(), status_code=502)
    except Exception:
        log.error("feed_unexpected_error", feed=feed, exc_info=True)
        raise

    headers = {"cache-control": result.cache_control} if result.cache_control else None
    return FeedJSONResponse(result.payload, headers=headers)


async def price_feed(request: Request) -> Response:
    return await _serve_feed(request, "btc-usd", f_price.handle)


async def weather_feed(request: Request) -> Response:
    return await _serve_feed(request, "aemet-isobaras", f_weather.handle)


async def favicon(request: Request) -> Response:
    return Response(
        FAVICON_SVG,
        media_type="image/svg+xml",
        headers={"cache-control": f"public, max-age={FAVICON_MAX_AGE}"},
    )


async def index(request: Request) -> Response:
    """Anything unrouted gets the list of feeds rather than a 404."""
    return FeedJSONResponse(
        {
            "message": "Available feeds",
            "endpoints": [PRICE_PATH, WEATHER_PATH],
        }
    )


def create_app(state: AppState | None = None, settings: Settings | None = None) -> Starlette:
    """Build the ASGI app.

    With ``state`` the app serves from the given AppState and the lifespan
    creates nothing (tests inject fakes this way). Otherwise the lifespan
    builds the SQLite store and HTTP client from ``settings``.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if state is not None:
            yield
            return
        resolved = settings or Settings()
        _setup_logging(resolved)
        async with build_state(resolved) as built:
            app.state.snapfeed = built
            yield

    app = Starlette(
        routes=[
            Route("/favicon.ico", favicon),
            Route(PRICE_PATH, price_feed),
            Route(WEATHER_PATH, weather_feed),
            Route("/{path:path}", index),
        ],
        middleware=[Middleware(RequestLoggingMiddleware)],
        lifespan=lifespan,
    )
    if state is not None:
        app.state.snapfeed = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    # Logging is configured by the app lifespan.
    uvicorn.run(
        create_app(settings=settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
