"""Request logging middleware for the feed server."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

log = structlog.get_logger()


class RequestLoggingMiddleware:
    """Pure ASGI middleware that binds request context and logs completion.

    ``method`` and ``path`` are bound into structlog contextvars for the
    duration of the request, so every log line emitted by the feed handlers
    carries them. Implemented as pure ASGI (not BaseHTTPMiddleware) so the
    response body is never buffered by the middleware layer.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status_code = 500
        started = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        with structlog.contextvars.bound_contextvars(
            method=scope["method"],
            path=scope["path"],
        ):
            try:
                await self.app(scope, receive, send_wrapper)
            finally:
                log.info(
                    "request_complete",
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 1),
                )
