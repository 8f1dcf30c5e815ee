"""Outbound HTTP fetcher for upstream feed APIs.

All network I/O goes through a single Fetcher instance shared across
requests. The Fetcher receives an httpx.AsyncClient via constructor
injection; the lifespan owns the client lifecycle. Every call is a single
attempt bounded by the client timeout.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from snapfeed.errors import ErrorCode, SnapfeedError
from snapfeed.models.image import ImageDescriptor
from snapfeed.probe import probe_dimensions

if TYPE_CHECKING:
    from snapfeed.config import FetcherSettings

log = structlog.get_logger()

DEFAULT_IMAGE_CONTENT_TYPE = "image/gif"
_IMAGE_CONTENT_TYPE = re.compile(r"^image/[a-z0-9][a-z0-9.+-]*$")


def image_content_type(header: str | None) -> str:
    """Return the media type of an image response, or the GIF default.

    Parameters are dropped. Anything that is not a plain ``image/*`` type is
    replaced, since the value ends up inside an HTML attribute.
    """
    media_type = (header or "").split(";")[0].strip().lower()
    if _IMAGE_CONTENT_TYPE.match(media_type):
        return media_type
    return DEFAULT_IMAGE_CONTENT_TYPE


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    timeout = settings.timeout_seconds if settings is not None else 10.0
    user_agent = settings.user_agent if settings is not None else "snapfeed/1.0"
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": user_agent},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


class Fetcher:
    """Single-attempt upstream fetcher mapping failures onto ErrorCode."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _get(self, url: str, headers: dict[str, str] | None) -> httpx.Response:
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise SnapfeedError(
                code=ErrorCode.UPSTREAM_UNREACHABLE,
                message=f"Network error fetching {url}: {exc}",
            ) from exc

        if not response.is_success:
            raise SnapfeedError(
                code=ErrorCode.UPSTREAM_ERROR,
                message=f"HTTP {response.status_code} fetching {url}",
            )
        return response

    async def fetch_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        """Fetch a URL and decode its JSON body.

        Raises SnapfeedError on network errors, non-2xx responses, and bodies
        that are not JSON.
        """
        response = await self._get(url, headers)
        try:
            data = response.json()
        except ValueError as exc:
            raise SnapfeedError(
                code=ErrorCode.UPSTREAM_MALFORMED,
                message=f"Response from {url} is not valid JSON",
            ) from exc

        log.info("fetch_complete", url=url, status_code=response.status_code)
        return data

    async def fetch_image(
        self, url: str, headers: dict[str, str] | None = None
    ) -> ImageDescriptor:
        """Fetch raw image bytes and probe them for dimensions."""
        response = await self._get(url, headers)
        data = response.content
        content_type = image_content_type(response.headers.get("content-type"))
        size = probe_dimensions(data)

        log.info(
            "fetch_complete",
            url=url,
            status_code=response.status_code,
            content_length=len(data),
            content_type=content_type,
            probed=size is not None,
        )
        return ImageDescriptor(
            content_type=content_type,
            data=data,
            width=size.width if size is not None else None,
            height=size.height if size is not None else None,
        )
