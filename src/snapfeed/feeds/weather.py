"""AEMET surface-pressure (isobar) map feed.

The upstream lookup takes two steps: a metadata call returns a short-lived
``datos`` URL, and a second call fetches the GIF itself. The map arrives
lying on its side, so the HTML rotates it a quarter turn. When the GIF header
can be probed the rotation is done inside an SVG sized to the rotated
dimensions; otherwise a CSS rotation on a plain ``<img>`` is used.

AEMET publishes the analysis twice a day. The reference time shown in the
feed follows that schedule rather than the fetch time: before noon (Madrid
time) the newest map is yesterday's 12:00 run, from noon on it is today's
00:00 run.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from html import escape
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

import structlog

from snapfeed.errors import ErrorCode, SnapfeedError
from snapfeed.feeds.base import FeedResult, FeedSource, serve_feed
from snapfeed.models.feed import FeedEnvelope, FeedItem
from snapfeed.models.image import ImageDescriptor

if TYPE_CHECKING:
    from snapfeed.config import WeatherFeedSettings
    from snapfeed.protocols import FetcherProtocol
    from snapfeed.state import AppState

WEATHER_CACHE_KEY = "aemet_isobaras_feed"

SITE_URL = "https://laro.dev"
AUTHOR = "laro.dev"
AEMET_MAP_URL = "https://www.aemet.es/es/eltiempo/prediccion/mapa_frentes"

# 1x1 transparent GIF89a, used when the map cannot be fetched.
PLACEHOLDER_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00"
    b"\x00\x00\x00\xff\xff\xff"
    b"\x21\xf9\x04\x01\x00\x00\x00\x00"
    b"\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00"
    b"\x02\x01\x44\x00\x3b"
)


@dataclass(frozen=True)
class ImageFetch:
    """Outcome of the two-step map fetch: exactly one of ``image``/``error`` is set."""

    image: ImageDescriptor | None = None
    error: SnapfeedError | None = None


def placeholder_image() -> ImageDescriptor:
    return ImageDescriptor(content_type="image/gif", data=PLACEHOLDER_GIF, width=1, height=1)


def map_reference_time(now: datetime, tz: ZoneInfo) -> datetime:
    """Return the run time of the newest published map, in ``tz``."""
    local = now.astimezone(tz)
    if local.hour < 12:
        return datetime.combine(local.date() - timedelta(days=1), time(12), tzinfo=tz)
    return datetime.combine(local.date(), time(0), tzinfo=tz)


def format_reference(reference: datetime) -> str:
    return reference.strftime("%d/%m/%Y %H:%M")


def _image_url(metadata: Any) -> str:
    if not isinstance(metadata, dict):
        raise SnapfeedError(
            code=ErrorCode.UPSTREAM_MALFORMED,
            message="AEMET metadata response is not a JSON object",
        )
    status = metadata.get("estado")
    if status is not None and status != 200:
        raise SnapfeedError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=f"AEMET returned estado {status}: {metadata.get('descripcion', '')}".strip(),
        )
    url = metadata.get("datos")
    if not isinstance(url, str) or not url:
        raise SnapfeedError(
            code=ErrorCode.UPSTREAM_MALFORMED,
            message="AEMET metadata response has no 'datos' URL",
        )
    return url


async def fetch_map_image(fetcher: FetcherProtocol, settings: WeatherFeedSettings) -> ImageFetch:
    """Fetch the current map. Failures are returned, not raised."""
    if not settings.api_key:
        return ImageFetch(
            error=SnapfeedError(
                code=ErrorCode.UPSTREAM_ERROR,
                message="AEMET API key not configured",
            )
        )
    try:
        metadata = await fetcher.fetch_json(
            settings.api_url,
            headers={"accept": "application/json", "api_key": settings.api_key},
        )
        image = await fetcher.fetch_image(_image_url(metadata))
    except SnapfeedError as exc:
        return ImageFetch(error=exc)
    return ImageFetch(image=image)


def render_map_html(image: ImageDescriptor, alt: str) -> str:
    """Embed the map rotated a quarter turn.

    With known dimensions ``w x h`` the SVG canvas is ``h x w`` and the image
    is mapped into it by ``rotate(-90) translate(-w 0)``, which sends the
    point ``(x, y)`` to ``(y, w - x)``.
    """
    encoded = base64.b64encode(image.data).decode("ascii")
    data_uri = escape(f"data:{image.content_type};base64,{encoded}", quote=True)
    label = escape(alt)

    if image.width is not None and image.height is not None:
        w, h = image.width, image.height
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{h}" height="{w}" '
            f'viewBox="0 0 {h} {w}" role="img" aria-label="{label}">'
            f'<image href="{data_uri}" width="{w}" height="{h}" '
            f'transform="rotate(-90) translate(-{w} 0)"/>'
            "</svg>"
        )

    return (
        f'<img src="{data_uri}" alt="{label}" '
        'style="transform: rotate(-90deg) translateX(-100%); transform-origin: top left;">'
    )


def build_weather_feed(
    image: ImageDescriptor,
    feed_url: str,
    reference: datetime,
) -> FeedEnvelope:
    stamp = format_reference(reference)
    title = f"Mapa de isobaras AEMET {stamp}"
    text = f"Análisis de presión en superficie de AEMET, pasada de las {stamp}."
    return FeedEnvelope(
        title="AEMET Mapa de isobaras",
        home_page_url=SITE_URL,
        feed_url=feed_url,
        description=(
            "Mapa de análisis de presión en superficie publicado por AEMET dos veces al día. "
            "Feed created by laro.dev."
        ),
        items=[
            FeedItem(
                id=reference.isoformat(),
                url=AEMET_MAP_URL,
                title=title,
                content_html=f"<p>{escape(text)}</p>{render_map_html(image, title)}",
                content_text=text,
                summary=text,
                date_published=reference.isoformat(),
                author=AUTHOR,
                external_url=SITE_URL,
            )
        ],
    )


async def handle(feed_url: str, state: AppState) -> FeedResult:
    """Serve the isobar map feed."""
    log = structlog.get_logger().bind(feed="aemet-isobaras")
    settings = state.settings.weather
    reference = map_reference_time(state.clock(), ZoneInfo(settings.timezone))

    async def build() -> FeedEnvelope:
        fetched = await fetch_map_image(state.fetcher, settings)
        if fetched.image is None:
            error = fetched.error or SnapfeedError(
                code=ErrorCode.UPSTREAM_ERROR,
                message="AEMET map unavailable",
            )
            log.warning("map_image_unavailable", code=error.code, message=error.message)
            raise error
        return build_weather_feed(fetched.image, feed_url, reference)

    def placeholder(error: SnapfeedError) -> FeedEnvelope:
        return build_weather_feed(placeholder_image(), feed_url, reference)

    return await serve_feed(
        FeedSource.from_settings(WEATHER_CACHE_KEY, settings),
        state.cache,
        build,
        fallback=placeholder,
    )
