"""Unit tests for snapfeed.feeds.weather."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from snapfeed.config import WeatherFeedSettings
from snapfeed.errors import ErrorCode, SnapfeedError
from snapfeed.feeds.weather import (
    PLACEHOLDER_GIF,
    build_weather_feed,
    fetch_map_image,
    map_reference_time,
    placeholder_image,
    render_map_html,
)
from snapfeed.models.image import ImageDescriptor

MADRID = ZoneInfo("Europe/Madrid")
FEED_URL = "https://feeds.example.com/aemet/mapa-isobaras.json"
DATOS_URL = "https://opendata.aemet.es/opendata/sh/0a1b2c3d"


class StubFetcher:
    def __init__(
        self,
        metadata: Any = None,
        image: ImageDescriptor | None = None,
        error: SnapfeedError | None = None,
    ) -> None:
        self.metadata = metadata
        self.image = image
        self.error = error
        self.json_calls: list[tuple[str, dict[str, str] | None]] = []
        self.image_calls: list[str] = []

    async def fetch_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        self.json_calls.append((url, headers))
        if self.error is not None:
            raise self.error
        return self.metadata

    async def fetch_image(
        self, url: str, headers: dict[str, str] | None = None
    ) -> ImageDescriptor:
        self.image_calls.append(url)
        assert self.image is not None
        return self.image


# ---------------------------------------------------------------------------
# Editorial reference time
# ---------------------------------------------------------------------------


class TestMapReferenceTime:
    def test_before_noon_is_yesterday_noon(self) -> None:
        now = datetime(2026, 10, 19, 11, 59, tzinfo=MADRID)
        assert map_reference_time(now, MADRID) == datetime(2026, 10, 18, 12, 0, tzinfo=MADRID)

    def test_exactly_noon_is_today_midnight(self) -> None:
        now = datetime(2026, 10, 19, 12, 0, tzinfo=MADRID)
        assert map_reference_time(now, MADRID) == datetime(2026, 10, 19, 0, 0, tzinfo=MADRID)

    def test_just_after_midnight_is_yesterday_noon(self) -> None:
        now = datetime(2026, 10, 19, 0, 5, tzinfo=MADRID)
        assert map_reference_time(now, MADRID) == datetime(2026, 10, 18, 12, 0, tzinfo=MADRID)

    def test_evening_is_today_midnight(self) -> None:
        now = datetime(2026, 10, 19, 23, 59, tzinfo=MADRID)
        assert map_reference_time(now, MADRID) == datetime(2026, 10, 19, 0, 0, tzinfo=MADRID)

    def test_uses_regional_not_utc_hour(self) -> None:
        # 10:30 UTC is 12:30 in Madrid (CEST)
        now = datetime(2026, 10, 19, 10, 30, tzinfo=UTC)
        reference = map_reference_time(now, MADRID)
        assert reference.isoformat() == "2026-10-19T00:00:00+02:00"

    def test_crosses_month_boundary(self) -> None:
        now = datetime(2026, 11, 1, 9, 0, tzinfo=MADRID)
        reference = map_reference_time(now, MADRID)
        assert reference.isoformat() == "2026-10-31T12:00:00+01:00"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderMapHtml:
    def test_probed_image_uses_rotated_svg(self) -> None:
        image = ImageDescriptor(content_type="image/gif", data=b"GIF89a", width=800, height=600)
        html = render_map_html(image, "Mapa")

        assert html.startswith("<svg")
        assert 'width="600" height="800"' in html
        assert 'viewBox="0 0 600 800"' in html
        assert 'width="800" height="600" transform="rotate(-90) translate(-800 0)"' in html
        encoded = base64.b64encode(b"GIF89a").decode("ascii")
        assert f'href="data:image/gif;base64,{encoded}"' in html

    def test_unprobed_image_uses_css_rotation(self) -> None:
        image = ImageDescriptor(content_type="image/png", data=b"\x89PNG")
        html = render_map_html(image, "Mapa")

        assert html.startswith("<img")
        assert "data:image/png;base64," in html
        assert "rotate(-90deg)" in html
        assert "transform-origin: top left" in html
        assert "<svg" not in html

    def test_alt_text_is_escaped(self) -> None:
        image = ImageDescriptor(content_type="image/png", data=b"x")
        assert 'alt="a &quot;b&quot; &lt;c&gt;"' in render_map_html(image, 'a "b" <c>')

    @pytest.mark.parametrize(("width", "height"), [(800, 600), (None, None)])
    def test_content_type_cannot_break_out_of_attribute(
        self, width: int | None, height: int | None
    ) -> None:
        image = ImageDescriptor(
            content_type='image/gif"><script>x</script>',
            data=b"GIF89a",
            width=width,
            height=height,
        )
        html = render_map_html(image, "Mapa")

        assert "<script>" not in html
        assert "data:image/gif&quot;&gt;&lt;script&gt;" in html


class TestBuildWeatherFeed:
    def test_title_and_id_follow_reference(self) -> None:
        reference = datetime(2026, 10, 18, 12, 0, tzinfo=MADRID)
        payload = build_weather_feed(placeholder_image(), FEED_URL, reference).to_payload()

        item = payload["items"][0]
        assert item["title"] == "Mapa de isobaras AEMET 18/10/2026 12:00"
        assert item["id"] == "2026-10-18T12:00:00+02:00"
        assert item["date_published"] == item["id"]
        assert payload["feed_url"] == FEED_URL
        assert len(payload["items"]) == 1

    def test_placeholder_renders_one_by_one_svg(self) -> None:
        reference = datetime(2026, 10, 19, 0, 0, tzinfo=MADRID)
        html = build_weather_feed(placeholder_image(), FEED_URL, reference).items[0].content_html
        assert 'width="1" height="1" transform="rotate(-90) translate(-1 0)"' in html

    def test_placeholder_image_bytes(self) -> None:
        image = placeholder_image()
        assert image.data == PLACEHOLDER_GIF
        assert image.data.startswith(b"GIF89a")
        assert image.data.endswith(b";")


# ---------------------------------------------------------------------------
# Two-step fetch
# ---------------------------------------------------------------------------


class TestFetchMapImage:
    async def test_success(self) -> None:
        image = ImageDescriptor(content_type="image/gif", data=PLACEHOLDER_GIF, width=1, height=1)
        fetcher = StubFetcher(metadata={"estado": 200, "datos": DATOS_URL}, image=image)
        settings = WeatherFeedSettings(api_key="aemet-key")

        fetched = await fetch_map_image(fetcher, settings)

        assert fetched.error is None
        assert fetched.image == image
        assert fetcher.image_calls == [DATOS_URL]
        _, headers = fetcher.json_calls[0]
        assert headers is not None
        assert headers["api_key"] == "aemet-key"

    async def test_missing_key_returns_error(self) -> None:
        fetcher = StubFetcher()
        fetched = await fetch_map_image(fetcher, WeatherFeedSettings(api_key=None))
        assert fetched.image is None
        assert fetched.error is not None
        assert fetched.error.code == ErrorCode.UPSTREAM_ERROR
        assert fetcher.json_calls == []

    async def test_metadata_failure_returns_error(self) -> None:
        error = SnapfeedError(code=ErrorCode.UPSTREAM_UNREACHABLE, message="down")
        fetched = await fetch_map_image(
            StubFetcher(error=error), WeatherFeedSettings(api_key="k")
        )
        assert fetched.image is None
        assert fetched.error is error

    @pytest.mark.parametrize(
        ("metadata", "code"),
        [
            ({"estado": 401, "descripcion": "API key invalido"}, ErrorCode.UPSTREAM_ERROR),
            ({"estado": 200}, ErrorCode.UPSTREAM_MALFORMED),
            ({"datos": 42}, ErrorCode.UPSTREAM_MALFORMED),
            (["not", "an", "object"], ErrorCode.UPSTREAM_MALFORMED),
        ],
    )
    async def test_bad_metadata_returns_error(self, metadata: Any, code: ErrorCode) -> None:
        fetcher = StubFetcher(metadata=metadata)
        fetched = await fetch_map_image(fetcher, WeatherFeedSettings(api_key="k"))
        assert fetched.image is None
        assert fetched.error is not None
        assert fetched.error.code == code
        assert fetcher.image_calls == []
