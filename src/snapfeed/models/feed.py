"""JSON Feed v1 document models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

JSON_FEED_VERSION = "https://jsonfeed.org/version/1"


class FeedItem(BaseModel):
    id: str
    url: str
    title: str
    content_html: str
    content_text: str | None = None
    summary: str | None = None
    date_published: str  # RFC 3339, preformatted by the producer
    author: str | None = None
    external_url: str | None = None


class FeedEnvelope(BaseModel):
    """A snapshot feed: every fetch replaces the single item."""

    version: str = JSON_FEED_VERSION
    title: str
    home_page_url: str
    feed_url: str
    description: str
    items: list[FeedItem]

    def to_payload(self) -> dict[str, Any]:
        """Dump to the JSON object that is cached and served."""
        return self.model_dump(mode="json", exclude_none=True)
