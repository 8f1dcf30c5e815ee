from __future__ import annotations

from snapfeed.models.cache import CacheEntry
from snapfeed.models.feed import JSON_FEED_VERSION, FeedEnvelope, FeedItem
from snapfeed.models.image import ImageDescriptor, ImageSize

__all__ = [
    # cache
    "CacheEntry",
    # feed
    "JSON_FEED_VERSION",
    "FeedEnvelope",
    "FeedItem",
    # image
    "ImageDescriptor",
    "ImageSize",
]
