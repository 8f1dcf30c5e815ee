"""Bitcoin price feed (CoinGecko)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from snapfeed.errors import ErrorCode, SnapfeedError
from snapfeed.feeds.base import FeedResult, FeedSource, serve_feed
from snapfeed.models.feed import FeedEnvelope, FeedItem

if TYPE_CHECKING:
    from datetime import datetime

    from snapfeed.config import PriceFeedSettings
    from snapfeed.protocols import FetcherProtocol
    from snapfeed.state import AppState

PRICE_CACHE_KEY = "btc_feed"

SITE_URL = "https://laro.dev"
AUTHOR = "laro.dev"
COINGECKO_COIN_URL = "https://www.coingecko.com/en/coins/bitcoin"
ATTRIBUTION = "Price provided by CoinGecko. Feed created by laro.dev."
ATTRIBUTION_HTML = (
    "Price provided by CoinGecko. Feed created by "
    f'<a href="{SITE_URL}" target="_blank" rel="noreferrer" title="laro.dev" '
    'aria-label="laro.dev">laro.dev</a>.'
)


def format_timestamp(moment: datetime) -> str:
    """UTC with millisecond precision, e.g. ``2026-10-19T08:30:00.000Z``."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def extract_usd_price(data: Any) -> float:
    """Pull the USD price out of a CoinGecko response.

    Accepts both the ``/coins/bitcoin`` shape (``market_data.current_price.usd``)
    and the ``/simple/price`` shape (``bitcoin.usd``).
    """
    price: Any = None
    if isinstance(data, dict):
        market_data = data.get("market_data")
        if isinstance(market_data, dict):
            current_price = market_data.get("current_price")
            if isinstance(current_price, dict):
                price = current_price.get("usd")
        elif isinstance(data.get("bitcoin"), dict):
            price = data["bitcoin"].get("usd")

    if isinstance(price, bool) or not isinstance(price, int | float):
        raise SnapfeedError(
            code=ErrorCode.UPSTREAM_MALFORMED,
            message="CoinGecko response has no USD price",
        )
    return float(price)


async def fetch_price(fetcher: FetcherProtocol, settings: PriceFeedSettings) -> float:
    if not settings.api_key:
        raise SnapfeedError(
            code=ErrorCode.UPSTREAM_ERROR,
            message="CoinGecko API key not configured",
        )
    data = await fetcher.fetch_json(
        settings.api_url,
        headers={
            "accept": "application/json",
            "x-cg-demo-api-key": settings.api_key,
        },
    )
    return extract_usd_price(data)


def build_price_feed(price: float, feed_url: str, now: datetime) -> FeedEnvelope:
    amount = f"${price:.2f}"
    published = format_timestamp(now)
    return FeedEnvelope(
        title="Bitcoin USD Price Feed",
        home_page_url=SITE_URL,
        feed_url=feed_url,
        description=f"Current Bitcoin price in USD updated every minute. {ATTRIBUTION}",
        items=[
            FeedItem(
                id=published,
                url=COINGECKO_COIN_URL,
                title=f"BTC/USD: {amount}",
                content_html=(
                    f"<p>Current Bitcoin price: <b>{amount}</b> USD. {ATTRIBUTION_HTML}</p>"
                ),
                content_text=f"Current Bitcoin price: {amount} USD. {ATTRIBUTION}",
                summary=f"Current Bitcoin price: {amount} USD. {ATTRIBUTION}",
                date_published=published,
                author=AUTHOR,
                external_url=SITE_URL,
            )
        ],
    )


async def handle(feed_url: str, state: AppState) -> FeedResult:
    """Serve the BTC/USD price feed."""
    log = structlog.get_logger().bind(feed="btc-usd")
    settings = state.settings.price

    async def build() -> FeedEnvelope:
        price = await fetch_price(state.fetcher, settings)
        log.info("price_fetched", price=price)
        return build_price_feed(price, feed_url, state.clock())

    return await serve_feed(
        FeedSource.from_settings(PRICE_CACHE_KEY, settings),
        state.cache,
        build,
    )
