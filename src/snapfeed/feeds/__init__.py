"""Feed producers.

Each module exposes an async ``handle(feed_url, state)`` returning a
``FeedResult``. No Starlette imports here; server.py handles the HTTP wiring.
"""
