"""Background scheduler coroutine for purging expired store records."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from snapfeed.state import AppState

log = structlog.get_logger()


async def run_store_cleanup_scheduler(state: AppState) -> None:
    """Purge expired records at startup and then on the configured interval.

    Expired records already read as absent; this only reclaims space. Stores
    without a ``cleanup_expired`` method are left alone.
    """
    cleanup = getattr(state.store, "cleanup_expired", None)
    if cleanup is None:
        log.debug("store_cleanup_skipped", reason="unsupported")
        return

    interval_seconds = state.settings.cache.cleanup_interval_hours * 3600

    while True:
        try:
            await cleanup()
        except Exception:
            log.warning("store_cleanup_scheduler_error", exc_info=True)
        await asyncio.sleep(interval_seconds)
