from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """A feed envelope as held in the key-value store."""

    timestamp: datetime  # When the payload was computed, not when it was stored
    payload: dict[str, Any]  # Feed envelope, already dumped to JSON-compatible types
