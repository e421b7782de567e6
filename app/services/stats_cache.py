"""In-memory LRU cache for Dialpad export results, with per-entry expiry."""
from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CacheKey = tuple[str, str, int]  # (entity id, record kind, lookback days)


class StatsCache:
    """
    Size-capped, time-boxed cache of parsed export rows.

    Purely an optimization: callers that need fresh data skip it.
    """

    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[float, Any]] = OrderedDict()

    def get(self, key: CacheKey) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Stats cache eviction", key=":".join(map(str, evicted)))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
