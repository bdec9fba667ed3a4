"""
In-memory LRU cache with per-entry TTL

Backs the registry client's request-level cache and the page cache
when no Redis server is reachable.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)


class _Entry(NamedTuple):
    value: Any
    expires_at: Optional[float]


class LRUCache:
    """
    Bounded key/value store; the least recently used entry is evicted first.

    `clock` returns seconds and defaults to time.monotonic.
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._max_size = max_size
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store `value`; a falsy `ttl` never expires."""
        self._entries[key] = _Entry(value, self._clock() + ttl if ttl else None)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("LRU cache full, evicted %s", evicted)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with `prefix`; returns how many were removed."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)
