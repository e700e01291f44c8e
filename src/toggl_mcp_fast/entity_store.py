"""
Bounded TTL store for Toggl reference entities.

One LRU order is shared across all entity kinds so ``max_size`` bounds the
total number of cached workspaces, projects and clients together. Expired
entries are treated as absent on read and dropped lazily when touched.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

StoreKey = tuple[str, int]


@dataclass
class CacheEntry:
    """Cached entity plus the monotonic time it was stored."""

    value: dict[str, Any]
    stored_at: float


class EntityStore:
    """Thread-safe LRU map of ``(kind, id) -> CacheEntry`` with per-entry TTL."""

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[StoreKey, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self.evictions = 0

    def _is_live(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self._ttl_seconds

    def get(self, kind: str, entity_id: int) -> dict[str, Any] | None:
        key = (kind, entity_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_live(entry):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def put(self, kind: str, entity_id: int, value: dict[str, Any]) -> None:
        key = (kind, entity_id)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            else:
                while len(self._entries) >= self._max_size and self._entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self.evictions += 1
                    logger.debug("Evicted %s %s from entity store", *evicted)
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def stored_at(self, kind: str, entity_id: int) -> float | None:
        """Storage time of a cached entry, without touching its LRU position."""
        with self._lock:
            entry = self._entries.get((kind, entity_id))
            return entry.stored_at if entry is not None else None

    def invalidate(self, kind: str, entity_id: int) -> bool:
        with self._lock:
            return self._entries.pop((kind, entity_id), None) is not None

    def invalidate_kind(self, kind: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[0] == kind]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def reset_evictions(self) -> None:
        with self._lock:
            self.evictions = 0

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
