"""
TECHRUN Pose Service - Result Cache

Bounded least-recently-used cache of frame analysis results.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .pose_types import AnalysisResult, ExerciseKind

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, ExerciseKind]


@dataclass
class CacheEntry:
    """Cached analysis result with its last access time (ms)."""
    key: CacheKey
    value: AnalysisResult
    last_access: int


class ResultCache:
    """
    Strict LRU cache keyed by (frame_identity, exercise_type).

    Entries are kept in access order (oldest first) so eviction is O(1).
    All mutation happens under the cache's own lock.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        # Stats
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def get(self, key: CacheKey) -> Optional[AnalysisResult]:
        """Return the cached result and mark it most recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            entry.last_access = self._now_ms()
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def put(self, key: CacheKey, value: AnalysisResult) -> None:
        """Insert or replace a result, evicting the LRU entry when full."""
        with self._lock:
            if key in self._entries:
                entry = self._entries[key]
                entry.value = value
                entry.last_access = self._now_ms()
                self._entries.move_to_end(key)
                return

            if len(self._entries) >= self.capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted cache entry {evicted_key[0]!r} ({evicted_key[1].value})")

            self._entries[key] = CacheEntry(key=key, value=value, last_access=self._now_ms())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[CacheKey]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        # Does not refresh recency
        with self._lock:
            return key in self._entries

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
