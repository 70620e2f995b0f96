# cache_manager.py
"""
In-memory HTTP cache with TTL, LRU eviction and hit/miss accounting
"""

import fnmatch
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires: float
    created: float
    last_access: float


class CacheManager:
    """LRU + TTL cache; optionally mirrors entries into a MemoryOptimizer for leak detection"""

    def __init__(self, max_entries: int = 5000, default_ttl: float = 300.0,
                 optimizer=None, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.optimizer = optimizer
        self._clock = clock
        # Ordered least to most recently used
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.expirations = 0

    def is_available(self) -> bool:
        return True

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            now = self._clock()
            if entry.expires <= now:
                self._remove(key)
                self.expirations += 1
                self.misses += 1
                return None
            entry.last_access = now
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            if key not in self._entries:
                while len(self._entries) >= self.max_entries:
                    if not self._evict_lru():
                        break
            self._entries[key] = CacheEntry(value=value, expires=now + ttl, created=now, last_access=now)
            self._entries.move_to_end(key)
            self.sets += 1
        self._mirror_track(key, value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._remove(key)

    def exists(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.expires > self._clock()

    def clear(self) -> int:
        with self._lock:
            keys = list(self._entries)
            for key in keys:
                self._remove(key)
        logger.info(f"Cache cleared ({len(keys)} entries)")
        return len(keys)

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern such as 'product:*'"""
        with self._lock:
            keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in keys:
                self._remove(key)
        if keys:
            logger.info(f"Invalidated {len(keys)} cache entries matching '{pattern}'")
        return len(keys)

    def get_pattern(self, pattern: str) -> List[str]:
        with self._lock:
            return [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]

    def get_multiple(self, keys: List[str]) -> Dict[str, Any]:
        results = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                results[key] = value
        return results

    def set_multiple(self, entries: Dict[str, Any], ttl: Optional[float] = None) -> bool:
        for key, value in entries.items():
            self.set(key, value, ttl)
        return True

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires <= now]
            for key in expired:
                self._remove(key)
            self.expirations += len(expired)
        if expired:
            logger.info(f"Cleaned {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
                "sets": self.sets,
                "evictions": self.evictions,
                "expirations": self.expirations,
                "hit_rate": round(self.hits / lookups * 100, 2) if lookups else 0.0,
                "backend": "memory",
            }

    def _evict_lru(self) -> bool:
        if not self._entries:
            return False
        lru_key = next(iter(self._entries))
        self.evictions += 1
        return self._remove(lru_key)

    def _remove(self, key: str) -> bool:
        if key in self._entries:
            del self._entries[key]
            self._mirror_untrack(key)
            return True
        return False

    def _mirror_track(self, key: str, value: Any):
        if self.optimizer is None:
            return
        try:
            self.optimizer.track_cache(key, value)
        except Exception as e:
            logger.warning(f"Failed to mirror cache entry '{key}' into memory optimizer: {e}")

    def _mirror_untrack(self, key: str):
        if self.optimizer is None:
            return
        try:
            self.optimizer.untrack_cache(key)
        except Exception as e:
            logger.warning(f"Failed to untrack cache entry '{key}' from memory optimizer: {e}")
