"""
In-process tracking tables for timers, observers, listeners, cache payloads
and component usage. Pure bookkeeping - no policy lives here.
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, Set

from memwatch.error_messages import get_user_message
from memwatch.exceptions import RegistryError
from memwatch.models import CacheTrackingEntry, ComponentUsageRecord, ListenerHandle

logger = logging.getLogger(__name__)

DEFAULT_COMPONENT_SIZE = 1024


def estimate_payload_size(data: Any) -> int:
    """Size of a payload measured as its serialized length"""
    try:
        return len(json.dumps(data, default=str))
    except (TypeError, ValueError) as e:
        # Circular structures cannot be serialized
        logger.debug(f"Cache payload not serializable, using repr length: {e}")
        return len(repr(data))


class ResourceRegistries:
    """
    Shared tracking state.

    Registration calls arrive from arbitrary threads (FastAPI runs sync
    handlers in a threadpool), so every table is guarded by one RLock.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.RLock()
        self.timers: Set[Hashable] = set()
        self.observers: Set[Hashable] = set()
        self.listeners: Dict[str, ListenerHandle] = {}
        self.cache: Dict[str, CacheTrackingEntry] = {}
        self.components: Dict[str, ComponentUsageRecord] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # --- Components

    def register_component(self, name: str, estimated_size: int = DEFAULT_COMPONENT_SIZE) -> ComponentUsageRecord:
        self._validate_component(name, estimated_size)
        with self._lock:
            record = self.components.get(name)
            if record is None:
                record = ComponentUsageRecord(name=name)
                self.components[name] = record
            record.instances += 1
            record.total_size += estimated_size
            record.last_accessed = self._clock()
            return record

    def unregister_component(self, name: str, estimated_size: int = DEFAULT_COMPONENT_SIZE) -> Optional[ComponentUsageRecord]:
        self._validate_component(name, estimated_size)
        with self._lock:
            record = self.components.get(name)
            if record is None:
                return None
            record.instances = max(0, record.instances - 1)
            record.total_size = max(0, record.total_size - estimated_size)
            if record.instances == 0:
                del self.components[name]
                return None
            return record

    def _validate_component(self, name: str, estimated_size: int):
        if not isinstance(name, str) or not name:
            raise RegistryError(get_user_message("invalid_component"), context={"name": name})
        if estimated_size < 0:
            raise RegistryError(get_user_message("invalid_size", size=estimated_size), context={"name": name})

    # --- Cache

    def track_cache(self, key: str, data: Any) -> CacheTrackingEntry:
        entry = CacheTrackingEntry(key=key, data=data, size=estimate_payload_size(data), created=self._clock())
        with self._lock:
            self.cache[key] = entry
        return entry

    def untrack_cache(self, key: str) -> bool:
        with self._lock:
            return self.cache.pop(key, None) is not None

    # --- Timers / observers

    def track_timer(self, handle: Hashable):
        with self._lock:
            self.timers.add(handle)

    def untrack_timer(self, handle: Hashable):
        with self._lock:
            self.timers.discard(handle)

    def track_observer(self, handle: Hashable):
        with self._lock:
            self.observers.add(handle)

    def untrack_observer(self, handle: Hashable):
        with self._lock:
            self.observers.discard(handle)

    # --- Listeners

    def track_listener(self, handle: ListenerHandle):
        with self._lock:
            self.listeners[handle.key] = handle

    def untrack_listener(self, key: str) -> bool:
        with self._lock:
            return self.listeners.pop(key, None) is not None

    # --- Snapshots

    def snapshot_components(self) -> List[ComponentUsageRecord]:
        with self._lock:
            return [
                ComponentUsageRecord(
                    name=r.name,
                    instances=r.instances,
                    total_size=r.total_size,
                    last_accessed=r.last_accessed,
                    leak_risk=r.leak_risk,
                )
                for r in self.components.values()
            ]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "timers": len(self.timers),
                "observers": len(self.observers),
                "listeners": len(self.listeners),
                "cache_entries": len(self.cache),
                "components": len(self.components),
            }

    def clear(self):
        with self._lock:
            self.timers.clear()
            self.observers.clear()
            self.listeners.clear()
            self.cache.clear()
            self.components.clear()
