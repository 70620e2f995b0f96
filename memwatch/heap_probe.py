"""
Heap introspection adapters

The monitoring core only sees this interface. Without a usable adapter the
sampler degrades to a no-op instead of failing.
"""

import gc
import logging
from typing import Optional

import psutil

from config.monitor_thresholds import GC_FALLBACK_CONFIG
from memwatch.models import HeapReading

logger = logging.getLogger(__name__)


class HeapProbe:
    """Reads heap figures and requests collection. Default: unavailable."""

    name = "base"

    def sample(self) -> Optional[HeapReading]:
        return None

    def request_collection(self) -> bool:
        return False


class UnavailableHeapProbe(HeapProbe):
    """Runtime exposes no heap introspection"""

    name = "none"


class PsutilHeapProbe(HeapProbe):
    """
    Process memory via psutil.

    used = RSS, total = VMS, limit = configured ceiling or physical memory.
    """

    name = "psutil"

    def __init__(self, limit_bytes: Optional[int] = None):
        self.limit_bytes = limit_bytes
        self._process = psutil.Process()

    def sample(self) -> Optional[HeapReading]:
        try:
            info = self._process.memory_info()
            limit = self.limit_bytes or psutil.virtual_memory().total
        except (psutil.Error, OSError) as e:
            logger.warning(f"psutil memory sample failed: {e}")
            return None
        return HeapReading(used=info.rss, total=info.vms, limit=limit)

    def request_collection(self) -> bool:
        collected = gc.collect()
        logger.info(f"Manual garbage collection triggered, collected {collected} objects")
        return True


def fallback_collection_burst(rounds: Optional[int] = None, size: Optional[int] = None) -> int:
    """Allocate and release large lists to nudge the allocator. Returns rounds completed."""
    rounds = GC_FALLBACK_CONFIG["rounds"] if rounds is None else rounds
    size = GC_FALLBACK_CONFIG["size"] if size is None else size
    completed = 0
    for _ in range(rounds):
        block = [0] * size
        del block
        completed += 1
    return completed


def build_heap_probe(config) -> HeapProbe:
    """Pick the heap probe adapter named in the config"""
    if config.heap_probe == "psutil":
        try:
            return PsutilHeapProbe(limit_bytes=config.heap_limit_bytes)
        except (psutil.Error, OSError) as e:
            logger.warning(f"psutil heap probe unavailable, running without heap metrics: {e}")
    return UnavailableHeapProbe()
