import logging
import threading
from typing import Callable, List, Optional

from memwatch.models import MemoryMetricSample

logger = logging.getLogger(__name__)

MemoryWarningCallback = Callable[[Optional[MemoryMetricSample]], None]


class MemoryWarningBus:
    """Process-wide "memory warning" event, broadcast at the critical threshold"""

    def __init__(self):
        self._subscribers: List[MemoryWarningCallback] = []
        self._lock = threading.Lock()
        self.broadcast_count = 0

    def subscribe(self, callback: MemoryWarningCallback) -> Callable[[], None]:
        """Add a subscriber. Returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            self.unsubscribe(callback)
        return unsubscribe

    def unsubscribe(self, callback: MemoryWarningCallback):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def broadcast(self, sample: Optional[MemoryMetricSample]) -> int:
        """Notify every subscriber. Returns the number notified successfully."""
        with self._lock:
            subscribers = list(self._subscribers)
        self.broadcast_count += 1

        delivered = 0
        for callback in subscribers:
            try:
                callback(sample)
                delivered += 1
            except Exception as e:
                logger.error(f"Memory warning subscriber failed: {e}")
        return delivered

    def clear(self):
        with self._lock:
            self._subscribers.clear()

    def __len__(self):
        return len(self._subscribers)
