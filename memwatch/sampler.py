import logging
import time
from collections import deque
from typing import Callable, List, Optional

from config.monitor_thresholds import TREND_CONFIG
from memwatch.heap_probe import HeapProbe
from memwatch.models import MemoryMetricSample, Trend

logger = logging.getLogger(__name__)


class MetricsSampler:
    """Produces one MemoryMetricSample per tick into a bounded history"""

    def __init__(self, probe: HeapProbe, history_size: int = 100,
                 clock: Callable[[], float] = time.time):
        self.probe = probe
        self.history: deque = deque(maxlen=history_size)
        self._clock = clock
        self._unavailable_logged = False

    def collect(self) -> Optional[MemoryMetricSample]:
        """Read the probe and append a sample. Returns None when no reading is available."""
        try:
            reading = self.probe.sample()
        except Exception as e:
            logger.warning(f"Heap probe {self.probe.name} raised during sampling: {e}")
            reading = None

        if reading is None:
            if not self._unavailable_logged:
                logger.info(f"Heap introspection unavailable ({self.probe.name}), sampler idle")
                self._unavailable_logged = True
            return None

        sample = MemoryMetricSample(
            used=reading.used,
            total=reading.total,
            limit=reading.limit,
            trend=self.calculate_trend(reading.used),
            timestamp=self._clock(),
        )
        self.history.append(sample)
        return sample

    def calculate_trend(self, current_usage: int) -> Trend:
        """
        Compare the last `window` samples already in history.

        Fewer samples than the window is stable by definition.
        """
        window = TREND_CONFIG["window"]
        if len(self.history) < window:
            return Trend.STABLE

        recent = list(self.history)[-window:]
        delta = recent[-1].used - recent[0].used
        change_threshold = current_usage * TREND_CONFIG["change_ratio"]

        if delta > change_threshold:
            return Trend.INCREASING
        if delta < -change_threshold:
            return Trend.DECREASING
        return Trend.STABLE

    def current(self) -> Optional[MemoryMetricSample]:
        return self.history[-1] if self.history else None

    def snapshot(self) -> List[MemoryMetricSample]:
        return list(self.history)

    def clear(self):
        self.history.clear()
