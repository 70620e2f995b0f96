"""
Memory Optimizer Service

Owns the resource registries, the metrics sampler, the leak detector and the
policy engine, and drives them from one monitoring loop:

    tick = sample -> band actions -> leak detection -> routine sweeps

Instances are constructed explicitly (see memwatch.dependencies for the
application-wide one), so tests run isolated optimizers with their own clock
and heap probe.
"""

import asyncio
import itertools
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

from config.app_config import AppConfig, get_config
from memwatch.heap_probe import HeapProbe, build_heap_probe
from memwatch.leak_detector import FindingLog, LeakDetector
from memwatch.models import ComponentUsageRecord, ListenerHandle, MemoryLeakFinding, MemoryMetricSample
from memwatch.notifications import MemoryWarningBus
from memwatch.policy import ActionResult, PolicyEngine, default_liveness_check
from memwatch.registries import DEFAULT_COMPONENT_SIZE, ResourceRegistries
from memwatch.reporting import MemoryReport, build_report
from memwatch.sampler import MetricsSampler

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    sample: Optional[MemoryMetricSample]
    findings: List[MemoryLeakFinding] = field(default_factory=list)
    actions: List[ActionResult] = field(default_factory=list)

    @property
    def failed_actions(self) -> List[ActionResult]:
        return [action for action in self.actions if not action.succeeded]


class MemoryOptimizer:
    """
    In-process memory monitoring and adaptive optimization

    Features:
    - Periodic heap sampling with trend detection
    - Leak heuristics for listeners, timers, observers, cache and components
    - Threshold-triggered cleanup (routine, warning, emergency)
    - On-demand report with risk score and health status
    """

    def __init__(self, config: Optional[AppConfig] = None, probe: Optional[HeapProbe] = None,
                 clock: Callable[[], float] = time.time,
                 liveness_check: Callable[[Any], bool] = default_liveness_check,
                 notifications: Optional[MemoryWarningBus] = None):
        self.config = config or get_config()
        self._clock = clock

        self.registries = ResourceRegistries(clock=clock)
        self.findings = FindingLog()
        self.notifications = notifications or MemoryWarningBus()
        self.probe = probe or build_heap_probe(self.config)
        self.sampler = MetricsSampler(self.probe, history_size=self.config.sample_history_size, clock=clock)
        self.detector = LeakDetector()
        self.policy = PolicyEngine(
            registries=self.registries,
            findings=self.findings,
            probe=self.probe,
            notifications=self.notifications,
            config=self.config,
            liveness_check=liveness_check,
            clock=clock,
        )

        # Background monitoring
        self._monitoring_task: Optional[asyncio.Task] = None
        self._monitoring_active = False
        self._tick_lock = threading.Lock()
        self._listener_sequence = itertools.count(1)
        self.tick_count = 0
        self.last_tick: Optional[TickResult] = None

        logger.info(f"MemoryOptimizer initialized (probe={self.probe.name})")

    # --- Lifecycle

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring_active

    async def start(self, interval: Optional[float] = None):
        """Start the background monitoring loop"""
        if self._monitoring_active:
            return

        interval = interval or self.config.sampling_interval
        self._monitoring_active = True
        # Immediate initial collection
        self.tick()
        self._monitoring_task = asyncio.create_task(self._monitor_loop(interval))
        logger.info(f"Memory monitoring started (interval: {interval}s)")

    async def stop(self):
        """Stop the background monitoring loop. Registries are kept."""
        self._monitoring_active = False
        task, self._monitoring_task = self._monitoring_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Memory monitoring stopped")

    async def _monitor_loop(self, interval: float):
        while self._monitoring_active:
            try:
                await asyncio.sleep(interval)
                self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Memory monitoring loop error: {e}", exc_info=True)

    def tick(self) -> TickResult:
        """Run one sampling/detection/optimization cycle"""
        with self._tick_lock:
            sample = self.sampler.collect()
            result = TickResult(sample=sample)

            if sample is not None:
                result.actions.extend(self.policy.evaluate(sample))

            try:
                result.findings = self.detector.detect(self.registries, self._clock())
                self.findings.extend(result.findings)
            except Exception as e:
                logger.error(f"Leak detection failed: {e}", exc_info=True)

            result.actions.extend(self.policy.run_routine_cleanup())

            self.tick_count += 1
            self.last_tick = result
            return result

    def cleanup(self):
        """Stop monitoring and empty every registry. Safe to call repeatedly."""
        self._monitoring_active = False
        task, self._monitoring_task = self._monitoring_task, None
        if task and not task.done():
            task.cancel()

        self.registries.clear()
        self.findings.clear()
        self.sampler.clear()
        logger.info("Memory optimizer cleaned up")

    def handle_memory_error(self, exc: BaseException) -> List[ActionResult]:
        """Run the emergency path when the host reports running out of memory or stack"""
        logger.error(f"Resource exhaustion reported: {exc!r}")
        return self.policy.trigger_emergency_cleanup(self.get_current_metrics())

    # --- Registration API

    def register_component(self, name: str, estimated_size: int = DEFAULT_COMPONENT_SIZE):
        self.registries.register_component(name, estimated_size)

    def unregister_component(self, name: str, estimated_size: int = DEFAULT_COMPONENT_SIZE):
        self.registries.unregister_component(name, estimated_size)

    @contextmanager
    def tracked_component(self, name: str, estimated_size: int = DEFAULT_COMPONENT_SIZE) -> Iterator[None]:
        """Register `name` for the lifetime of the with-block"""
        self.register_component(name, estimated_size)
        try:
            yield
        finally:
            self.unregister_component(name, estimated_size)

    def track_cache(self, key: str, data: Any):
        self.registries.track_cache(key, data)

    def untrack_cache(self, key: str):
        self.registries.untrack_cache(key)

    def track_timer(self, handle: Hashable):
        self.registries.track_timer(handle)

    def untrack_timer(self, handle: Hashable):
        self.registries.untrack_timer(handle)

    def track_observer(self, handle: Hashable):
        self.registries.track_observer(handle)

    def untrack_observer(self, handle: Hashable):
        self.registries.untrack_observer(handle)

    def add_event_listener(self, target: Any, event_type: str, callback: Callable[..., Any],
                           options: Optional[Dict[str, Any]] = None) -> str:
        """
        Record an event subscription and return its registry key.

        Call sites subscribe through this wrapper instead of having a global
        subscription primitive patched underneath them.
        """
        key = f"{type(target).__name__}-{event_type}-{next(self._listener_sequence)}"
        handle = ListenerHandle.for_target(
            key=key,
            target=target,
            event_type=event_type,
            callback=callback,
            options=options,
            registered_at=self._clock(),
        )
        self.registries.track_listener(handle)
        return key

    def remove_event_listener(self, key: str) -> bool:
        return self.registries.untrack_listener(key)

    # --- Queries

    def get_current_metrics(self) -> Optional[MemoryMetricSample]:
        return self.sampler.current()

    def get_memory_history(self) -> List[MemoryMetricSample]:
        return self.sampler.snapshot()

    def get_memory_leaks(self) -> List[MemoryLeakFinding]:
        return self.findings.snapshot()

    def get_component_stats(self) -> List[ComponentUsageRecord]:
        return self.registries.snapshot_components()

    def get_recommendations(self) -> List[str]:
        return self.get_report().recommendations

    def get_report(self) -> MemoryReport:
        return build_report(
            current=self.get_current_metrics(),
            history=self.get_memory_history(),
            leaks=self.get_memory_leaks(),
            components=self.get_component_stats(),
            registry_counts=self.registries.counts(),
            warning_threshold=self.config.memory_warning_threshold,
            critical_threshold=self.config.memory_critical_threshold,
        )
