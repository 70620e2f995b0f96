"""
Policy Engine - threshold-triggered optimizer

Evaluated once per tick against the latest sample:
- percentage > critical threshold  -> emergency actions
- else percentage > warning        -> optimization actions
- else percentage > gc trigger     -> garbage collection suggestion
Routine sweeps run on every tick regardless of band.

Every action is guarded on its own: a failure is logged and recorded in the
returned ActionResult list, and the remaining actions still run.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from config.monitor_thresholds import is_essential_key, is_image_key
from memwatch.heap_probe import HeapProbe, fallback_collection_burst
from memwatch.leak_detector import FindingLog
from memwatch.models import MemoryMetricSample
from memwatch.notifications import MemoryWarningBus
from memwatch.registries import ResourceRegistries

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class PolicyBand(str, Enum):
    HEALTHY = "healthy"
    GC_SUGGEST = "gc_suggest"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ActionResult:
    name: str
    succeeded: bool
    detail: Any = None


def default_liveness_check(target: Any) -> bool:
    """
    A listener target counts as attached while it is still referenced and
    does not report itself disconnected through an `is_connected` attribute.
    """
    if target is None:
        return False
    connected = getattr(target, "is_connected", True)
    if callable(connected):
        connected = connected()
    return bool(connected)


class PolicyEngine:

    def __init__(self, registries: ResourceRegistries, findings: FindingLog, probe: HeapProbe,
                 notifications: MemoryWarningBus, config,
                 liveness_check: Callable[[Any], bool] = default_liveness_check,
                 clock: Callable[[], float] = time.time):
        self.registries = registries
        self.findings = findings
        self.probe = probe
        self.notifications = notifications
        self.config = config
        self.liveness_check = liveness_check
        self._clock = clock

    def classify(self, sample: Optional[MemoryMetricSample]) -> PolicyBand:
        # With default thresholds the gc band (85) sits inside the warning
        # band (80) and never fires.
        if sample is None:
            return PolicyBand.HEALTHY
        if sample.percentage > self.config.memory_critical_threshold:
            return PolicyBand.CRITICAL
        if sample.percentage > self.config.memory_warning_threshold:
            return PolicyBand.WARNING
        if sample.percentage > self.config.gc_trigger_threshold:
            return PolicyBand.GC_SUGGEST
        return PolicyBand.HEALTHY

    def evaluate(self, sample: Optional[MemoryMetricSample]) -> List[ActionResult]:
        """Run the band actions for `sample`"""
        band = self.classify(sample)
        if band == PolicyBand.CRITICAL:
            logger.error(
                f"CRITICAL: Memory usage {sample.percentage:.1f}% above "
                f"{self.config.memory_critical_threshold}% threshold"
            )
            return self.trigger_emergency_cleanup(sample)
        if band == PolicyBand.WARNING:
            logger.warning(
                f"WARNING: High memory usage {sample.percentage:.1f}% above "
                f"{self.config.memory_warning_threshold}% threshold"
            )
            return self.trigger_memory_optimization()
        if band == PolicyBand.GC_SUGGEST:
            return [self._run("suggest_garbage_collection", self.suggest_garbage_collection)]
        return []

    def _run(self, name: str, action: Callable[[], Any]) -> ActionResult:
        try:
            return ActionResult(name=name, succeeded=True, detail=action())
        except Exception as e:
            logger.error(f"Optimizer action '{name}' failed: {e}", exc_info=True)
            return ActionResult(name=name, succeeded=False, detail=str(e))

    # --- Routine cleanup (every tick)

    def run_routine_cleanup(self) -> List[ActionResult]:
        return [
            self._run("cleanup_expired_cache", self.cleanup_expired_cache),
            self._run("optimize_component_instances", self.optimize_component_instances),
            self._run("cleanup_old_findings", self.cleanup_old_findings),
        ]

    def cleanup_expired_cache(self) -> int:
        cutoff = self._clock() - self.config.cache_entry_ttl
        with self.registries.lock:
            expired = [key for key, entry in self.registries.cache.items() if entry.created < cutoff]
            for key in expired:
                del self.registries.cache[key]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def optimize_component_instances(self) -> int:
        """Forget stats of components idle past the component TTL, whatever their instance count"""
        cutoff = self._clock() - self.config.component_idle_ttl
        with self.registries.lock:
            idle = [name for name, record in self.registries.components.items() if record.last_accessed < cutoff]
            for name in idle:
                del self.registries.components[name]
        if idle:
            logger.debug(f"Reset stats for {len(idle)} idle components: {idle}")
        return len(idle)

    def cleanup_old_findings(self) -> int:
        removed = self.findings.prune(self._clock() - self.config.finding_retention)
        if removed:
            logger.debug(f"Pruned {removed} leak findings older than {self.config.finding_retention}s")
        return removed

    # --- Warning band

    def trigger_memory_optimization(self) -> List[ActionResult]:
        logger.info("Triggering memory optimization...")
        return [
            self._run("clear_orphaned_listeners", self.clear_orphaned_listeners),
            self._run("optimize_image_caches", self.optimize_image_caches),
            self._run("suggest_component_cleanup", self.suggest_component_cleanup),
        ]

    def clear_orphaned_listeners(self) -> int:
        with self.registries.lock:
            handles = list(self.registries.listeners.values())

        orphaned = []
        for handle in handles:
            try:
                attached = self.liveness_check(handle.target)
            except Exception as e:
                # Unknown liveness keeps the listener
                logger.warning(f"Liveness check failed for listener {handle.key}: {e}")
                continue
            if not attached:
                orphaned.append(handle.key)

        with self.registries.lock:
            for key in orphaned:
                self.registries.listeners.pop(key, None)
        logger.info(f"Cleared {len(orphaned)} orphaned listener references")
        return len(orphaned)

    def optimize_image_caches(self) -> int:
        """Keep only the most recently created image-like cache entries"""
        keep = self.config.image_cache_keep
        with self.registries.lock:
            image_entries = sorted(
                (entry for key, entry in self.registries.cache.items() if is_image_key(key)),
                key=lambda entry: entry.created,
                reverse=True,
            )
            dropped = image_entries[keep:]
            for entry in dropped:
                del self.registries.cache[entry.key]
        if dropped:
            logger.info(f"Trimmed {len(dropped)} image cache entries, kept {keep} most recent")
        return len(dropped)

    def suggest_component_cleanup(self) -> List[dict]:
        """Advisory only - component stats are not evicted here"""
        cutoff = self._clock() - self.config.component_cleanup_age
        candidates = sorted(
            (r for r in self.registries.snapshot_components() if r.last_accessed < cutoff),
            key=lambda r: r.total_size,
            reverse=True,
        )
        suggestions = [
            {"component": r.name, "size": f"{round(r.total_size / MB)}MB", "instances": r.instances}
            for r in candidates
        ]
        if suggestions:
            logger.info(f"Suggested component cleanup: {suggestions}")
        return suggestions

    # --- GC band

    def suggest_garbage_collection(self) -> bool:
        return self.probe.request_collection()

    # --- Critical band

    def trigger_emergency_cleanup(self, sample: Optional[MemoryMetricSample]) -> List[ActionResult]:
        logger.error("Triggering emergency memory cleanup!")
        return [
            self._run("clear_non_essential_caches", self.clear_non_essential_caches),
            self._run("force_garbage_collection", self.force_garbage_collection),
            self._run("notify_memory_issue", lambda: self.notify_memory_issue(sample)),
        ]

    def clear_non_essential_caches(self) -> int:
        with self.registries.lock:
            non_essential = [key for key in self.registries.cache if not is_essential_key(key)]
            for key in non_essential:
                del self.registries.cache[key]
        logger.error(f"Emergency cleanup: cleared {len(non_essential)} non-essential cache entries")
        return len(non_essential)

    def force_garbage_collection(self) -> str:
        try:
            if self.probe.request_collection():
                return "probe"
        except Exception as e:
            logger.warning(f"Could not trigger manual GC through {self.probe.name} probe: {e}")
        fallback_collection_burst()
        return "fallback"

    def notify_memory_issue(self, sample: Optional[MemoryMetricSample]) -> int:
        logger.error("MEMORY WARNING: The application is using high memory.")
        return self.notifications.broadcast(sample)
