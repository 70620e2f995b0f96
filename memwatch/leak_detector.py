"""
Leak Detector

Converts registry sizes into MemoryLeakFinding records using the static
limits in config.monitor_thresholds. Every call is a pure read of the current
registry state; findings are returned and FindingLog keeps them.
"""

import itertools
import logging
import threading
from typing import List

from config.monitor_thresholds import LEAK_THRESHOLDS, severity_for
from memwatch.models import LeakType, MemoryLeakFinding, Severity
from memwatch.registries import ResourceRegistries

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class LeakDetector:

    def __init__(self, thresholds: dict = None):
        self.thresholds = thresholds or LEAK_THRESHOLDS
        self._sequence = itertools.count(1)

    def detect(self, registries: ResourceRegistries, now: float) -> List[MemoryLeakFinding]:
        """Run every per-class rule against the registries"""
        findings: List[MemoryLeakFinding] = []
        with registries.lock:
            listener_count = len(registries.listeners)
            timer_count = len(registries.timers)
            observer_count = len(registries.observers)
            cache_sizes = [entry.size for entry in registries.cache.values()]
            components = registries.snapshot_components()

        findings.extend(self._detect_counted(
            LeakType.LISTENER, "EventListener", listener_count, now,
            f"{listener_count} event listeners detected. Potential memory leak."))
        findings.extend(self._detect_counted(
            LeakType.TIMER, "Timer", timer_count, now,
            f"{timer_count} active timers detected. Check for uncleaned intervals/timeouts."))
        findings.extend(self._detect_counted(
            LeakType.OBSERVER, "Observer", observer_count, now,
            f"{observer_count} active observers detected. Ensure proper cleanup."))
        findings.extend(self._detect_cache(cache_sizes, now))
        findings.extend(self._detect_components(components, now))

        for finding in findings:
            logger.warning(
                f"Leak finding [{finding.type.value}/{finding.severity.value}] "
                f"{finding.component}: {finding.description}"
            )
        return findings

    def _detect_counted(self, leak_type: LeakType, component: str, count: int,
                        now: float, description: str) -> List[MemoryLeakFinding]:
        limits = self.thresholds[leak_type.value]
        if count <= limits["trigger_count"]:
            return []
        return [self._finding(
            leak_type=leak_type,
            component=component,
            severity=Severity(severity_for(leak_type.value, count, self.thresholds)),
            description=description,
            now=now,
            estimated_size=count * limits["bytes_per_entry"],
        )]

    def _detect_cache(self, sizes: List[int], now: float) -> List[MemoryLeakFinding]:
        limits = self.thresholds[LeakType.CACHE.value]
        total_size = sum(sizes)
        count = len(sizes)
        if total_size <= limits["trigger_bytes"] and count <= limits["trigger_count"]:
            return []
        return [self._finding(
            leak_type=LeakType.CACHE,
            component="Cache",
            severity=Severity(severity_for(LeakType.CACHE.value, total_size, self.thresholds)),
            description=f"Cache bloat detected: {round(total_size / MB)}MB in {count} items.",
            now=now,
            estimated_size=total_size,
        )]

    def _detect_components(self, components, now: float) -> List[MemoryLeakFinding]:
        limits = self.thresholds[LeakType.REFERENCE.value]
        findings = []
        for record in components:
            idle_for = now - record.last_accessed
            if idle_for > limits["idle_seconds"] and record.total_size > limits["trigger_bytes"]:
                findings.append(self._finding(
                    leak_type=LeakType.REFERENCE,
                    component=record.name,
                    severity=Severity(severity_for(LeakType.REFERENCE.value, record.total_size, self.thresholds)),
                    description=(
                        f"Component {record.name} ({record.instances} instances) consuming "
                        f"{round(record.total_size / MB)}MB without recent access."
                    ),
                    now=now,
                    estimated_size=record.total_size,
                    id_hint=record.name,
                ))
        return findings

    def _finding(self, leak_type: LeakType, component: str, severity: Severity, description: str,
                 now: float, estimated_size: int, id_hint: str = "") -> MemoryLeakFinding:
        prefix = "component" if leak_type == LeakType.REFERENCE else leak_type.value
        parts = [prefix, "leak"]
        if id_hint:
            parts.append(id_hint)
        parts.extend([str(int(now * 1000)), str(next(self._sequence))])
        return MemoryLeakFinding(
            id="-".join(parts),
            component=component,
            type=leak_type,
            severity=severity,
            description=description,
            detected_at=now,
            estimated_size=estimated_size,
        )


class FindingLog:
    """
    Append-only log of findings with a time-window retention.

    Findings for the same cause are not merged; each tick that exceeds a
    threshold adds a new entry.
    """

    def __init__(self):
        self._findings: List[MemoryLeakFinding] = []
        self._lock = threading.Lock()

    def extend(self, findings: List[MemoryLeakFinding]):
        if not findings:
            return
        with self._lock:
            self._findings.extend(findings)

    def prune(self, cutoff: float) -> int:
        """Drop findings detected at or before `cutoff`. Returns the number removed."""
        with self._lock:
            before = len(self._findings)
            self._findings = [f for f in self._findings if f.detected_at > cutoff]
            return before - len(self._findings)

    def snapshot(self) -> List[MemoryLeakFinding]:
        with self._lock:
            return list(self._findings)

    def clear(self):
        with self._lock:
            self._findings.clear()

    def __len__(self):
        return len(self._findings)
