"""
Data model for the memory monitoring core

Samples, leak findings, per-component usage records and the tracked
cache/listener entries held by the resource registries.
"""

import weakref
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class LeakType(str, Enum):
    LISTENER = "listener"
    TIMER = "timer"
    REFERENCE = "reference"
    OBSERVER = "observer"
    CACHE = "cache"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class HeapReading:
    """Raw figures returned by a heap probe"""
    used: int
    total: int
    limit: int


@dataclass(frozen=True)
class MemoryMetricSample:
    """One point-in-time heap reading"""
    used: int
    total: int
    limit: int
    trend: Trend
    timestamp: float

    @property
    def percentage(self) -> float:
        if self.limit <= 0:
            return 0.0
        return self.used / self.limit * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used": self.used,
            "total": self.total,
            "limit": self.limit,
            "percentage": round(self.percentage, 2),
            "trend": self.trend.value,
            "timestamp": self.timestamp,
        }


@dataclass
class MemoryLeakFinding:
    """A single detected potential memory leak"""
    id: str
    component: str
    type: LeakType
    severity: Severity
    description: str
    detected_at: float
    estimated_size: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        return data


@dataclass
class ComponentUsageRecord:
    """Aggregate memory accounting for one logical component name"""
    name: str
    instances: int = 0
    total_size: int = 0
    last_accessed: float = 0.0
    leak_risk: int = 0  # reserved, no rule populates it yet

    @property
    def average_size(self) -> float:
        if self.instances <= 0:
            return 0.0
        return self.total_size / self.instances

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "instances": self.instances,
            "average_size": self.average_size,
            "total_size": self.total_size,
            "last_accessed": self.last_accessed,
            "leak_risk": self.leak_risk,
        }


@dataclass
class CacheTrackingEntry:
    key: str
    data: Any
    size: int
    created: float


@dataclass
class ListenerHandle:
    """
    An event subscription tracked for counting and orphan detection.

    The target is held weakly when it supports weak references, so a
    collected target reads as detached.
    """
    key: str
    event_type: str
    callback: Callable[..., Any]
    options: Optional[Dict[str, Any]] = None
    registered_at: float = 0.0
    _target_ref: Any = field(default=None, repr=False)
    _strong_target: Any = field(default=None, repr=False)

    @classmethod
    def for_target(cls, key: str, target: Any, event_type: str, callback: Callable[..., Any],
                   options: Optional[Dict[str, Any]] = None, registered_at: float = 0.0) -> "ListenerHandle":
        handle = cls(key=key, event_type=event_type, callback=callback,
                     options=options, registered_at=registered_at)
        try:
            handle._target_ref = weakref.ref(target)
        except TypeError:
            # ints, strings and other builtins cannot be weakly referenced
            handle._strong_target = target
        return handle

    @property
    def target(self) -> Any:
        if self._target_ref is not None:
            return self._target_ref()
        return self._strong_target
