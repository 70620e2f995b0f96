"""
Reporting Facade

Pull-based, side-effect-free aggregation of the current monitoring state into
one report for the dashboard and the admin performance API.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config.monitor_thresholds import (
    INCREASING_TREND_PENALTY,
    MAX_RISK_SCORE,
    RECOMMENDATION_LIMITS,
    RISK_WEIGHTS,
    STATUS_CONFIG,
    USAGE_WEIGHT,
    efficiency_for,
)
from memwatch.models import (
    ComponentUsageRecord,
    HealthStatus,
    MemoryLeakFinding,
    MemoryMetricSample,
    Severity,
    Trend,
)


@dataclass
class ReportSummary:
    status: HealthStatus
    total_leaks: int
    risk_score: float
    efficiency: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total_leaks": self.total_leaks,
            "risk_score": round(self.risk_score, 2),
            "efficiency": self.efficiency,
        }


@dataclass
class MemoryReport:
    current: Optional[MemoryMetricSample]
    history: List[MemoryMetricSample]
    leaks: List[MemoryLeakFinding]
    components: List[ComponentUsageRecord]
    recommendations: List[str]
    summary: ReportSummary
    registry_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self, max_leaks: Optional[int] = None) -> Dict[str, Any]:
        """JSON shape. `max_leaks` caps the displayed findings to the newest N."""
        leaks = self.leaks
        if max_leaks is not None:
            leaks = self.leaks[-max_leaks:] if max_leaks > 0 else []
        return {
            "current": self.current.to_dict() if self.current else None,
            "history": [sample.to_dict() for sample in self.history],
            "leaks": [leak.to_dict() for leak in leaks],
            "components": [record.to_dict() for record in self.components],
            "recommendations": list(self.recommendations),
            "summary": self.summary.to_dict(),
            "registry_counts": dict(self.registry_counts),
        }


def calculate_risk_score(current: Optional[MemoryMetricSample], leaks: List[MemoryLeakFinding]) -> float:
    """Heap pressure, trend and outstanding findings combined into 0-100"""
    score = 0.0
    if current is not None:
        score += current.percentage * USAGE_WEIGHT
        if current.trend == Trend.INCREASING:
            score += INCREASING_TREND_PENALTY

    for leak in leaks:
        score += RISK_WEIGHTS.get(leak.severity.value, 0)

    return max(0.0, min(float(MAX_RISK_SCORE), score))


def get_health_status(current: Optional[MemoryMetricSample], leaks: List[MemoryLeakFinding],
                      warning_threshold: float = 80.0, critical_threshold: float = 95.0) -> HealthStatus:
    # Without heap metrics there is nothing to grade
    if current is None:
        return HealthStatus.HEALTHY

    percentage = current.percentage
    if percentage > critical_threshold or any(leak.severity == Severity.CRITICAL for leak in leaks):
        return HealthStatus.CRITICAL
    if percentage > warning_threshold or len(leaks) > STATUS_CONFIG["warning_finding_count"]:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def build_recommendations(current: Optional[MemoryMetricSample], leak_count: int,
                          cache_entries: int, observers: int,
                          warning_threshold: float = 80.0) -> List[str]:
    recommendations: List[str] = []
    if current is None:
        return recommendations

    if current.percentage > warning_threshold:
        recommendations.append("Consider reducing component instances or implementing lazy loading")
    if leak_count > 0:
        recommendations.append("Memory leaks detected - review event listeners and timer cleanup")
    if cache_entries > RECOMMENDATION_LIMITS["cache_entries"]:
        recommendations.append("Large number of cache entries - implement cache eviction strategy")
    if observers > RECOMMENDATION_LIMITS["observers"]:
        recommendations.append("Many active observers - ensure proper cleanup in component unmount")
    if current.trend == Trend.INCREASING:
        recommendations.append("Memory usage trending upward - monitor for potential leaks")
    return recommendations


def build_report(current: Optional[MemoryMetricSample], history: List[MemoryMetricSample],
                 leaks: List[MemoryLeakFinding], components: List[ComponentUsageRecord],
                 registry_counts: Dict[str, int], warning_threshold: float = 80.0,
                 critical_threshold: float = 95.0) -> MemoryReport:
    recommendations = build_recommendations(
        current,
        leak_count=len(leaks),
        cache_entries=registry_counts.get("cache_entries", 0),
        observers=registry_counts.get("observers", 0),
        warning_threshold=warning_threshold,
    )
    risk_score = calculate_risk_score(current, leaks)
    summary = ReportSummary(
        status=get_health_status(current, leaks, warning_threshold, critical_threshold),
        total_leaks=len(leaks),
        risk_score=risk_score,
        efficiency=efficiency_for(risk_score),
    )
    return MemoryReport(
        current=current,
        history=history,
        leaks=leaks,
        components=components,
        recommendations=recommendations,
        summary=summary,
        registry_counts=registry_counts,
    )
