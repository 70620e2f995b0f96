# Monitor Threshold Configuration for Memwatch
# Leak detection limits and scoring weights

"""
Monitor Threshold Configuration

Static limits used by the leak detector and the reporting layer.

Leak classes:
- listener/timer/observer: counted registries, escalated by entry count
- cache: tracked cache payloads, triggered by aggregate bytes or entry count
- reference: registered components idle for a while while holding memory
"""

MB = 1024 * 1024

# Per-resource-class leak thresholds
LEAK_THRESHOLDS = {
    "listener": {
        "trigger_count": 50,          # > 50 entries -> finding
        "escalate_count": 100,        # > 100 entries -> escalated severity
        "escalated_severity": "critical",
        "bytes_per_entry": 100,
    },
    "timer": {
        "trigger_count": 20,
        "escalate_count": 50,
        "escalated_severity": "high",
        "bytes_per_entry": 50,
    },
    "observer": {
        "trigger_count": 10,
        "escalate_count": 25,
        "escalated_severity": "high",
        "bytes_per_entry": 200,
    },
    "cache": {
        "trigger_bytes": 10 * MB,     # aggregate payload size
        "trigger_count": 1000,        # OR number of entries
        "escalate_bytes": 50 * MB,
        "escalated_severity": "critical",
    },
    "reference": {
        "idle_seconds": 300,          # component not accessed for 5 minutes
        "trigger_bytes": 1 * MB,
        "escalate_bytes": 10 * MB,
        "escalated_severity": "high",
    },
}

BASE_SEVERITY = "medium"

# Risk score composition
RISK_WEIGHTS = {
    "critical": 20,
    "high": 15,
    "medium": 10,
    "low": 5,
}
USAGE_WEIGHT = 0.6                # share of heap percentage in the risk score
INCREASING_TREND_PENALTY = 15
MAX_RISK_SCORE = 100

# Efficiency labels derived from the risk score (upper bound exclusive)
EFFICIENCY_BANDS = [
    (30, "excellent"),
    (60, "good"),
    (80, "fair"),
]
LOWEST_EFFICIENCY = "poor"

# Trend detection over the sample history
TREND_CONFIG = {
    "window": 5,                  # compare newest against the sample 5 ticks back
    "change_ratio": 0.05,         # 5% of current usage
}

# Health status limits outside the heap percentage
STATUS_CONFIG = {
    "warning_finding_count": 5,   # more findings than this -> warning
}

# Recommendation triggers
RECOMMENDATION_LIMITS = {
    "cache_entries": 100,
    "observers": 10,
}

# Cache key naming conventions
ESSENTIAL_CACHE_MARKERS = ("essential", "critical")
IMAGE_CACHE_MARKERS = ("image", "img")

# Allocate/release burst used when no collection hook is available
GC_FALLBACK_CONFIG = {
    "rounds": 5,
    "size": 1_000_000,
}

def severity_for(leak_type: str, magnitude: float, thresholds: dict = None) -> str:
    """
    Map a leak magnitude to its severity

    Args:
        leak_type (str): One of the LEAK_THRESHOLDS keys
        magnitude (float): Entry count for counted classes, bytes for cache/reference
        thresholds (dict): Threshold table to read limits from, LEAK_THRESHOLDS by default

    Returns:
        str: Severity name
    """
    limits = (thresholds or LEAK_THRESHOLDS)[leak_type]
    escalate = limits.get("escalate_count", limits.get("escalate_bytes"))
    if escalate is not None and magnitude > escalate:
        return limits["escalated_severity"]
    return BASE_SEVERITY

def efficiency_for(risk_score: float) -> str:
    """Map a risk score to its efficiency label"""
    for upper_bound, label in EFFICIENCY_BANDS:
        if risk_score < upper_bound:
            return label
    return LOWEST_EFFICIENCY

def is_essential_key(key: str) -> bool:
    return any(marker in key for marker in ESSENTIAL_CACHE_MARKERS)

def is_image_key(key: str) -> bool:
    return any(marker in key for marker in IMAGE_CACHE_MARKERS)

__all__ = [
    'LEAK_THRESHOLDS',
    'BASE_SEVERITY',
    'RISK_WEIGHTS',
    'USAGE_WEIGHT',
    'INCREASING_TREND_PENALTY',
    'MAX_RISK_SCORE',
    'EFFICIENCY_BANDS',
    'TREND_CONFIG',
    'STATUS_CONFIG',
    'RECOMMENDATION_LIMITS',
    'ESSENTIAL_CACHE_MARKERS',
    'IMAGE_CACHE_MARKERS',
    'GC_FALLBACK_CONFIG',
    'severity_for',
    'efficiency_for',
    'is_essential_key',
    'is_image_key',
]
