# Performance Monitor for Memwatch
# Request-level latency, status and cache-hit accounting

"""
RequestPerformanceMonitor

Records one metric per HTTP request and aggregates them for the admin
performance API:
- Per-endpoint latency, error rate and cache hit rate
- Slow request detection
- Cache performance recommendations
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

RECENT_METRICS_KEY = "performance:recent_metrics"

@dataclass
class RequestMetric:
    """Individual request measurement"""
    endpoint: str
    method: str
    duration_ms: float
    status_code: int
    cache_hit: bool
    timestamp: float
    user_agent: Optional[str] = None
    ip: Optional[str] = None

class RequestTimer:
    """Returned by start_timer; call end() once the response status is known"""

    def __init__(self, monitor: "RequestPerformanceMonitor", endpoint: str, method: str,
                 user_agent: Optional[str] = None, ip: Optional[str] = None):
        self.monitor = monitor
        self.endpoint = endpoint
        self.method = method
        self.user_agent = user_agent
        self.ip = ip
        self.start_time = monitor._clock()

    def end(self, status_code: int, cache_hit: bool = False) -> RequestMetric:
        duration_ms = (self.monitor._clock() - self.start_time) * 1000
        metric = RequestMetric(
            endpoint=self.endpoint,
            method=self.method,
            duration_ms=duration_ms,
            status_code=status_code,
            cache_hit=cache_hit,
            timestamp=self.monitor._clock(),
            user_agent=self.user_agent,
            ip=self.ip,
        )
        self.monitor.record_metric(metric)
        return metric

class RequestPerformanceMonitor:
    """
    Monitor request latency and cache effectiveness

    Features:
    - Bounded in-memory metric history
    - Time-windowed aggregation per endpoint
    - Slow endpoint ranking
    - Recent metrics persisted into the HTTP cache
    """

    def __init__(self, max_metrics: int = 10000, slow_request_ms: float = 1000.0,
                 cache=None, clock: Callable[[], float] = time.time):
        """
        Initialize performance monitor

        Args:
            max_metrics: Maximum number of request metrics to keep
            slow_request_ms: Requests slower than this are logged as warnings
            cache: Optional CacheManager that receives the recent metrics
        """
        self.metrics: deque = deque(maxlen=max_metrics)
        self.slow_request_ms = slow_request_ms
        self.cache = cache
        self._clock = clock

        logger.info("RequestPerformanceMonitor initialized")

    def start_timer(self, endpoint: str, method: str, user_agent: Optional[str] = None,
                    ip: Optional[str] = None) -> RequestTimer:
        return RequestTimer(self, endpoint, method, user_agent=user_agent, ip=ip)

    def record_metric(self, metric: RequestMetric):
        self.metrics.append(metric)

        if metric.duration_ms > self.slow_request_ms:
            logger.warning(f"Slow request detected: {metric.endpoint} took {metric.duration_ms:.0f}ms")

        self._persist_metrics()

    def _persist_metrics(self):
        if self.cache is None:
            return
        try:
            recent = [asdict(m) for m in list(self.metrics)[-100:]]
            self.cache.set(RECENT_METRICS_KEY, recent, ttl=3600)
        except Exception as e:
            logger.error(f"Failed to persist performance metrics: {e}")

    def get_metrics(self, hours: float = 1) -> List[RequestMetric]:
        since = self._clock() - hours * 3600
        return [m for m in list(self.metrics) if m.timestamp >= since]

    def get_aggregated_stats(self, hours: float = 1) -> Dict[str, Any]:
        metrics = self.get_metrics(hours)

        if not metrics:
            return empty_aggregated_stats()

        total_requests = len(metrics)
        average_response_time = sum(m.duration_ms for m in metrics) / total_requests
        cache_hits = sum(1 for m in metrics if m.cache_hit)
        errors = sum(1 for m in metrics if m.status_code >= 400)
        slow_requests = sum(1 for m in metrics if m.duration_ms > self.slow_request_ms)

        endpoint_stats: Dict[str, Dict[str, Any]] = {}
        for metric in metrics:
            stats = endpoint_stats.setdefault(metric.endpoint, {
                "count": 0,
                "total_duration": 0.0,
                "errors": 0,
                "cache_hits": 0,
            })
            stats["count"] += 1
            stats["total_duration"] += metric.duration_ms
            if metric.status_code >= 400:
                stats["errors"] += 1
            if metric.cache_hit:
                stats["cache_hits"] += 1

        for stats in endpoint_stats.values():
            stats["average_response_time"] = stats["total_duration"] / stats["count"]
            stats["error_rate"] = stats["errors"] / stats["count"] * 100
            stats["cache_hit_rate"] = stats["cache_hits"] / stats["count"] * 100

        return {
            "total_requests": total_requests,
            "average_response_time": round(average_response_time),
            "cache_hit_rate": round(cache_hits / total_requests * 100, 2),
            "error_rate": round(errors / total_requests * 100, 2),
            "slow_requests": slow_requests,
            "endpoint_stats": endpoint_stats,
        }

    def get_slow_endpoints(self, limit: int = 10) -> List[Dict[str, Any]]:
        stats = self.get_aggregated_stats(24)
        ranked = sorted(
            (
                {
                    "endpoint": endpoint,
                    "average_response_time": s["average_response_time"],
                    "request_count": s["count"],
                    "error_rate": s["error_rate"],
                }
                for endpoint, s in stats["endpoint_stats"].items()
            ),
            key=lambda item: item["average_response_time"],
            reverse=True,
        )
        return ranked[:limit]

    def get_cache_performance(self) -> Dict[str, Any]:
        stats = self.get_aggregated_stats(1)
        cache_available = self.cache.is_available() if self.cache is not None else False
        return {
            "hit_rate": stats["cache_hit_rate"],
            "is_cache_available": cache_available,
            "total_requests": stats["total_requests"],
            "recommendations": self._get_cache_recommendations(stats["cache_hit_rate"]),
        }

    def _get_cache_recommendations(self, hit_rate: float) -> List[str]:
        recommendations = []
        if hit_rate < 50:
            recommendations.append("Very low cache hit rate - consider increasing TTL values")
            recommendations.append("Review caching strategy for frequently accessed endpoints")
        elif hit_rate < 70:
            recommendations.append("Cache hit rate could be improved - analyze cache patterns")
            recommendations.append("Consider pre-warming cache for popular content")
        elif hit_rate < 85:
            recommendations.append("Good cache performance - consider fine-tuning TTL values")
        return recommendations

    def clear(self):
        self.metrics.clear()

def empty_aggregated_stats() -> Dict[str, Any]:
    return {
        "total_requests": 0,
        "average_response_time": 0,
        "cache_hit_rate": 0,
        "error_rate": 0,
        "slow_requests": 0,
        "endpoint_stats": {},
    }

class PerformanceMiddleware(BaseHTTPMiddleware):
    """Times every HTTP request into a RequestPerformanceMonitor"""

    def __init__(self, app, monitor_provider: Callable[[], RequestPerformanceMonitor]):
        super().__init__(app)
        self.monitor_provider = monitor_provider

    async def dispatch(self, request: Request, call_next):
        monitor = self.monitor_provider()
        timer = monitor.start_timer(
            endpoint=request.url.path,
            method=request.method,
            user_agent=request.headers.get("user-agent"),
            ip=request.headers.get("x-forwarded-for") or (request.client.host if request.client else "unknown"),
        )
        try:
            response = await call_next(request)
        except Exception:
            timer.end(500)
            raise
        cache_hit = response.headers.get("x-cache-status", "").upper() == "HIT"
        timer.end(response.status_code, cache_hit=cache_hit)
        return response
