"""
Unit tests for request performance accounting.
"""
from unittest.mock import Mock

import pytest

from memwatch.cache_manager import CacheManager
from memwatch.performance_monitor import RECENT_METRICS_KEY, RequestPerformanceMonitor


@pytest.fixture
def monitor(clock):
    return RequestPerformanceMonitor(slow_request_ms=500, cache=CacheManager(clock=clock), clock=clock)


def timed(monitor, clock, endpoint, duration_ms, status=200, cache_hit=False, method="GET"):
    timer = monitor.start_timer(endpoint, method)
    clock.advance(duration_ms / 1000)
    return timer.end(status, cache_hit=cache_hit)


class TestRequestPerformanceMonitor:

    def test_timer_measures_duration(self, monitor, clock):
        metric = timed(monitor, clock, "/api/products", 120)
        assert metric.duration_ms == pytest.approx(120)
        assert metric.status_code == 200
        assert len(monitor.metrics) == 1

    def test_aggregated_stats(self, monitor, clock):
        timed(monitor, clock, "/api/products", 100, cache_hit=True)
        timed(monitor, clock, "/api/products", 300)
        timed(monitor, clock, "/api/cart", 800, status=500)

        stats = monitor.get_aggregated_stats(1)
        assert stats["total_requests"] == 3
        assert stats["average_response_time"] == 400
        assert stats["cache_hit_rate"] == pytest.approx(33.33)
        assert stats["error_rate"] == pytest.approx(33.33)
        assert stats["slow_requests"] == 1

        products = stats["endpoint_stats"]["/api/products"]
        assert products["count"] == 2
        assert products["average_response_time"] == pytest.approx(200)
        assert products["cache_hit_rate"] == 50
        assert stats["endpoint_stats"]["/api/cart"]["error_rate"] == 100

    def test_time_window(self, monitor, clock):
        timed(monitor, clock, "/api/products", 100)
        clock.advance(2 * 3600)
        timed(monitor, clock, "/api/cart", 100)

        assert monitor.get_aggregated_stats(1)["total_requests"] == 1
        assert monitor.get_aggregated_stats(24)["total_requests"] == 2

    def test_empty_window(self, monitor):
        stats = monitor.get_aggregated_stats(1)
        assert stats["total_requests"] == 0
        assert stats["endpoint_stats"] == {}

    def test_slow_endpoints_ranked(self, monitor, clock):
        timed(monitor, clock, "/fast", 10)
        timed(monitor, clock, "/slow", 900)
        timed(monitor, clock, "/medium", 200)

        ranked = monitor.get_slow_endpoints(limit=2)
        assert [item["endpoint"] for item in ranked] == ["/slow", "/medium"]

    def test_cache_performance_recommendations(self, monitor, clock):
        timed(monitor, clock, "/api/products", 10)
        performance = monitor.get_cache_performance()

        assert performance["hit_rate"] == 0
        assert performance["is_cache_available"] is True
        assert len(performance["recommendations"]) == 2

    def test_recent_metrics_persisted(self, monitor, clock):
        for _ in range(120):
            timed(monitor, clock, "/api/products", 1)

        persisted = monitor.cache.get(RECENT_METRICS_KEY)
        assert len(persisted) == 100
        assert persisted[-1]["endpoint"] == "/api/products"

    def test_persist_failure_is_logged(self, clock):
        cache = Mock()
        cache.set.side_effect = RuntimeError("cache down")
        monitor = RequestPerformanceMonitor(cache=cache, clock=clock)

        timed(monitor, clock, "/api/products", 5)
        assert len(monitor.metrics) == 1

    def test_history_bounded(self, clock):
        monitor = RequestPerformanceMonitor(max_metrics=5, clock=clock)
        for _ in range(8):
            timed(monitor, clock, "/", 1)
        assert len(monitor.metrics) == 5
