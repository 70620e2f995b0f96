"""
Dependency injection for FastAPI
"""
import threading
from functools import lru_cache

from config.app_config import get_config
from memwatch.cache_manager import CacheManager
from memwatch.memory_optimizer import MemoryOptimizer
from memwatch.performance_monitor import RequestPerformanceMonitor

# Global service instances (singleton pattern)
_services = {}
_lock = threading.RLock()  # Reentrant lock to allow nested get_* calls


@lru_cache()
def get_config_cached():
    """Cached config instance"""
    return get_config()


def get_memory_optimizer() -> MemoryOptimizer:
    """Get or create MemoryOptimizer instance"""
    with _lock:
        if 'memory_optimizer' not in _services:
            _services['memory_optimizer'] = MemoryOptimizer(config=get_config_cached())
        return _services['memory_optimizer']


def get_cache_manager() -> CacheManager:
    """Get or create CacheManager instance - mirrored into the memory optimizer"""
    with _lock:
        if 'cache_manager' not in _services:
            config = get_config_cached()
            _services['cache_manager'] = CacheManager(
                max_entries=config.cache_max_entries,
                default_ttl=config.cache_default_ttl,
                optimizer=get_memory_optimizer(),
            )
        return _services['cache_manager']


def get_performance_monitor() -> RequestPerformanceMonitor:
    """Get or create RequestPerformanceMonitor instance"""
    with _lock:
        if 'performance_monitor' not in _services:
            config = get_config_cached()
            _services['performance_monitor'] = RequestPerformanceMonitor(
                max_metrics=config.max_request_metrics,
                slow_request_ms=config.slow_request_ms,
                cache=get_cache_manager(),
            )
        return _services['performance_monitor']


def set_service(name: str, instance):
    """Install a prebuilt service instance (tests, custom probes)"""
    with _lock:
        _services[name] = instance


def cleanup_services():
    """Cleanup all services on shutdown"""
    with _lock:
        if 'cache_manager' in _services:
            _services['cache_manager'].clear()
        if 'memory_optimizer' in _services:
            _services['memory_optimizer'].cleanup()

        # Clear all services
        _services.clear()
