"""
Memwatch - in-process memory monitoring and adaptive optimization

Core modules:
- registries: tracking tables for timers, observers, listeners, cache and components
- sampler: periodic heap samples with trend detection
- leak_detector: leak heuristics over the registries
- policy: threshold-triggered cleanup actions
- reporting: health status, risk score and recommendations
- memory_optimizer: the service that ties the above into one monitoring loop
- cache_manager / performance_monitor: HTTP cache and request timing collaborators
"""

from . import exceptions
from . import memory_optimizer
from . import models

__all__ = [
    'exceptions',
    'memory_optimizer',
    'models',
]
