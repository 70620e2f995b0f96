# tests/conftest.py
"""
Pytest configuration and fixtures for Memwatch tests
Every optimizer under test gets its own clock and scriptable heap probe.
"""

import pytest

from config.app_config import AppConfig
from memwatch.heap_probe import HeapProbe
from memwatch.models import HeapReading
from memwatch.memory_optimizer import MemoryOptimizer

MB = 1024 * 1024


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, start: float = 10_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeHeapProbe(HeapProbe):
    """Heap probe whose readings are set by the test"""

    name = "fake"

    def __init__(self, used: int = 100 * MB, limit: int = 1000 * MB):
        self.used = used
        self.limit = limit
        self.available = True
        self.fail_collection = False
        self.collections = 0

    def set_percentage(self, percentage: float):
        self.used = int(self.limit * percentage / 100)

    def sample(self):
        if not self.available:
            return None
        return HeapReading(used=self.used, total=self.used, limit=self.limit)

    def request_collection(self) -> bool:
        self.collections += 1
        if self.fail_collection:
            raise RuntimeError("collection hook unavailable")
        return True


class Widget:
    """Stand-in for a UI element that listeners attach to"""

    def __init__(self, connected: bool = True):
        self.is_connected = connected


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def heap_probe() -> FakeHeapProbe:
    return FakeHeapProbe()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(create_directories=False)


@pytest.fixture
def optimizer(config, heap_probe, clock):
    """Isolated optimizer - nothing shared with the application singleton"""
    instance = MemoryOptimizer(config=config, probe=heap_probe, clock=clock)
    yield instance
    instance.cleanup()
