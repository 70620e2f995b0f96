"""
Unit tests for the metrics sampler and heap probe adapters.
"""
from unittest.mock import patch

import psutil
import pytest

from memwatch.heap_probe import (
    PsutilHeapProbe,
    UnavailableHeapProbe,
    build_heap_probe,
    fallback_collection_burst,
)
from memwatch.models import Trend
from memwatch.sampler import MetricsSampler
from tests.conftest import MB, FakeClock, FakeHeapProbe


def feed(sampler, probe, values):
    for used in values:
        probe.used = used
        sampler.collect()


class TestTrendDetection:

    @pytest.mark.parametrize("count", [0, 1, 4])
    def test_stable_with_fewer_than_five_samples(self, count):
        """Wild swings do not matter before the window is full"""
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe, clock=FakeClock())
        feed(sampler, probe, [MB * (1 + i * 50) for i in range(count)])

        assert sampler.calculate_trend(900 * MB) == Trend.STABLE
        assert all(s.trend == Trend.STABLE for s in sampler.snapshot())

    def test_rising_samples_are_increasing(self):
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe, clock=FakeClock())
        feed(sampler, probe, [100 * MB, 110 * MB, 120 * MB, 130 * MB, 140 * MB])

        assert sampler.calculate_trend(140 * MB) == Trend.INCREASING

        probe.used = 150 * MB
        assert sampler.collect().trend == Trend.INCREASING

    def test_falling_samples_are_decreasing(self):
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe, clock=FakeClock())
        feed(sampler, probe, [140 * MB, 130 * MB, 120 * MB, 110 * MB, 100 * MB])

        assert sampler.calculate_trend(100 * MB) == Trend.DECREASING

    def test_small_changes_are_stable(self):
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe, clock=FakeClock())
        feed(sampler, probe, [100 * MB, 101 * MB, 102 * MB, 103 * MB, 104 * MB])

        # 4MB delta is under 5% of 104MB
        assert sampler.calculate_trend(104 * MB) == Trend.STABLE


class TestSampler:

    def test_history_is_bounded(self):
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe, history_size=10, clock=FakeClock())
        feed(sampler, probe, [i * MB for i in range(1, 26)])

        history = sampler.snapshot()
        assert len(history) == 10
        assert history[-1].used == 25 * MB
        assert sampler.current() is history[-1]

    def test_unavailable_probe_is_noop(self):
        sampler = MetricsSampler(UnavailableHeapProbe())
        assert sampler.collect() is None
        assert sampler.collect() is None
        assert sampler.current() is None
        assert sampler.snapshot() == []

    def test_probe_exception_is_tolerated(self):
        probe = FakeHeapProbe()
        sampler = MetricsSampler(probe)
        with patch.object(probe, "sample", side_effect=RuntimeError("boom")):
            assert sampler.collect() is None
        assert sampler.collect() is not None

    def test_percentage(self):
        probe = FakeHeapProbe(used=250 * MB, limit=1000 * MB)
        sample = MetricsSampler(probe).collect()
        assert sample.percentage == pytest.approx(25.0)
        assert sample.to_dict()["percentage"] == 25.0


class TestHeapProbes:

    def test_psutil_probe_reads_process(self):
        reading = PsutilHeapProbe().sample()
        assert reading is not None
        assert reading.used > 0
        assert reading.limit > 0

    def test_psutil_probe_uses_configured_limit(self):
        reading = PsutilHeapProbe(limit_bytes=512 * MB).sample()
        assert reading.limit == 512 * MB

    def test_psutil_failure_reads_unavailable(self):
        probe = PsutilHeapProbe()
        with patch("memwatch.heap_probe.psutil.virtual_memory", side_effect=psutil.AccessDenied()):
            assert probe.sample() is None

    def test_build_from_config(self, config):
        config.heap_probe = "none"
        assert isinstance(build_heap_probe(config), UnavailableHeapProbe)

        config.heap_probe = "psutil"
        config.heap_limit_mb = 256
        probe = build_heap_probe(config)
        assert isinstance(probe, PsutilHeapProbe)
        assert probe.limit_bytes == 256 * MB

    def test_unavailable_probe_cannot_collect(self):
        assert UnavailableHeapProbe().request_collection() is False

    def test_fallback_burst(self):
        assert fallback_collection_burst(rounds=3, size=10) == 3
