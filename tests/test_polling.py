"""
Tests for the report poller and the memory warning bus.
"""
import asyncio

import pytest

from memwatch.notifications import MemoryWarningBus
from memwatch.polling import ReportPoller


class TestReportPoller:

    @pytest.mark.asyncio
    async def test_polls_on_interval(self, optimizer):
        reports = []

        async def consume(report):
            reports.append(report)

        poller = ReportPoller(optimizer.get_report, consume, interval=0.01)
        poller.start()
        await asyncio.sleep(0.08)
        await poller.stop()

        assert not poller.running
        assert poller.poll_count >= 3
        assert len(reports) == poller.poll_count
        # polling reads state, it never ticks the optimizer
        assert optimizer.tick_count == 0

    @pytest.mark.asyncio
    async def test_read_failure_keeps_polling(self):
        calls = {"count": 0}

        def flaky_report():
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("report unavailable")
            return {"ok": True}

        received = []

        async def consume(report):
            received.append(report)

        poller = ReportPoller(flaky_report, consume, interval=0.01)
        poller.start()
        await asyncio.sleep(0.06)
        await poller.stop()

        assert calls["count"] >= 2
        assert received and received[0] == {"ok": True}

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        async def consume(report):
            pass

        poller = ReportPoller(dict, consume)
        await poller.stop()
        assert not poller.running


class TestMemoryWarningBus:

    def test_subscribe_and_unsubscribe(self):
        bus = MemoryWarningBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        assert bus.broadcast(None) == 1
        unsubscribe()
        unsubscribe()
        assert bus.broadcast(None) == 0
        assert received == [None]
        assert bus.broadcast_count == 2

    def test_failing_subscriber_is_skipped(self):
        bus = MemoryWarningBus()
        received = []

        def broken(sample):
            raise RuntimeError("banner crashed")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        assert bus.broadcast(None) == 1
        assert len(received) == 1
