import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ReportPoller:
    """
    Re-reads a report on its own interval and hands it to a consumer.

    The poll period is independent of the optimizer's sampling tick.
    """

    def __init__(self, read_report: Callable[[], Any], consumer: Callable[[Any], Awaitable[None]],
                 interval: float = 5.0):
        self.read_report = read_report
        self.consumer = consumer
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self.poll_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def poll_once(self):
        report = self.read_report()
        self.poll_count += 1
        await self.consumer(report)

    async def _poll_loop(self):
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Report poll failed: {e}")
            await asyncio.sleep(self.interval)
