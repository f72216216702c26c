"""Bounded worker pool for acknowledge-first push handling.

Used only when ``PUSH_DISPATCH=background``: the ingress validates the
event, hands it here and answers immediately.  At most ``workers`` pipelines
run at once and at most ``queue_limit`` may be pending in total; beyond that
:meth:`PushDispatcher.submit` refuses with :class:`ServiceBusyError`.
Failures are only visible in the logs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pushpilot.errors import PilotError, ServiceBusyError

logger = logging.getLogger(__name__)


class PushDispatcher:
    def __init__(self, workers: int = 4, queue_limit: int = 32, timeout: float | None = None) -> None:
        self.workers = workers
        self.queue_limit = queue_limit
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(workers)
        self._tasks: set[asyncio.Task] = set()  # tracked for graceful shutdown

    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, label: str, job: Callable[[], Awaitable[object]]) -> asyncio.Task:
        """Schedule *job* (a zero-arg coroutine factory) under the pool limits."""
        if len(self._tasks) >= self.queue_limit:
            raise ServiceBusyError()
        task = asyncio.create_task(self._run(label, job), name=f"push:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, label: str, job: Callable[[], Awaitable[object]]) -> None:
        async with self._semaphore:
            try:
                if self.timeout:
                    await asyncio.wait_for(job(), timeout=self.timeout)
                else:
                    await job()
            except asyncio.TimeoutError:
                logger.error("Background push %s timed out after %.0fs", label, self.timeout)
            except PilotError as exc:
                logger.error("Background push %s failed (%d): %s", label, exc.status_code, exc)
            except Exception:
                logger.exception("Background push %s crashed", label)

    async def shutdown(self) -> None:
        """Cancel every tracked task and wait for them to finish."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Push dispatcher shut down")
