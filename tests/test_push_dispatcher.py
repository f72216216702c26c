"""Tests for the bounded background push dispatcher."""

import asyncio
import logging

import pytest

from pushpilot.errors import GenerationError, ServiceBusyError
from pushpilot.services.push_dispatcher import PushDispatcher


@pytest.mark.asyncio
async def test_runs_submitted_job():
    done = asyncio.Event()

    async def job():
        done.set()

    dispatcher = PushDispatcher(workers=1, queue_limit=2)
    await dispatcher.submit("acme/widgets@main", job)
    assert done.is_set()
    assert dispatcher.pending() == 0


@pytest.mark.asyncio
async def test_worker_limit_bounds_concurrency():
    running = 0
    peak = 0
    release = asyncio.Event()

    async def job():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await release.wait()
        running -= 1

    dispatcher = PushDispatcher(workers=2, queue_limit=10)
    tasks = [dispatcher.submit(f"job{i}", job) for i in range(5)]
    await asyncio.sleep(0.05)
    assert peak == 2
    release.set()
    await asyncio.gather(*tasks)
    assert peak == 2


@pytest.mark.asyncio
async def test_queue_limit_rejects():
    release = asyncio.Event()

    async def job():
        await release.wait()

    dispatcher = PushDispatcher(workers=1, queue_limit=2)
    dispatcher.submit("a", job)
    dispatcher.submit("b", job)
    with pytest.raises(ServiceBusyError) as exc_info:
        dispatcher.submit("c", job)
    assert exc_info.value.status_code == 503
    await dispatcher.shutdown()


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised(caplog):
    async def job():
        raise GenerationError("model down")

    dispatcher = PushDispatcher()
    with caplog.at_level(logging.ERROR, logger="pushpilot.services.push_dispatcher"):
        await dispatcher.submit("acme/widgets@x", job)
    assert any("model down" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_timeout_is_logged(caplog):
    dispatcher = PushDispatcher(timeout=0.01)
    with caplog.at_level(logging.ERROR, logger="pushpilot.services.push_dispatcher"):
        await dispatcher.submit("slow", lambda: asyncio.sleep(5))
    assert any("timed out" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_work():
    cancelled = asyncio.Event()

    async def job():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    dispatcher = PushDispatcher()
    dispatcher.submit("a", job)
    await asyncio.sleep(0)
    await dispatcher.shutdown()
    assert cancelled.is_set()
    assert dispatcher.pending() == 0


def test_dispatcher_built_outside_event_loop():
    dispatcher = PushDispatcher(workers=1, queue_limit=2)
    ran = []

    async def job():
        ran.append(True)

    async def main():
        await dispatcher.submit("acme/widgets@main", job)
        await dispatcher.submit("acme/widgets@dev", job)

    asyncio.run(main())
    assert ran == [True, True]
    assert dispatcher.pending() == 0
