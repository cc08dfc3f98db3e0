from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from webhook_service.scheduling import InProcessScheduler, QueueScheduler

from tests.fakes import FakeQueueRepository


async def test_queue_scheduler_persists_run_at():
    queue = FakeQueueRepository()
    scheduler = QueueScheduler(queue)
    delivery_id = uuid4()

    before = datetime.now(timezone.utc)
    await scheduler.schedule(delivery_id, timedelta(minutes=5))
    after = datetime.now(timezone.utc)

    [job] = queue.jobs.values()
    assert job["delivery_id"] == delivery_id
    assert before + timedelta(minutes=5) <= job["run_at"] <= after + timedelta(minutes=5)
    assert job["locked_at"] is None


async def test_in_process_scheduler_runs_handler():
    seen = []
    done = asyncio.Event()

    async def handler(delivery_id):
        seen.append(delivery_id)
        done.set()

    scheduler = InProcessScheduler(handler)
    delivery_id = uuid4()
    await scheduler.schedule(delivery_id, timedelta(0))
    await asyncio.wait_for(done.wait(), timeout=1.0)

    assert seen == [delivery_id]


async def test_in_process_scheduler_close_cancels_pending_timers():
    calls = []

    async def handler(delivery_id):
        calls.append(delivery_id)

    scheduler = InProcessScheduler(handler)
    await scheduler.schedule(uuid4(), timedelta(hours=1))
    assert scheduler.pending == 1

    await scheduler.close()

    assert scheduler.pending == 0
    assert calls == []


async def test_in_process_scheduler_requires_handler():
    with pytest.raises(RuntimeError):
        await InProcessScheduler().schedule(uuid4(), timedelta(0))


async def test_in_process_scheduler_survives_handler_errors():
    attempts = 0
    second_done = asyncio.Event()

    async def handler(delivery_id):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("boom")
        second_done.set()

    scheduler = InProcessScheduler()
    scheduler.bind(handler)
    await scheduler.schedule(uuid4(), timedelta(0))
    await scheduler.schedule(uuid4(), timedelta(0))
    await asyncio.wait_for(second_done.wait(), timeout=1.0)

    assert attempts == 2


async def test_rescheduling_keeps_one_job_at_the_later_time():
    queue = FakeQueueRepository()
    scheduler = QueueScheduler(queue)
    delivery_id = uuid4()

    await scheduler.schedule(delivery_id, timedelta(minutes=5))
    await scheduler.schedule(delivery_id, timedelta(0))
    await scheduler.schedule(delivery_id, timedelta(minutes=30))

    [job] = queue.for_delivery(delivery_id)
    assert job["run_at"] > datetime.now(timezone.utc) + timedelta(minutes=29)
