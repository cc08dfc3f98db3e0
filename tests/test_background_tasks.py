"""Unit tests for webhook_service.workers task functions.

Repositories are mocked; no database required.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from webhook_service.settings import settings
from webhook_service.workers import worker
from webhook_service.workers.webhook_reclaim import webhook_reclaim_stuck
from webhook_service.workers.webhook_requeue import webhook_requeue_orphaned


@pytest.fixture
def mock_pool_reclaim():
    with patch(
        "webhook_service.workers.webhook_reclaim.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ):
        yield


@pytest.fixture
def mock_pool_requeue():
    with patch(
        "webhook_service.workers.webhook_requeue.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ):
        yield


async def test_reclaim_stuck_returns_summary(mock_pool_reclaim):
    now = datetime.now(timezone.utc)
    with patch("webhook_service.workers.webhook_reclaim.DeliveryQueueRepository") as MockRepo:
        instance = MockRepo.return_value
        instance.reclaim_stuck = AsyncMock(return_value=4)

        result = await webhook_reclaim_stuck(now)

    assert result == "reclaimed=4"
    cutoff = instance.reclaim_stuck.call_args[0][0]
    assert cutoff == now - timedelta(minutes=settings.webhook_stuck_minutes)


async def test_reclaim_stuck_returns_none_when_nothing_reclaimed(mock_pool_reclaim):
    with patch("webhook_service.workers.webhook_reclaim.DeliveryQueueRepository") as MockRepo:
        MockRepo.return_value.reclaim_stuck = AsyncMock(return_value=0)

        result = await webhook_reclaim_stuck(datetime.now(timezone.utc))

    assert result is None


async def test_requeue_orphaned_returns_summary(mock_pool_requeue):
    now = datetime.now(timezone.utc)
    with patch("webhook_service.workers.webhook_requeue.DeliveryQueueRepository") as MockRepo:
        instance = MockRepo.return_value
        instance.requeue_orphaned = AsyncMock(return_value=2)

        result = await webhook_requeue_orphaned(now)

    assert result == "requeued=2"
    cutoff = instance.requeue_orphaned.call_args[0][0]
    assert cutoff < now


async def test_requeue_orphaned_returns_none_when_nothing_requeued(mock_pool_requeue):
    with patch("webhook_service.workers.webhook_requeue.DeliveryQueueRepository") as MockRepo:
        MockRepo.return_value.requeue_orphaned = AsyncMock(return_value=0)

        result = await webhook_requeue_orphaned(datetime.now(timezone.utc))

    assert result is None


def test_worker_registers_maintenance_tasks():
    assert [t.name for t in worker.tasks] == ["webhook_reclaim_stuck", "webhook_requeue_orphaned"]
    assert worker.interval_seconds == settings.worker_interval_seconds
