"""Worker: enqueue deliveries that lost their queue job."""
from __future__ import annotations

from datetime import datetime, timedelta

from backend_common.db.pool import get_pool

from webhook_service.repositories.delivery_queue import DeliveryQueueRepository
from webhook_service.settings import settings


async def webhook_requeue_orphaned(now: datetime) -> str | None:
    pool = await get_pool()
    cutoff = now - timedelta(minutes=settings.webhook_stuck_minutes)
    requeued = await DeliveryQueueRepository(pool).requeue_orphaned(cutoff)
    return f"requeued={requeued}" if requeued else None
