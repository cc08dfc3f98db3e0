"""Worker: release delivery queue jobs left locked by a dead consumer."""
from __future__ import annotations

from datetime import datetime, timedelta

from backend_common.db.pool import get_pool

from webhook_service.repositories.delivery_queue import DeliveryQueueRepository
from webhook_service.settings import settings


async def webhook_reclaim_stuck(now: datetime) -> str | None:
    """Unlock queue jobs claimed more than ``webhook_stuck_minutes`` ago."""
    pool = await get_pool()
    cutoff = now - timedelta(minutes=settings.webhook_stuck_minutes)
    reclaimed = await DeliveryQueueRepository(pool).reclaim_stuck(cutoff)
    return f"reclaimed={reclaimed}" if reclaimed else None
