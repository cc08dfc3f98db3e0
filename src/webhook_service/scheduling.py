"""Delayed execution of delivery attempts.

The delivery worker hands a delivery id and a delay to a
:class:`DeliveryScheduler`; the scheduler later calls the bound handler
(normally :meth:`DeliveryWorker.attempt`) with that id.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Protocol
from uuid import UUID

import structlog

from webhook_service.repositories.delivery_queue import DeliveryQueueRepository

logger = structlog.get_logger(__name__)

DeliveryHandler = Callable[[UUID], Awaitable[Any]]


class DeliveryScheduler(Protocol):
    async def schedule(self, delivery_id: UUID, delay: timedelta) -> None: ...


class QueueScheduler:
    """Persists jobs in ``webhook_delivery_queue``; :class:`QueueConsumer` runs them."""

    def __init__(self, queue_repository: DeliveryQueueRepository):
        self._queue = queue_repository

    async def schedule(self, delivery_id: UUID, delay: timedelta) -> None:
        run_at = datetime.now(timezone.utc) + delay
        await self._queue.enqueue(delivery_id, run_at=run_at)
        logger.debug("delivery scheduled", delivery_id=str(delivery_id), run_at=run_at.isoformat())


class InProcessScheduler:
    """asyncio timers; scheduled attempts are lost when the process exits."""

    def __init__(self, handler: DeliveryHandler | None = None):
        self._handler = handler
        self._tasks: set[asyncio.Task[None]] = set()

    def bind(self, handler: DeliveryHandler) -> None:
        self._handler = handler

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def schedule(self, delivery_id: UUID, delay: timedelta) -> None:
        if self._handler is None:
            raise RuntimeError("InProcessScheduler has no handler bound")
        task = asyncio.create_task(self._run_later(self._handler, delivery_id, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_later(self, handler: DeliveryHandler, delivery_id: UUID, delay: timedelta) -> None:
        seconds = max(delay.total_seconds(), 0.0)
        if seconds:
            await asyncio.sleep(seconds)
        try:
            await handler(delivery_id)
        except Exception:
            logger.exception("scheduled delivery attempt failed", delivery_id=str(delivery_id))

    async def close(self) -> None:
        """Cancel every pending timer."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
