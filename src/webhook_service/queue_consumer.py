"""Background consumer of the delivery queue (polls due jobs and runs the worker)."""
from __future__ import annotations

import asyncio

import structlog

from webhook_service.repositories.delivery_queue import DeliveryQueueRepository, QueuedJob
from webhook_service.scheduling import DeliveryHandler

logger = structlog.get_logger(__name__)


class QueueConsumer:
    def __init__(
        self,
        queue_repository: DeliveryQueueRepository,
        handler: DeliveryHandler,
        *,
        poll_interval_seconds: float = 0.5,
        batch_size: int = 100,
        max_concurrency: int = 10,
    ):
        self._queue = queue_repository
        self._handler = handler
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._task: asyncio.Task[None] | None = None

    async def run_once(self) -> int:
        """Claim and process one batch of due jobs; returns the batch size."""
        jobs = await self._queue.claim_due(limit=self._batch_size)
        if jobs:
            await asyncio.gather(*(self._process(job) for job in jobs))
        return len(jobs)

    async def _process(self, job: QueuedJob) -> None:
        async with self._semaphore:
            try:
                await self._handler(job.delivery_id)
            except Exception:
                # left locked; reclaim_stuck releases it for another try
                logger.exception(
                    "queued delivery attempt failed",
                    job_id=job.id,
                    delivery_id=str(job.delivery_id),
                )
                return
            await self._queue.complete(job)

    async def _loop(self) -> None:
        logger.info("delivery queue consumer started", poll_interval_seconds=self._poll_interval)
        while True:
            try:
                processed = await self.run_once()
                if processed < self._batch_size:
                    await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                logger.info("delivery queue consumer stopped")
                raise
            except Exception:
                logger.exception("delivery queue sweep failed")
                await asyncio.sleep(self._poll_interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
