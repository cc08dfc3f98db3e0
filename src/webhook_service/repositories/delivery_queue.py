"""Delayed delivery queue (storage behind :class:`webhook_service.scheduling.QueueScheduler`).

A delivery has at most one job. Rescheduling moves the existing job's
``run_at`` forward instead of adding a second one, so attempts of one
delivery are never claimed in parallel.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List
from uuid import UUID

from asyncpg import Pool  # type: ignore[import-untyped]

from webhook_service.repositories.base import BaseRepository


@dataclass(frozen=True)
class QueuedJob:
    id: int
    delivery_id: UUID
    run_at: datetime


class DeliveryQueueRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    async def enqueue(self, delivery_id: UUID, *, run_at: datetime) -> None:
        """Insert the delivery's job, or push an existing one to the later ``run_at``.

        A job that is currently claimed keeps its lock; :meth:`complete` then
        releases it instead of deleting it.
        """
        await self._execute(
            """
            INSERT INTO webhook_delivery_queue (delivery_id, run_at)
            VALUES ($1, $2)
            ON CONFLICT (delivery_id) DO UPDATE
            SET run_at = GREATEST(webhook_delivery_queue.run_at, EXCLUDED.run_at)
            """,
            delivery_id,
            run_at,
        )

    async def claim_due(self, *, limit: int = 100) -> List[QueuedJob]:
        """
        Atomically claim due jobs for processing.

        Uses row-level locking (FOR UPDATE SKIP LOCKED) so several consumers
        never run the same job. Claimed jobs get ``locked_at = now()`` and stay
        in the table until :meth:`complete` removes them.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                records = await conn.fetch(
                    """
                    WITH cte AS (
                        SELECT id
                        FROM webhook_delivery_queue
                        WHERE locked_at IS NULL
                          AND run_at <= now()
                        ORDER BY run_at ASC, id ASC
                        FOR UPDATE SKIP LOCKED
                        LIMIT $1
                    )
                    UPDATE webhook_delivery_queue q
                    SET locked_at = now()
                    FROM cte
                    WHERE q.id = cte.id
                    RETURNING q.id, q.delivery_id, q.run_at
                    """,
                    limit,
                )
        return [
            QueuedJob(id=r["id"], delivery_id=r["delivery_id"], run_at=r["run_at"]) for r in records
        ]

    async def complete(self, job: QueuedJob) -> bool:
        """Delete a processed job, or unlock it when it was rescheduled meanwhile.

        Returns True when the job was deleted.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                deleted = await conn.execute(
                    "DELETE FROM webhook_delivery_queue WHERE id = $1 AND run_at = $2",
                    job.id,
                    job.run_at,
                )
                if self._affected(deleted):
                    return True
                await conn.execute(
                    "UPDATE webhook_delivery_queue SET locked_at = NULL WHERE id = $1",
                    job.id,
                )
        return False

    async def reclaim_stuck(self, locked_before: datetime) -> int:
        """Release jobs locked before *locked_before* (consumer died mid-attempt).

        Returns the number of released jobs.
        """
        result = await self._execute(
            """
            UPDATE webhook_delivery_queue
            SET locked_at = NULL,
                run_at = now()
            WHERE locked_at IS NOT NULL
              AND locked_at < $1
            """,
            locked_before,
        )
        return self._affected(result)

    async def requeue_orphaned(self, due_before: datetime) -> int:
        """Enqueue non-terminal deliveries overdue since *due_before* that have no job.

        Covers retries whose scheduling failed and pending deliveries whose
        initial enqueue was lost. Deliveries parked because their endpoint was
        not eligible (``skipped_at``) are left alone.
        """
        result = await self._execute(
            """
            INSERT INTO webhook_delivery_queue (delivery_id, run_at)
            SELECT d.id, now()
            FROM webhook_deliveries d
            WHERE d.skipped_at IS NULL
              AND (
                (d.status = 'retrying' AND d.next_retry_at < $1)
                OR (d.status = 'pending' AND d.created_at < $1)
              )
              AND NOT EXISTS (
                  SELECT 1 FROM webhook_delivery_queue q WHERE q.delivery_id = d.id
              )
            ON CONFLICT (delivery_id) DO NOTHING
            """,
            due_before,
        )
        return self._affected(result)
