"""Background maintenance for the persisted delivery queue.

Each worker is a standalone module exporting a single async task function
compatible with :class:`backend_common.worker.WorkerTask`. Only the
``database`` scheduler backend has a queue to maintain.
"""
from __future__ import annotations

from backend_common.worker import BackgroundWorker, WorkerTask

from webhook_service.settings import settings
from webhook_service.workers.webhook_reclaim import webhook_reclaim_stuck
from webhook_service.workers.webhook_requeue import webhook_requeue_orphaned

worker = BackgroundWorker(
    interval_seconds=settings.worker_interval_seconds,
    tasks=[
        WorkerTask(name="webhook_reclaim_stuck", fn=webhook_reclaim_stuck),
        WorkerTask(name="webhook_requeue_orphaned", fn=webhook_requeue_orphaned),
    ],
)

start_background_worker = worker.start
stop_background_worker = worker.stop

__all__ = [
    "worker",
    "start_background_worker",
    "stop_background_worker",
]
