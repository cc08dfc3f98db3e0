"""Reusable periodic background worker for aiohttp services.

Usage::

    from backend_common.worker import BackgroundWorker, WorkerTask

    async def release_stuck_jobs(now: datetime) -> str | None:
        released = await repo.reclaim_stuck(now - timedelta(minutes=10))
        return f"reclaimed={released}" if released else None

    worker = BackgroundWorker(
        interval_seconds=60.0,
        tasks=[WorkerTask(name="reclaim_stuck", fn=release_stuck_jobs)],
    )

    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# A task receives the current UTC time and returns an optional summary
# (logged when non-empty).
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


_WORKER_TASK_KEY = "__background_worker_task__"


@dataclass
class BackgroundWorker:
    """In-process async worker running a list of tasks every ``interval_seconds``.

    Tasks are isolated from each other: one failing task is logged and the
    remaining tasks of the sweep still run.
    """

    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)

    async def start(self, app: web.Application) -> None:
        """Create the worker asyncio task. Register with ``app.on_startup``."""
        app[_WORKER_TASK_KEY] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """Cancel the worker task. Register with ``app.on_cleanup``."""
        task = app.get(_WORKER_TASK_KEY)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime | None = None) -> dict[str, str | None]:
        """Run every task once and return their summaries keyed by task name."""
        now = now or datetime.now(timezone.utc)
        summaries: dict[str, str | None] = {}
        for task in self.tasks:
            try:
                summary = await task.fn(now)
            except Exception:
                logger.exception("background_task failed", task=task.name)
                summaries[task.name] = None
                continue
            summaries[task.name] = summary
            if summary:
                logger.info("background_task completed", task=task.name, summary=summary)
        return summaries

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped")
                raise
            except Exception:
                logger.exception("background_worker sweep failed")
