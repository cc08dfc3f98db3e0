"""Wiring of the delivery engine (repositories, scheduler, worker, services)."""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from aiohttp import ClientSession, web

from backend_common.db.pool import get_pool

from webhook_service.queue_consumer import QueueConsumer
from webhook_service.repositories import (
    DeliveryQueueRepository,
    WebhookDeliveryRepository,
    WebhookEndpointRepository,
)
from webhook_service.scheduling import DeliveryScheduler, InProcessScheduler, QueueScheduler
from webhook_service.services import (
    CircuitBreaker,
    DeliveryHistory,
    DeliveryWorker,
    EndpointRegistry,
    WebhookDispatcher,
)
from webhook_service.settings import Settings, settings as default_settings

logger = structlog.get_logger(__name__)

RUNTIME_KEY = "webhook_runtime"
_CONSUMER_KEY = "webhook_queue_consumer"
_SESSION_KEY = "webhook_http_session"


@dataclass
class WebhookRuntime:
    registry: EndpointRegistry
    dispatcher: WebhookDispatcher
    worker: DeliveryWorker
    history: DeliveryHistory
    scheduler: DeliveryScheduler
    breaker: CircuitBreaker = field(repr=False)


def build_runtime(
    *,
    endpoints: WebhookEndpointRepository,
    deliveries: WebhookDeliveryRepository,
    scheduler: DeliveryScheduler,
    session: ClientSession,
    settings: Settings = default_settings,
) -> WebhookRuntime:
    breaker = CircuitBreaker(endpoints, threshold=settings.webhook_disable_threshold)
    worker = DeliveryWorker(
        endpoints,
        deliveries,
        breaker,
        scheduler,
        session,
        timeout_seconds=settings.webhook_request_timeout_seconds,
        response_body_limit=settings.webhook_response_body_limit,
        user_agent=settings.webhook_user_agent,
    )
    if isinstance(scheduler, InProcessScheduler):
        scheduler.bind(worker.attempt_if_due)
    return WebhookRuntime(
        registry=EndpointRegistry(
            endpoints,
            allow_private_targets=settings.webhook_allow_private_targets,
            require_https=settings.webhook_require_https,
        ),
        dispatcher=WebhookDispatcher(endpoints, deliveries, scheduler),
        worker=worker,
        history=DeliveryHistory(endpoints, deliveries, worker),
        scheduler=scheduler,
        breaker=breaker,
    )


async def start_runtime(app: web.Application) -> None:
    """``on_startup`` hook: build the engine on top of the asyncpg pool."""
    pool = await get_pool()
    session = ClientSession()
    app[_SESSION_KEY] = session

    scheduler: DeliveryScheduler
    queue = DeliveryQueueRepository(pool)
    if default_settings.webhook_scheduler_backend == "memory":
        scheduler = InProcessScheduler()
    else:
        scheduler = QueueScheduler(queue)

    runtime = build_runtime(
        endpoints=WebhookEndpointRepository(pool),
        deliveries=WebhookDeliveryRepository(pool),
        scheduler=scheduler,
        session=session,
    )
    app[RUNTIME_KEY] = runtime

    if isinstance(scheduler, QueueScheduler):
        consumer = QueueConsumer(
            queue,
            runtime.worker.attempt_if_due,
            poll_interval_seconds=default_settings.webhook_queue_poll_interval_seconds,
            batch_size=default_settings.webhook_queue_batch_size,
            max_concurrency=default_settings.webhook_dispatch_max_concurrency,
        )
        consumer.start()
        app[_CONSUMER_KEY] = consumer
    logger.info("webhook runtime started", scheduler=default_settings.webhook_scheduler_backend)


async def stop_runtime(app: web.Application) -> None:
    consumer = app.get(_CONSUMER_KEY)
    if consumer is not None:
        await consumer.stop()
    runtime = app.get(RUNTIME_KEY)
    if runtime is not None and isinstance(runtime.scheduler, InProcessScheduler):
        await runtime.scheduler.close()
    session = app.get(_SESSION_KEY)
    if session is not None:
        await session.close()
