"""Delivery worker: executes one attempt of a webhook delivery.

State machine::

    pending  --2xx-->            success   (terminal)
    pending  --error, n < 6-->   retrying  (attempt n+1 scheduled)
    pending  --error, n == 6-->  failed    (terminal)
    retrying --...-->            same transitions as pending

The worker is the only place that knows the backoff table. After recording an
attempt it hands the delivery id and the delay to the scheduler, which calls
:meth:`DeliveryWorker.attempt_if_due` when the delay has elapsed.

Attempts of one delivery never overlap within a process, and a scheduled run
for a delivery that is not due (a stale timer or job left behind by a manual
retry) is dropped. A failure recorded after a concurrent success never moves
the delivery back out of ``success``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable
from uuid import UUID

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from webhook_service.domain.webhooks import DeliveryStatus, WebhookDelivery, WebhookEndpoint
from webhook_service.otel import get_tracer
from webhook_service.repositories.deliveries import WebhookDeliveryRepository
from webhook_service.repositories.endpoints import WebhookEndpointRepository
from webhook_service.scheduling import DeliveryScheduler
from webhook_service.services.circuit_breaker import CircuitBreaker
from webhook_service.services.signing import build_headers, encode_body

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

MAX_ATTEMPTS = 6

# Delay before attempt n+1, indexed by n-1.
RETRY_DELAYS: tuple[timedelta, ...] = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=30),
    timedelta(hours=2),
    timedelta(hours=24),
)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RESPONSE_BODY_LIMIT = 2000

TRANSPORT_ERROR_CODE = 0

# timers and queue polling may fire slightly before next_retry_at
DUE_TOLERANCE = timedelta(seconds=1)


def retry_delay(attempt: int) -> timedelta | None:
    """Delay before the next attempt once *attempt* has failed, None when terminal."""
    if attempt >= MAX_ATTEMPTS:
        return None
    return RETRY_DELAYS[max(attempt, 1) - 1]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptOutcome(str, Enum):
    DELIVERED = "delivered"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    ALREADY_DELIVERED = "already_delivered"
    NOT_DUE = "not_due"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class AttemptResult:
    outcome: AttemptOutcome
    delivery: WebhookDelivery | None = None
    retry_in: timedelta | None = None


class DeliveryWorker:
    def __init__(
        self,
        endpoint_repository: WebhookEndpointRepository,
        delivery_repository: WebhookDeliveryRepository,
        circuit_breaker: CircuitBreaker,
        scheduler: DeliveryScheduler,
        session: ClientSession,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        response_body_limit: int = DEFAULT_RESPONSE_BODY_LIMIT,
        user_agent: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._endpoints = endpoint_repository
        self._deliveries = delivery_repository
        self._breaker = circuit_breaker
        self._scheduler = scheduler
        self._session = session
        self._timeout = ClientTimeout(total=timeout_seconds)
        self._body_limit = response_body_limit
        self._user_agent = user_agent
        self._clock = clock
        self._in_flight: set[UUID] = set()

    def is_due(self, delivery: WebhookDelivery) -> bool:
        """Whether a scheduled run may send *delivery* now."""
        if delivery.skipped_at is not None:
            return False
        if delivery.status is DeliveryStatus.PENDING:
            return True
        if delivery.status is DeliveryStatus.RETRYING and delivery.next_retry_at is not None:
            return delivery.next_retry_at <= self._clock() + DUE_TOLERANCE
        return False

    async def attempt(self, delivery_id: UUID) -> AttemptResult:
        """Run one attempt for *delivery_id* now. Never raises for delivery failures.

        Used for manual retries and test events; scheduled runs go through
        :meth:`attempt_if_due`.
        """
        return await self._run(delivery_id, due_only=False)

    async def attempt_if_due(self, delivery_id: UUID) -> AttemptResult:
        """Scheduler entry point: drops runs for deliveries that are not due."""
        return await self._run(delivery_id, due_only=True)

    async def _run(self, delivery_id: UUID, *, due_only: bool) -> AttemptResult:
        log = logger.bind(delivery_id=str(delivery_id))
        if delivery_id in self._in_flight:
            log.info("webhook delivery attempt already in progress")
            return AttemptResult(AttemptOutcome.IN_PROGRESS)
        self._in_flight.add(delivery_id)
        try:
            return await self._attempt(delivery_id, due_only=due_only, log=log)
        finally:
            self._in_flight.discard(delivery_id)

    async def _attempt(
        self, delivery_id: UUID, *, due_only: bool, log: structlog.stdlib.BoundLogger
    ) -> AttemptResult:
        delivery = await self._deliveries.get(delivery_id)
        if delivery is None:
            log.warning("webhook delivery not found, attempt dropped")
            return AttemptResult(AttemptOutcome.NOT_FOUND)
        if delivery.status is DeliveryStatus.SUCCESS:
            return AttemptResult(AttemptOutcome.ALREADY_DELIVERED, delivery)
        if due_only and not self.is_due(delivery):
            log.info(
                "webhook delivery not due, scheduled run dropped",
                status=delivery.status.value,
                attempt=delivery.attempt,
            )
            return AttemptResult(AttemptOutcome.NOT_DUE, delivery)

        endpoint = await self._endpoints.get_by_id(delivery.endpoint_id)
        if endpoint is None or not endpoint.is_eligible:
            log.info(
                "webhook endpoint not eligible, attempt skipped",
                endpoint_id=str(delivery.endpoint_id),
                attempt=delivery.attempt,
            )
            parked = await self._deliveries.mark_skipped(delivery.id)
            return AttemptResult(AttemptOutcome.SKIPPED, parked or delivery)

        with tracer.start_as_current_span(
            "webhook.delivery_attempt",
            attributes={
                "webhook.delivery_id": str(delivery.id),
                "webhook.endpoint_id": str(endpoint.id),
                "webhook.event_type": delivery.event_type,
                "webhook.attempt": delivery.attempt,
            },
        ) as span:
            try:
                status_code, body = await self._send(endpoint, delivery)
            except Exception as exc:
                log.exception("webhook delivery raised unexpectedly", attempt=delivery.attempt)
                status_code, body = TRANSPORT_ERROR_CODE, f"{type(exc).__name__}: {exc}"
            span.set_attribute("http.status_code", status_code)

            if 200 <= status_code < 300:
                return await self._record_success(delivery, status_code, body)
            return await self._record_failure(delivery, status_code, body)

    async def _send(self, endpoint: WebhookEndpoint, delivery: WebhookDelivery) -> tuple[int, str]:
        body = encode_body(delivery.payload)
        headers = build_headers(
            secret=endpoint.secret,
            body=body,
            event_id=delivery.event_id,
            event_type=delivery.event_type,
            delivery_id=delivery.id,
            attempt=delivery.attempt,
            timestamp=int(self._clock().timestamp()),
            user_agent=self._user_agent,
        )
        try:
            async with self._session.post(
                endpoint.url, data=body, headers=headers, timeout=self._timeout
            ) as resp:
                text = await resp.text(errors="replace")
                return resp.status, text[: self._body_limit]
        except asyncio.TimeoutError:
            return TRANSPORT_ERROR_CODE, f"Request timed out after {self._timeout.total}s"
        except ClientError as exc:
            return TRANSPORT_ERROR_CODE, (str(exc) or type(exc).__name__)[: self._body_limit]

    async def _record_success(
        self, delivery: WebhookDelivery, status_code: int, body: str
    ) -> AttemptResult:
        updated = await self._deliveries.mark_success(
            delivery.id, response_code=status_code, response_body=body
        )
        await self._breaker.record_success(delivery.endpoint_id)
        logger.info(
            "webhook delivered",
            delivery_id=str(delivery.id),
            endpoint_id=str(delivery.endpoint_id),
            attempt=delivery.attempt,
            status_code=status_code,
        )
        return AttemptResult(AttemptOutcome.DELIVERED, updated)

    async def _record_failure(
        self, delivery: WebhookDelivery, status_code: int, body: str
    ) -> AttemptResult:
        delay = retry_delay(delivery.attempt)
        if delay is None:
            updated = await self._deliveries.mark_failed(
                delivery.id, response_code=status_code, response_body=body
            )
        else:
            updated = await self._deliveries.mark_retrying(
                delivery.id,
                response_code=status_code,
                response_body=body,
                attempt=delivery.attempt + 1,
                next_retry_at=self._clock() + delay,
            )
        if updated.status is DeliveryStatus.SUCCESS:
            logger.info(
                "webhook delivery already succeeded, failed attempt discarded",
                delivery_id=str(delivery.id),
                attempt=delivery.attempt,
                status_code=status_code,
            )
            return AttemptResult(AttemptOutcome.ALREADY_DELIVERED, updated)

        await self._breaker.record_failure(delivery.endpoint_id)
        if delay is None:
            logger.warning(
                "webhook delivery failed permanently",
                delivery_id=str(delivery.id),
                endpoint_id=str(delivery.endpoint_id),
                attempt=delivery.attempt,
                status_code=status_code,
            )
            return AttemptResult(AttemptOutcome.FAILED, updated)

        try:
            await self._scheduler.schedule(delivery.id, delay)
        except Exception:
            # the orphan requeue task picks the delivery up from next_retry_at
            logger.exception("webhook retry scheduling failed", delivery_id=str(delivery.id))
        logger.info(
            "webhook delivery failed, retry scheduled",
            delivery_id=str(delivery.id),
            endpoint_id=str(delivery.endpoint_id),
            attempt=delivery.attempt,
            status_code=status_code,
            retry_in_seconds=int(delay.total_seconds()),
        )
        return AttemptResult(AttemptOutcome.RETRY_SCHEDULED, updated, retry_in=delay)
