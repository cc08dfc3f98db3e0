"""Delivery history: audit queries, manual retry and connectivity tests."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from uuid import UUID

import structlog

from webhook_service.core.exceptions import (
    DeliveryAlreadySucceededError,
    DeliveryInProgressError,
    EndpointNotEligibleError,
)
from webhook_service.domain.events import TEST_EVENT
from webhook_service.domain.webhooks import (
    DeliveryStats,
    DeliveryStatus,
    WebhookDelivery,
    WebhookEvent,
)
from webhook_service.repositories.deliveries import WebhookDeliveryRepository
from webhook_service.repositories.endpoints import WebhookEndpointRepository
from webhook_service.services.delivery_worker import AttemptOutcome, AttemptResult, DeliveryWorker

logger = structlog.get_logger(__name__)


class DeliveryHistory:
    def __init__(
        self,
        endpoint_repository: WebhookEndpointRepository,
        delivery_repository: WebhookDeliveryRepository,
        worker: DeliveryWorker,
    ):
        self._endpoints = endpoint_repository
        self._deliveries = delivery_repository
        self._worker = worker

    async def list_for_endpoint(
        self,
        tenant_id: UUID,
        endpoint_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[WebhookDelivery], int]:
        """Newest first."""
        endpoint = await self._endpoints.get(tenant_id, endpoint_id)
        return await self._deliveries.list_by_endpoint(
            endpoint.id, status=status, limit=limit, offset=offset
        )

    async def get(self, tenant_id: UUID, delivery_id: UUID) -> WebhookDelivery:
        return await self._deliveries.get_for_tenant(tenant_id, delivery_id)

    async def retry(self, tenant_id: UUID, delivery_id: UUID) -> AttemptResult:
        """Attempt again now, continuing from the current attempt number.

        The attempt replaces whatever run is scheduled: a queued job or timer
        that fires later finds the delivery not due (or delivered) and is dropped.
        """
        delivery = await self._deliveries.get_for_tenant(tenant_id, delivery_id)
        if delivery.status is DeliveryStatus.SUCCESS:
            raise DeliveryAlreadySucceededError()
        endpoint = await self._endpoints.get(tenant_id, delivery.endpoint_id)
        if not endpoint.is_eligible:
            raise EndpointNotEligibleError()
        logger.info(
            "webhook delivery retried manually",
            delivery_id=str(delivery.id),
            attempt=delivery.attempt,
            status=delivery.status.value,
        )
        result = await self._worker.attempt(delivery.id)
        if result.outcome is AttemptOutcome.IN_PROGRESS:
            raise DeliveryInProgressError()
        return result

    async def test_endpoint(self, tenant_id: UUID, endpoint_id: UUID) -> AttemptResult:
        endpoint = await self._endpoints.get(tenant_id, endpoint_id)
        event = WebhookEvent(
            type=TEST_EVENT,
            payload={
                "endpoint_id": str(endpoint.id),
                "message": "This is a test webhook delivery",
                "subscribed_events": endpoint.subscribed_events,
            },
            occurred_at=datetime.now(timezone.utc),
        )
        delivery = await self._deliveries.create(
            endpoint_id=endpoint.id,
            tenant_id=tenant_id,
            event_id=event.id,
            event_type=event.type,
            payload=event.envelope(),
        )
        return await self._worker.attempt(delivery.id)

    async def stats(self, tenant_id: UUID) -> DeliveryStats:
        return DeliveryStats.from_counts(await self._deliveries.count_by_status(tenant_id))
