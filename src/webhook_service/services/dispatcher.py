"""Event fan-out: one delivery per eligible subscribed endpoint."""
from __future__ import annotations

from datetime import timedelta
from typing import List
from uuid import UUID

import structlog

from webhook_service.domain.webhooks import WebhookDelivery, WebhookEvent
from webhook_service.repositories.deliveries import WebhookDeliveryRepository
from webhook_service.repositories.endpoints import WebhookEndpointRepository
from webhook_service.scheduling import DeliveryScheduler

logger = structlog.get_logger(__name__)

IMMEDIATE = timedelta(0)


class WebhookDispatcher:
    def __init__(
        self,
        endpoint_repository: WebhookEndpointRepository,
        delivery_repository: WebhookDeliveryRepository,
        scheduler: DeliveryScheduler,
    ):
        self._endpoints = endpoint_repository
        self._deliveries = delivery_repository
        self._scheduler = scheduler

    async def dispatch(self, tenant_id: UUID, event: WebhookEvent) -> List[WebhookDelivery]:
        """Create and schedule deliveries for *event*; no subscribers is not an error.

        Each endpoint is handled independently: a failure for one is logged
        and the remaining endpoints still get their delivery.
        """
        endpoints = await self._endpoints.list_eligible_for_event(tenant_id, event.type)
        envelope = event.envelope()
        deliveries: List[WebhookDelivery] = []
        for endpoint in endpoints:
            try:
                delivery = await self._deliveries.create(
                    endpoint_id=endpoint.id,
                    tenant_id=tenant_id,
                    event_id=event.id,
                    event_type=event.type,
                    payload=envelope,
                )
                await self._scheduler.schedule(delivery.id, IMMEDIATE)
            except Exception:
                logger.exception(
                    "webhook fan-out failed for endpoint",
                    endpoint_id=str(endpoint.id),
                    event_id=str(event.id),
                    event_type=event.type,
                )
                continue
            deliveries.append(delivery)

        logger.info(
            "webhook event dispatched",
            tenant_id=str(tenant_id),
            event_id=str(event.id),
            event_type=event.type,
            deliveries=len(deliveries),
        )
        return deliveries
