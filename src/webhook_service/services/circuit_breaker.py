"""Per-endpoint circuit breaker.

The breaker only opens. Once ``disabled_at`` is set it stays set until an
operator resets the breaker or reactivates the endpoint.
"""
from __future__ import annotations

from uuid import UUID

import structlog

from webhook_service.domain.webhooks import WebhookEndpoint
from webhook_service.repositories.endpoints import WebhookEndpointRepository

logger = structlog.get_logger(__name__)

DEFAULT_DISABLE_THRESHOLD = 10


def should_open(failure_count: int, threshold: int = DEFAULT_DISABLE_THRESHOLD) -> bool:
    return failure_count >= threshold


class CircuitBreaker:
    def __init__(
        self,
        endpoint_repository: WebhookEndpointRepository,
        *,
        threshold: int = DEFAULT_DISABLE_THRESHOLD,
    ):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self._endpoints = endpoint_repository
        self.threshold = threshold

    async def record_failure(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        endpoint = await self._endpoints.increment_failure_count(endpoint_id)
        if endpoint is None:
            return None
        if endpoint.disabled_at is None and should_open(endpoint.failure_count, self.threshold):
            endpoint = await self._endpoints.open_circuit(endpoint_id)
            logger.warning(
                "webhook circuit opened, endpoint disabled",
                endpoint_id=str(endpoint_id),
                failure_count=endpoint.failure_count if endpoint else None,
                threshold=self.threshold,
            )
        return endpoint

    async def record_success(self, endpoint_id: UUID) -> WebhookEndpoint | None:
        """Reset consecutive failures; ``disabled_at`` is not cleared here."""
        return await self._endpoints.reset_failure_count(endpoint_id)
