"""Endpoint registry: registration, configuration and lifecycle of webhook endpoints."""
from __future__ import annotations

from typing import Any, Iterable, List
from uuid import UUID

import structlog

from webhook_service.core.exceptions import InvalidEndpointError
from webhook_service.domain.webhooks import WebhookEndpoint
from webhook_service.repositories.endpoints import WebhookEndpointRepository
from webhook_service.services.signing import generate_secret
from webhook_service.services.url_validation import validate_target_url

logger = structlog.get_logger(__name__)


def normalize_events(events: Iterable[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping order."""
    cleaned = [e.strip() for e in events if e and e.strip()]
    return list(dict.fromkeys(cleaned))


class EndpointRegistry:
    def __init__(
        self,
        endpoint_repository: WebhookEndpointRepository,
        *,
        allow_private_targets: bool = False,
        require_https: bool = False,
    ):
        self._endpoints = endpoint_repository
        self._allow_private = allow_private_targets
        self._require_https = require_https

    def _validate_url(self, url: str) -> str:
        return validate_target_url(
            url, allow_private=self._allow_private, require_https=self._require_https
        )

    @staticmethod
    def _validate_events(events: Iterable[str]) -> list[str]:
        normalized = normalize_events(events)
        if not normalized:
            raise InvalidEndpointError("events must be a non-empty list")
        return normalized

    async def register(
        self,
        tenant_id: UUID,
        *,
        url: str,
        events: Iterable[str],
        secret: str | None = None,
        description: str | None = None,
    ) -> WebhookEndpoint:
        endpoint = await self._endpoints.create(
            tenant_id=tenant_id,
            url=self._validate_url(url),
            subscribed_events=self._validate_events(events),
            secret=secret or generate_secret(),
            description=description,
        )
        logger.info(
            "webhook endpoint registered",
            endpoint_id=str(endpoint.id),
            tenant_id=str(tenant_id),
            events=endpoint.subscribed_events,
        )
        return endpoint

    async def list(
        self, tenant_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[List[WebhookEndpoint], int]:
        return await self._endpoints.list_by_tenant(tenant_id, limit=limit, offset=offset)

    async def get(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        return await self._endpoints.get(tenant_id, endpoint_id)

    async def update(
        self,
        tenant_id: UUID,
        endpoint_id: UUID,
        *,
        url: str | None = None,
        events: Iterable[str] | None = None,
        description: str | None = None,
    ) -> WebhookEndpoint:
        changes: dict[str, Any] = {}
        if url is not None:
            changes["url"] = self._validate_url(url)
        if events is not None:
            changes["subscribed_events"] = self._validate_events(events)
        if description is not None:
            changes["description"] = description
        return await self._endpoints.update(tenant_id, endpoint_id, changes)

    async def delete(self, tenant_id: UUID, endpoint_id: UUID) -> None:
        await self._endpoints.delete(tenant_id, endpoint_id)
        logger.info("webhook endpoint deleted", endpoint_id=str(endpoint_id))

    async def rotate_secret(self, tenant_id: UUID, endpoint_id: UUID) -> str:
        """Replace the signing secret. The previous secret stops working at once."""
        secret = generate_secret()
        await self._endpoints.set_secret(tenant_id, endpoint_id, secret)
        logger.info("webhook secret rotated", endpoint_id=str(endpoint_id))
        return secret

    async def deactivate(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        endpoint = await self._endpoints.deactivate(tenant_id, endpoint_id)
        logger.info("webhook endpoint deactivated", endpoint_id=str(endpoint_id))
        return endpoint

    async def reactivate(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        endpoint = await self._endpoints.reactivate(tenant_id, endpoint_id)
        logger.info("webhook endpoint reactivated", endpoint_id=str(endpoint_id))
        return endpoint

    async def reset_circuit_breaker(self, tenant_id: UUID, endpoint_id: UUID) -> WebhookEndpoint:
        """Clear ``failure_count`` and ``disabled_at``; ``active`` is left as is."""
        endpoint = await self._endpoints.reset_circuit(tenant_id, endpoint_id)
        logger.info("webhook circuit breaker reset", endpoint_id=str(endpoint_id))
        return endpoint
