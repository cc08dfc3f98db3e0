from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from aiohttp import web

from webhook_service.domain.webhooks import DeliveryStatus, WebhookDelivery, WebhookEndpoint

from tests.fakes import FakeDeliveryRepository, FakeEndpointRepository

SECRET = "s" * 64

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class Receiver:
    """Local HTTP endpoint answering with queued status codes (200 once drained)."""

    def __init__(self) -> None:
        self.requests: list[tuple[dict[str, str], bytes]] = []
        self.statuses: list[int] = []
        self.delay: float = 0.0
        self.url = ""
        self.received = asyncio.Event()

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append((dict(request.headers), body))
        self.received.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        status = self.statuses.pop(0) if self.statuses else 200
        return web.Response(status=status, text="ok" if status < 300 else f"error {status}")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/hook", self.handle)
        return app


async def create_endpoint(
    endpoints: FakeEndpointRepository,
    tenant_id: UUID,
    url: str,
    *,
    events: list[str] | None = None,
    **changes: Any,
) -> WebhookEndpoint:
    endpoint = await endpoints.create(
        tenant_id=tenant_id,
        url=url,
        subscribed_events=events or ["plan.changed"],
        secret=SECRET,
    )
    if changes:
        endpoint = endpoint.model_copy(update=changes)
        endpoints.rows[endpoint.id] = endpoint
    return endpoint


def put_delivery(
    deliveries: FakeDeliveryRepository,
    endpoint: WebhookEndpoint,
    *,
    attempt: int = 1,
    status: DeliveryStatus = DeliveryStatus.PENDING,
    event_type: str = "plan.changed",
    **changes: Any,
) -> WebhookDelivery:
    now = datetime.now(timezone.utc)
    event_id = uuid4()
    return deliveries.put(
        WebhookDelivery(
            id=uuid4(),
            endpoint_id=endpoint.id,
            tenant_id=endpoint.tenant_id,
            event_id=event_id,
            event_type=event_type,
            payload={
                "id": str(event_id),
                "type": event_type,
                "created_at": now.isoformat(),
                "data": {"plan": "pro"},
            },
            attempt=attempt,
            status=status,
            created_at=now,
            updated_at=now,
            **changes,
        )
    )


def tenant_headers(tenant_id: UUID) -> dict[str, str]:
    return {"X-Tenant-Id": str(tenant_id)}
