from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from webhook_service.domain.webhooks import DeliveryStatus, WebhookEvent
from webhook_service.services.dispatcher import WebhookDispatcher

from tests.utils import create_endpoint


async def test_fan_out_to_matching_and_wildcard_endpoints(endpoints, deliveries, scheduler, tenant_id):
    specific = await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["plan.changed"])
    wildcard = await create_endpoint(endpoints, tenant_id, "https://b.example.com", events=["*"])
    await create_endpoint(endpoints, tenant_id, "https://c.example.com", events=["other.event"])

    dispatcher = WebhookDispatcher(endpoints, deliveries, scheduler)
    event = WebhookEvent(type="plan.changed", payload={"plan": "pro"})
    created = await dispatcher.dispatch(tenant_id, event)

    assert len(created) == 2
    assert {d.endpoint_id for d in created} == {specific.id, wildcard.id}
    for delivery in created:
        assert delivery.status is DeliveryStatus.PENDING
        assert delivery.attempt == 1
        assert delivery.event_id == event.id
        assert delivery.payload == event.envelope()
    assert scheduler.calls == [(d.id, timedelta(0)) for d in created]


async def test_no_subscribers_is_not_an_error(endpoints, deliveries, scheduler, tenant_id):
    await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["boost.expired"])
    dispatcher = WebhookDispatcher(endpoints, deliveries, scheduler)

    created = await dispatcher.dispatch(tenant_id, WebhookEvent(type="plan.changed"))

    assert created == []
    assert scheduler.calls == []


async def test_skips_inactive_and_disabled_endpoints(endpoints, deliveries, scheduler, tenant_id):
    await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["*"], active=False)
    disabled = await create_endpoint(endpoints, tenant_id, "https://b.example.com", events=["*"])
    await endpoints.open_circuit(disabled.id)
    healthy = await create_endpoint(endpoints, tenant_id, "https://c.example.com", events=["*"])

    created = await WebhookDispatcher(endpoints, deliveries, scheduler).dispatch(
        tenant_id, WebhookEvent(type="usage.limit_reached")
    )
    assert [d.endpoint_id for d in created] == [healthy.id]


async def test_other_tenants_endpoints_are_ignored(endpoints, deliveries, scheduler, tenant_id):
    await create_endpoint(endpoints, uuid4(), "https://a.example.com", events=["*"])
    created = await WebhookDispatcher(endpoints, deliveries, scheduler).dispatch(
        tenant_id, WebhookEvent(type="plan.changed")
    )
    assert created == []


async def test_same_event_twice_does_not_duplicate(endpoints, deliveries, scheduler, tenant_id):
    await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["*"])
    dispatcher = WebhookDispatcher(endpoints, deliveries, scheduler)
    event = WebhookEvent(type="plan.changed")

    first = await dispatcher.dispatch(tenant_id, event)
    second = await dispatcher.dispatch(tenant_id, event)

    assert first[0].id == second[0].id
    assert len(deliveries.rows) == 1


async def test_one_failing_endpoint_does_not_block_the_rest(endpoints, deliveries, tenant_id):
    await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["*"])
    await create_endpoint(endpoints, tenant_id, "https://b.example.com", events=["*"])

    class FlakyScheduler:
        def __init__(self):
            self.calls = 0

        async def schedule(self, delivery_id, delay):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("queue unavailable")

    scheduler = FlakyScheduler()
    created = await WebhookDispatcher(endpoints, deliveries, scheduler).dispatch(
        tenant_id, WebhookEvent(type="plan.changed")
    )

    assert scheduler.calls == 2
    assert len(created) == 1
    assert len(deliveries.rows) == 2
