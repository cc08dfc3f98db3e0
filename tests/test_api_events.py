from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from webhook_service.domain.events import SUPPORTED_EVENTS

from tests.utils import create_endpoint, tenant_headers


async def test_list_event_types(service_client):
    resp = await service_client.get("/api/v1/webhook-events")
    assert resp.status == 200
    body = await resp.json()
    assert [e["name"] for e in body["events"]] == list(SUPPORTED_EVENTS)
    assert all(e["description"] for e in body["events"])


async def test_fire_event_fans_out(service_client, endpoints, scheduler, tenant_id):
    await create_endpoint(endpoints, tenant_id, "https://a.example.com", events=["plan.changed"])
    await create_endpoint(endpoints, tenant_id, "https://b.example.com", events=["*"])
    await create_endpoint(endpoints, tenant_id, "https://c.example.com", events=["other.event"])
    event_id = uuid4()

    resp = await service_client.post(
        "/api/v1/events",
        json={"type": "plan.changed", "payload": {"plan": "pro"}, "id": str(event_id)},
        headers=tenant_headers(tenant_id),
    )
    assert resp.status == 202
    body = await resp.json()
    assert body["event_id"] == str(event_id)
    assert len(body["deliveries"]) == 2
    for delivery in body["deliveries"]:
        assert delivery["status"] == "pending"
        assert delivery["attempt"] == 1
        assert delivery["payload"]["id"] == str(event_id)
        assert delivery["payload"]["data"] == {"plan": "pro"}
    assert [delay for _, delay in scheduler.calls] == [timedelta(0), timedelta(0)]


async def test_fire_event_without_subscribers(service_client, tenant_id):
    resp = await service_client.post(
        "/api/v1/events", json={"type": "boost.expired"}, headers=tenant_headers(tenant_id)
    )
    assert resp.status == 202
    body = await resp.json()
    assert body["deliveries"] == []


async def test_fire_event_validation(service_client, tenant_id):
    resp = await service_client.post(
        "/api/v1/events", json={"payload": {}}, headers=tenant_headers(tenant_id)
    )
    assert resp.status == 400

    resp = await service_client.post("/api/v1/events", json={"type": "plan.changed"})
    assert resp.status == 401
