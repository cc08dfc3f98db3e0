from __future__ import annotations

from uuid import uuid4

from webhook_service.domain.webhooks import DeliveryStatus

from tests.utils import create_endpoint, put_delivery, tenant_headers


async def test_get_delivery(service_client, endpoints, deliveries, tenant_id):
    endpoint = await create_endpoint(endpoints, tenant_id, "https://a.example.com")
    delivery = put_delivery(deliveries, endpoint, attempt=2, status=DeliveryStatus.RETRYING)

    resp = await service_client.get(
        f"/api/v1/webhook-deliveries/{delivery.id}", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 200
    body = await resp.json()
    assert body["id"] == str(delivery.id)
    assert body["attempt"] == 2
    assert body["status"] == "retrying"
    assert body["payload"]["type"] == "plan.changed"

    resp = await service_client.get(
        f"/api/v1/webhook-deliveries/{delivery.id}", headers=tenant_headers(uuid4())
    )
    assert resp.status == 404


async def test_stats(service_client, endpoints, deliveries, tenant_id):
    endpoint = await create_endpoint(endpoints, tenant_id, "https://a.example.com")
    put_delivery(deliveries, endpoint, status=DeliveryStatus.SUCCESS)
    put_delivery(deliveries, endpoint, status=DeliveryStatus.FAILED)
    put_delivery(deliveries, endpoint)

    resp = await service_client.get("/api/v1/webhook-deliveries/stats", headers=tenant_headers(tenant_id))
    assert resp.status == 200
    assert await resp.json() == {"total": 3, "pending": 1, "retrying": 0, "success": 1, "failed": 1}


async def test_retry_succeeded_delivery_is_rejected(service_client, endpoints, deliveries, tenant_id):
    endpoint = await create_endpoint(endpoints, tenant_id, "https://a.example.com")
    delivery = put_delivery(deliveries, endpoint, status=DeliveryStatus.SUCCESS)

    resp = await service_client.post(
        f"/api/v1/webhook-deliveries/{delivery.id}/retry", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 422
    assert "Cannot retry a successful delivery" in await resp.text()


async def test_retry_against_disabled_endpoint_conflicts(
    service_client, endpoints, deliveries, tenant_id
):
    endpoint = await create_endpoint(endpoints, tenant_id, "https://a.example.com")
    await endpoints.open_circuit(endpoint.id)
    delivery = put_delivery(deliveries, endpoint, attempt=6, status=DeliveryStatus.FAILED)

    resp = await service_client.post(
        f"/api/v1/webhook-deliveries/{delivery.id}/retry", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 409


async def test_retry_failed_delivery(service_client, endpoints, deliveries, receiver, tenant_id):
    endpoint = await create_endpoint(endpoints, tenant_id, receiver.url)
    delivery = put_delivery(deliveries, endpoint, attempt=6, status=DeliveryStatus.FAILED)

    resp = await service_client.post(
        f"/api/v1/webhook-deliveries/{delivery.id}/retry", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 200
    body = await resp.json()
    assert body["outcome"] == "delivered"
    assert body["delivery"]["status"] == "success"
    assert body["delivery"]["attempt"] == 6


async def test_retry_unknown_delivery(service_client, tenant_id):
    resp = await service_client.post(
        f"/api/v1/webhook-deliveries/{uuid4()}/retry", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 404

    resp = await service_client.post(
        "/api/v1/webhook-deliveries/123/retry", headers=tenant_headers(tenant_id)
    )
    assert resp.status == 400
