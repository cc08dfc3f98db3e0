async def test_healthcheck(service_client):
    response = await service_client.get("/health")
    assert response.status == 200
    payload = await response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "webhook-service"


async def test_trace_headers_are_echoed(service_client):
    response = await service_client.get("/health")
    assert response.headers.get("X-Trace-Id")
    assert response.headers.get("X-Request-Id")
