"""Delivery history, audit and manual retry."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import attempt_payload, parse_uuid, service_errors
from webhook_service.services.dependencies import get_history, require_tenant

routes = web.RouteTableDef()


# registered before /{delivery_id} so "stats" is not parsed as an id
@routes.get("/api/v1/webhook-deliveries/stats")
async def delivery_stats(request: web.Request):
    tenant_id = require_tenant(request)
    history = get_history(request)
    stats = await history.stats(tenant_id)
    return web.json_response(stats.model_dump(mode="json"))


@routes.get("/api/v1/webhook-deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    tenant_id = require_tenant(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    history = get_history(request)
    with service_errors():
        delivery = await history.get(tenant_id, delivery_id)
    return web.json_response(delivery.model_dump(mode="json"))


@routes.post("/api/v1/webhook-deliveries/{delivery_id}/retry")
async def retry_delivery(request: web.Request):
    tenant_id = require_tenant(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    history = get_history(request)
    with service_errors():
        result = await history.retry(tenant_id, delivery_id)
    return web.json_response(attempt_payload(result))
