"""Webhook endpoint management."""
from __future__ import annotations

from aiohttp import web
from pydantic import ValidationError

from webhook_service.api.utils import (
    attempt_payload,
    paginated_response,
    pagination_params,
    parse_uuid,
    read_json,
    service_errors,
)
from webhook_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from webhook_service.domain.webhooks import DeliveryStatus
from webhook_service.services.dependencies import get_history, get_registry, require_tenant

routes = web.RouteTableDef()


def _endpoint_id(request: web.Request):
    return parse_uuid(request.match_info["endpoint_id"], "endpoint_id")


@routes.get("/api/v1/webhooks")
async def list_webhooks(request: web.Request):
    tenant_id = require_tenant(request)
    registry = get_registry(request)
    limit, offset = pagination_params(request)
    items, total = await registry.list(tenant_id, limit=limit, offset=offset)
    payload = paginated_response(
        [item.public_dict() for item in items],
        limit=limit,
        offset=offset,
        key="webhooks",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/webhooks")
async def create_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    body = await read_json(request)
    try:
        dto = WebhookCreateDTO.model_validate(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(text=exc.json()) from exc

    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.register(
            tenant_id,
            url=dto.url,
            events=dto.events,
            secret=dto.secret,
            description=dto.description,
        )
    # the only response that ever carries the secret
    payload = endpoint.public_dict()
    payload["secret"] = endpoint.secret
    return web.json_response(payload, status=201)


@routes.get("/api/v1/webhooks/{endpoint_id}")
async def get_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.get(tenant_id, endpoint_id)
    return web.json_response(endpoint.public_dict())


@routes.patch("/api/v1/webhooks/{endpoint_id}")
async def update_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    body = await read_json(request)
    try:
        dto = WebhookUpdateDTO.model_validate(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(text=exc.json()) from exc

    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.update(
            tenant_id,
            endpoint_id,
            url=dto.url,
            events=dto.events,
            description=dto.description,
        )
    return web.json_response(endpoint.public_dict())


@routes.delete("/api/v1/webhooks/{endpoint_id}")
async def delete_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        await registry.delete(tenant_id, endpoint_id)
    return web.Response(status=204)


@routes.post("/api/v1/webhooks/{endpoint_id}/rotate-secret")
async def rotate_secret(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        secret = await registry.rotate_secret(tenant_id, endpoint_id)
    return web.json_response({"id": str(endpoint_id), "secret": secret})


@routes.post("/api/v1/webhooks/{endpoint_id}/deactivate")
async def deactivate_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.deactivate(tenant_id, endpoint_id)
    return web.json_response(endpoint.public_dict())


@routes.post("/api/v1/webhooks/{endpoint_id}/reactivate")
async def reactivate_webhook(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.reactivate(tenant_id, endpoint_id)
    return web.json_response(endpoint.public_dict())


@routes.post("/api/v1/webhooks/{endpoint_id}/reset-circuit-breaker")
async def reset_circuit_breaker(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    registry = get_registry(request)
    with service_errors():
        endpoint = await registry.reset_circuit_breaker(tenant_id, endpoint_id)
    return web.json_response(endpoint.public_dict())


@routes.post("/api/v1/webhooks/{endpoint_id}/test")
async def test_webhook(request: web.Request):
    """Send a ``webhook.test`` event synchronously and report the outcome."""
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    history = get_history(request)
    with service_errors():
        result = await history.test_endpoint(tenant_id, endpoint_id)
    return web.json_response(attempt_payload(result))


@routes.get("/api/v1/webhooks/{endpoint_id}/deliveries")
async def list_endpoint_deliveries(request: web.Request):
    tenant_id = require_tenant(request)
    endpoint_id = _endpoint_id(request)
    raw_status = request.rel_url.query.get("status")
    try:
        status = DeliveryStatus(raw_status) if raw_status else None
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid status: {raw_status}") from exc

    history = get_history(request)
    limit, offset = pagination_params(request)
    with service_errors():
        items, total = await history.list_for_endpoint(
            tenant_id, endpoint_id, status=status, limit=limit, offset=offset
        )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)
