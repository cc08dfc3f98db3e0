"""Event catalogue and event intake."""
from __future__ import annotations

from aiohttp import web
from pydantic import ValidationError

from webhook_service.api.utils import read_json
from webhook_service.domain.dto import EventFireDTO
from webhook_service.domain.events import describe_events
from webhook_service.domain.webhooks import WebhookEvent
from webhook_service.services.dependencies import get_dispatcher, require_tenant

routes = web.RouteTableDef()


@routes.get("/api/v1/webhook-events")
async def list_event_types(_request: web.Request):
    return web.json_response({"events": describe_events()})


@routes.post("/api/v1/events")
async def fire_event(request: web.Request):
    """Fan an event out to subscribed endpoints; attempts run asynchronously."""
    tenant_id = require_tenant(request)
    body = await read_json(request)
    try:
        dto = EventFireDTO.model_validate(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(text=exc.json()) from exc

    event = WebhookEvent(type=dto.type, payload=dto.payload)
    if dto.id is not None:
        event = event.model_copy(update={"id": dto.id})

    dispatcher = get_dispatcher(request)
    deliveries = await dispatcher.dispatch(tenant_id, event)
    return web.json_response(
        {
            "event_id": str(event.id),
            "deliveries": [d.model_dump(mode="json") for d in deliveries],
        },
        status=202,
    )
