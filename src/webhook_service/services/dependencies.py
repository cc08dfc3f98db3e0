"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from uuid import UUID

from aiohttp import web

from webhook_service.runtime import RUNTIME_KEY, WebhookRuntime
from webhook_service.services.dispatcher import WebhookDispatcher
from webhook_service.services.history import DeliveryHistory
from webhook_service.services.registry import EndpointRegistry

TENANT_ID_HEADER = "X-Tenant-Id"


def require_tenant(request: web.Request) -> UUID:
    """Tenant identity supplied by the API gateway; authorization happens upstream."""
    value = request.headers.get(TENANT_ID_HEADER)
    if not value:
        raise web.HTTPUnauthorized(reason=f"Header {TENANT_ID_HEADER} is required")
    try:
        return UUID(value)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {TENANT_ID_HEADER}") from exc


def get_runtime(request: web.Request) -> WebhookRuntime:
    runtime = request.app.get(RUNTIME_KEY)
    if runtime is None:
        raise web.HTTPServiceUnavailable(text="Webhook engine is not running")
    return runtime


def get_registry(request: web.Request) -> EndpointRegistry:
    return get_runtime(request).registry


def get_dispatcher(request: web.Request) -> WebhookDispatcher:
    return get_runtime(request).dispatcher


def get_history(request: web.Request) -> DeliveryHistory:
    return get_runtime(request).history
