"""Middleware binding trace/request ids (and tenant) to the structlog context."""
from __future__ import annotations

import time
from typing import Iterable, Mapping
from uuid import UUID, uuid4

import structlog
from aiohttp import web

TRACE_ID_HEADER = "X-Trace-Id"
REQUEST_ID_HEADER = "X-Request-Id"

logger = structlog.get_logger(__name__)

# Never logged.
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
    }
)


def is_valid_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def get_safe_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Headers with sensitive entries removed."""
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


def _incoming_or_new(request: web.Request, header: str) -> str:
    value = request.headers.get(header)
    return value if is_valid_uuid(value) else str(uuid4())


def create_trace_middleware(service_name: str, *, context_headers: Iterable[tuple[str, str]] = ()):
    """Create the trace middleware.

    ``context_headers`` maps extra request headers to context keys, e.g.
    ``[("X-Tenant-Id", "tenant_id")]``; present values are bound to every log
    line emitted while the request is handled.
    """
    extra_headers = tuple(context_headers)

    @web.middleware
    async def trace_middleware(request: web.Request, handler):
        started = time.monotonic()
        trace_id = _incoming_or_new(request, TRACE_ID_HEADER)
        request_id = _incoming_or_new(request, REQUEST_ID_HEADER)
        request["trace_id"] = trace_id
        request["request_id"] = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            trace_id=trace_id,
            request_id=request_id,
            service=service_name,
            method=request.method,
            path=request.path,
        )
        for header, key in extra_headers:
            value = request.headers.get(header)
            if value:
                structlog.contextvars.bind_contextvars(**{key: value})

        logger.info(
            "Incoming request",
            query_string=request.query_string or None,
            remote=request.remote,
            headers=get_safe_headers(request.headers),
        )

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            logger.warning(
                "Request failed with HTTP exception",
                status_code=exc.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                error=exc.text,
            )
            raise
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise
        else:
            log = logger.warning if response.status >= 400 else logger.info
            log(
                "Request completed",
                status_code=response.status,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
            response.headers[TRACE_ID_HEADER] = trace_id
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    return trace_middleware
