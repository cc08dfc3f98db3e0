"""Helper utilities for API handlers."""
from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator
from uuid import UUID

from aiohttp import web

from backend_common.aiohttp_app import read_json as read_json  # noqa: F401

from webhook_service.core.exceptions import (
    ConflictError,
    DeliveryAlreadySucceededError,
    NotFoundError,
    ValidationFailedError,
)

if TYPE_CHECKING:
    from webhook_service.services.delivery_worker import AttemptResult


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    query = request.rel_url.query
    try:
        limit = int(query.get("limit", str(default_limit)))
        offset = int(query.get("offset", "0"))
    except ValueError as exc:
        raise web.HTTPBadRequest(text="limit and offset must be integers") from exc
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    if offset < 0:
        offset = 0
    return limit, offset


def paginated_response(
    items: list[Any],
    *,
    limit: int,
    offset: int,
    key: str,
    total: int,
) -> dict[str, Any]:
    page = offset // limit + 1 if limit else 1
    return {
        key: items,
        "total": total,
        "page": page,
        "page_size": limit,
    }


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate domain exceptions raised inside the block into HTTP errors."""
    try:
        yield
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except DeliveryAlreadySucceededError as exc:
        raise web.HTTPUnprocessableEntity(text=str(exc)) from exc
    except ConflictError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    except ValidationFailedError as exc:
        raise web.HTTPBadRequest(text=str(exc)) from exc


def attempt_payload(result: AttemptResult) -> dict[str, Any]:
    """JSON body describing the outcome of a synchronous delivery attempt."""
    return {
        "outcome": result.outcome.value,
        "delivery": result.delivery.model_dump(mode="json") if result.delivery else None,
        "retry_in_seconds": (
            int(result.retry_in.total_seconds()) if result.retry_in is not None else None
        ),
    }
