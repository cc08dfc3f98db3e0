"""Catalogue of event types endpoints can subscribe to."""
from __future__ import annotations

from webhook_service.domain.webhooks import WILDCARD_EVENT

TEST_EVENT = "webhook.test"

SUPPORTED_EVENTS: dict[str, str] = {
    "plan.changed": "Triggered when a workspace package is added, changed, or removed",
    "usage.limit_warning": "Triggered when usage reaches 80% or 90% of a feature limit",
    "usage.limit_reached": "Triggered when usage reaches 100% of a feature limit",
    "boost.activated": "Triggered when a boost is activated for a workspace",
    "boost.expired": "Triggered when a boost expires",
}


def is_subscribable(event_type: str) -> bool:
    return event_type == WILDCARD_EVENT or event_type in SUPPORTED_EVENTS


def describe_events() -> list[dict[str, str]]:
    return [{"name": name, "description": text} for name, text in SUPPORTED_EVENTS.items()]
