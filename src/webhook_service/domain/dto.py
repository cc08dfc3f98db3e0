"""Request DTOs for the management API."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webhook_service.domain.events import is_subscribable


def _check_events(events: list[str]) -> list[str]:
    unknown = [e for e in events if not is_subscribable(e.strip())]
    if unknown:
        raise ValueError(f"Unsupported event types: {', '.join(unknown)}")
    return events


class WebhookCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(max_length=2048)
    events: list[str] = Field(min_length=1)
    secret: str | None = Field(default=None, min_length=32)
    description: str | None = Field(default=None, max_length=255)

    @field_validator("events")
    @classmethod
    def _validate_events(cls, value: list[str]) -> list[str]:
        return _check_events(value)


class WebhookUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str | None = Field(default=None, max_length=2048)
    events: list[str] | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, max_length=255)

    @field_validator("events")
    @classmethod
    def _validate_events(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _check_events(value)


class EventFireDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    id: UUID | None = None
