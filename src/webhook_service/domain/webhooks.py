"""Webhook domain primitives."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

WILDCARD_EVENT = "*"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookEndpoint(BaseModel):
    id: UUID
    tenant_id: UUID
    url: str
    description: str | None = None
    secret: str = Field(repr=False)
    subscribed_events: list[str] = Field(default_factory=list)
    active: bool = True
    failure_count: int = Field(default=0, ge=0)
    disabled_at: datetime | None = None
    last_triggered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_eligible(self) -> bool:
        """Deliveries are only attempted for active endpoints with a closed circuit."""
        return self.active and self.disabled_at is None

    def subscribes_to(self, event_type: str) -> bool:
        return WILDCARD_EVENT in self.subscribed_events or event_type in self.subscribed_events

    def public_dict(self) -> dict[str, Any]:
        """JSON representation without the signing secret."""
        return self.model_dump(mode="json", exclude={"secret"})


class WebhookDelivery(BaseModel):
    id: UUID
    endpoint_id: UUID
    tenant_id: UUID
    event_id: UUID
    event_type: str
    payload: dict[str, Any]
    attempt: int = Field(default=1, ge=1)
    status: DeliveryStatus = DeliveryStatus.PENDING
    response_code: int | None = None
    response_body: str | None = None
    delivered_at: datetime | None = None
    next_retry_at: datetime | None = None
    skipped_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class WebhookEvent(BaseModel):
    """A fired domain event; ``id`` is the idempotency key shared by its deliveries."""

    id: UUID = Field(default_factory=uuid4)
    type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def envelope(self) -> dict[str, Any]:
        """Body sent to every endpoint receiving this event."""
        return {
            "id": str(self.id),
            "type": self.type,
            "created_at": self.occurred_at.isoformat(),
            "data": self.payload,
        }


class DeliveryStats(BaseModel):
    total: int = 0
    pending: int = 0
    retrying: int = 0
    success: int = 0
    failed: int = 0

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> "DeliveryStats":
        known = {status.value: int(counts.get(status.value, 0)) for status in DeliveryStatus}
        return cls(total=sum(known.values()), **known)
