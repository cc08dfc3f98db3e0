"""Domain exceptions raised by services and translated to HTTP errors by routes."""
from __future__ import annotations


class WebhookServiceError(Exception):
    """Base class for expected, caller-visible failures."""


class NotFoundError(WebhookServiceError):
    """Entity does not exist (or belongs to another tenant)."""


class ValidationFailedError(WebhookServiceError):
    """Input rejected before anything was persisted."""


class InvalidEndpointError(ValidationFailedError):
    """Endpoint configuration is invalid (bad URL, empty event list, ...)."""


class ConflictError(WebhookServiceError):
    """Operation is not allowed in the entity's current state."""


class DeliveryAlreadySucceededError(ConflictError):
    def __init__(self) -> None:
        super().__init__("Cannot retry a successful delivery")


class EndpointNotEligibleError(ConflictError):
    def __init__(self) -> None:
        super().__init__("Webhook endpoint is inactive or disabled")


class DeliveryInProgressError(ConflictError):
    def __init__(self) -> None:
        super().__init__("A delivery attempt is already in progress")
