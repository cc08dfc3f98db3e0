"""Domain services exports."""

from webhook_service.services.circuit_breaker import CircuitBreaker
from webhook_service.services.delivery_worker import AttemptOutcome, AttemptResult, DeliveryWorker
from webhook_service.services.dispatcher import WebhookDispatcher
from webhook_service.services.history import DeliveryHistory
from webhook_service.services.registry import EndpointRegistry

__all__ = [
    "AttemptOutcome",
    "AttemptResult",
    "CircuitBreaker",
    "DeliveryHistory",
    "DeliveryWorker",
    "EndpointRegistry",
    "WebhookDispatcher",
]
