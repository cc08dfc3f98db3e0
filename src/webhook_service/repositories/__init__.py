"""Repository package exports."""

from webhook_service.repositories.deliveries import WebhookDeliveryRepository
from webhook_service.repositories.delivery_queue import DeliveryQueueRepository, QueuedJob
from webhook_service.repositories.endpoints import WebhookEndpointRepository

__all__ = [
    "WebhookEndpointRepository",
    "WebhookDeliveryRepository",
    "DeliveryQueueRepository",
    "QueuedJob",
]
