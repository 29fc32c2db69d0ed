"""
Delivery Layer - reliable webhook delivery.

This module provides:
    - WebhookClient: aiohttp multipart webhook client
    - FailureTracker: failure classification, health flag and backoff
    - RetryQueue: bounded FIFO of failed deliveries
    - DeliveryService: submit-from-any-thread sending with a retry drain loop

Failure policy:
    - Timeouts and connection errors: retried (budget of 20 consecutive)
    - 5xx: retried (budget of 10 consecutive)
    - 429: always retried
    - Other 4xx: never retried, health unaffected
"""

from .failures import (
    FailureCategory,
    FailureState,
    FailureTracker,
    RetryConfig,
    classify_failure,
    classify_status,
    failure_reason,
)
from .queue import QueuedDelivery, QueueStats, RetryQueue
from .client import WebhookClient, WebhookClientConfig, WebhookResponse
from .service import DeliveryService, NoticeSink, RetryStats

__all__ = [
    # Failures
    "FailureCategory",
    "FailureState",
    "FailureTracker",
    "RetryConfig",
    "classify_failure",
    "classify_status",
    "failure_reason",
    # Queue
    "QueuedDelivery",
    "QueueStats",
    "RetryQueue",
    # Client
    "WebhookClient",
    "WebhookClientConfig",
    "WebhookResponse",
    # Service
    "DeliveryService",
    "NoticeSink",
    "RetryStats",
]
