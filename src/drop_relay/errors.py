"""
Exception hierarchy for the relay.

Parsing and correlation never raise to their callers; only delivery and
configuration problems surface as exceptions, and delivery errors are
resolved inside the delivery layer.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from drop_relay.delivery.failures import FailureCategory


class RelayError(Exception):
    """Base exception for relay errors."""
    pass


class ConfigError(RelayError):
    """Invalid configuration value."""
    pass


class DeliveryError(RelayError):
    """Base exception for webhook delivery failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        category: Optional["FailureCategory"] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.category = category


class DeliveryTimeoutError(DeliveryError):
    """Request exceeded the client-side timeout."""
    pass


class NetworkError(DeliveryError):
    """Connection could not be established or was dropped."""
    pass


class RateLimitError(DeliveryError):
    """Rate limit exceeded (HTTP 429)."""
    pass


class ClientResponseError(DeliveryError):
    """Rejected by the server with a 4xx other than 429."""
    pass


class ServerError(DeliveryError):
    """Server responded with a 5xx."""
    pass


class QueueFullError(RelayError):
    """Retry queue is at capacity."""
    pass
