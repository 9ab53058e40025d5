"""
Delivery error taxonomy.

Errors never escape the transmission layer. They are carried on
DeliveryOutcome so the retry policy and circuit breaker can act on them.
"""
from typing import Optional


class DeliveryError(Exception):
    """Base class for failed batch deliveries."""

    retryable = False
    # Requeue for the next cycle without retrying now
    requeue = False

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class TransportError(DeliveryError):
    """DNS, connect, timeout or other I/O failure."""

    retryable = True


class ServerError(DeliveryError):
    """408, 429 and 5xx responses."""

    retryable = True


class ClientError(DeliveryError):
    """Malformed request (400/422). Retrying cannot help."""


class AuthError(DeliveryError):
    """Rejected credentials (401/403)."""


class UnexpectedStatusError(DeliveryError):
    """Any other non-2xx status (3xx, 404, 409, ...). Counted, requeued, not retried in-cycle."""

    requeue = True
