"""Transmission layer for delivering readings to the configured endpoint."""
from .batching import Batch, split_batches
from .buffer import ReadingBuffer
from .circuit_breaker import DeliveryCircuitBreaker
from .http_client import DeliveryClient
from .retry import DeliveryOutcome, OutcomeKind, RetryPolicy, classify_status

__all__ = [
    'Batch',
    'split_batches',
    'ReadingBuffer',
    'DeliveryCircuitBreaker',
    'DeliveryClient',
    'DeliveryOutcome',
    'OutcomeKind',
    'RetryPolicy',
    'classify_status',
]
