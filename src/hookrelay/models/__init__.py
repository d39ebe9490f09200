"""Data models for hookrelay.

Endpoint Types:
    - Endpoint: Registered webhook destination with health counters
    - EndpointStatus: ACTIVE, DISABLED or FAILING
    - EndpointUpdate: Owner patch (url, events, status, metadata)

Delivery Types:
    - Envelope: The JSON body sent to receivers
    - Delivery: Record of delivering one event to one endpoint
    - DeliveryStatus: PENDING, DELIVERED, RETRIED or FAILED
    - DeliveryQuery / DeliveryPage: Owner-scoped delivery listing

Results:
    - FanoutResult: Outcome of one deliver_webhook call
    - RetrySweepResult: Outcome of one retry sweep
"""

from .base import SECRET_PREFIX, generate_id, generate_secret, truncate, utc_now
from .delivery import (
    RETRYABLE_STATUSES,
    Delivery,
    DeliveryPage,
    DeliveryQuery,
    DeliveryStatus,
    Envelope,
    FanoutResult,
    RetrySweepResult,
)
from .endpoint import (
    MAX_URL_LENGTH,
    Endpoint,
    EndpointStatus,
    EndpointUpdate,
    normalize_events,
)

__all__ = [
    # Helpers
    "SECRET_PREFIX",
    "generate_id",
    "generate_secret",
    "truncate",
    "utc_now",
    # Endpoints
    "MAX_URL_LENGTH",
    "Endpoint",
    "EndpointStatus",
    "EndpointUpdate",
    "normalize_events",
    # Deliveries
    "RETRYABLE_STATUSES",
    "Delivery",
    "DeliveryPage",
    "DeliveryQuery",
    "DeliveryStatus",
    "Envelope",
    # Results
    "FanoutResult",
    "RetrySweepResult",
]
