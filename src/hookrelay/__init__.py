"""hookrelay: outbound webhook delivery.

Fans application events out to registered HTTP endpoints, signs every
payload with HMAC-SHA256, records each attempt, retries failures on a
backoff table and quarantines endpoints that keep failing.

Quick Start:
    from hookrelay.service import WebhookService

    async with WebhookService.create() as hooks:
        endpoint = await hooks.create_endpoint(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["post.published"],
        )

        # From any producer; never raises
        await hooks.deliver_webhook("post.published", {"post_id": "p_1"})

Delivery States:
    - PENDING: First attempt in flight
    - DELIVERED: Receiver answered 2xx
    - RETRIED: Failed, next attempt scheduled
    - FAILED: Out of attempts, or endpoint gone
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConflictError,
    HookRelayError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Models
from .models import (
    Delivery,
    DeliveryPage,
    DeliveryQuery,
    DeliveryStatus,
    Endpoint,
    EndpointStatus,
    EndpointUpdate,
    Envelope,
    FanoutResult,
    RetrySweepResult,
)

# Service
from .service import WebhookService

# Signing
from .webhooks.signing import compute_signature, verify_signature

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "ConflictError",
    "HookRelayError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Models
    "Delivery",
    "DeliveryPage",
    "DeliveryQuery",
    "DeliveryStatus",
    "Endpoint",
    "EndpointStatus",
    "EndpointUpdate",
    "Envelope",
    "FanoutResult",
    "RetrySweepResult",
    # Service
    "WebhookService",
    # Signing
    "compute_signature",
    "verify_signature",
]
