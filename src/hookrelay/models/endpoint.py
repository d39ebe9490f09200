"""Endpoint models for registered webhook subscribers.

An endpoint is an external HTTP destination that subscribes to one or
more event types. Its health fields are updated by every delivery
attempt; its status gates whether new events are fanned out to it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import generate_id, generate_secret, truncate, utc_now

MAX_URL_LENGTH = 2048
MAX_EVENT_TYPE_LENGTH = 100


class EndpointStatus(str, Enum):
    """Delivery eligibility of an endpoint."""

    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"  # Owner-initiated
    FAILING = "FAILING"  # Quarantined by the health monitor


def normalize_events(events: list[str]) -> list[str]:
    """Strip, de-duplicate and validate a list of event types.

    Order of first appearance is preserved.

    Raises:
        ValueError: If the list is empty or contains a blank/oversized entry.
    """
    normalized: list[str] = []
    for raw in events:
        event = raw.strip()
        if not event:
            raise ValueError("event types must not be blank")
        if len(event) > MAX_EVENT_TYPE_LENGTH:
            raise ValueError(f"event type longer than {MAX_EVENT_TYPE_LENGTH} characters")
        if event not in normalized:
            normalized.append(event)
    if not normalized:
        raise ValueError("at least one event type is required")
    return normalized


def validate_url_length(url: HttpUrl) -> HttpUrl:
    """Reject URLs longer than MAX_URL_LENGTH."""
    if len(str(url)) > MAX_URL_LENGTH:
        raise ValueError(f"URL longer than {MAX_URL_LENGTH} characters")
    return url


WebhookUrl = Annotated[HttpUrl, AfterValidator(validate_url_length)]


class Endpoint(BaseModel):
    """A registered webhook destination.

    Attributes:
        id: Unique identifier (``whk_`` prefix).
        owner_id: Subject that registered the endpoint.
        url: HTTP(S) URL receiving POSTed events.
        secret: HMAC signing key. Never shown again after creation.
        events: Event types this endpoint subscribes to.
        status: ACTIVE, DISABLED or FAILING.
        consecutive_failures: Failed attempts since the last success.
        metadata: Free-form owner metadata.
        last_delivery_at: Time of the most recent attempt.
        last_success_at: Time of the most recent 2xx response.
        last_failure_at: Time of the most recent failure.
        last_failure_reason: Reason for the most recent failure (truncated).
        deleted_at: Soft-delete marker; deleted endpoints get no deliveries.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(min_length=1, description="Subject that registered the endpoint")
    url: WebhookUrl = Field(description="Destination for webhook POSTs")
    secret: str = Field(default_factory=generate_secret, description="HMAC-SHA256 key")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    status: EndpointStatus = Field(default=EndpointStatus.ACTIVE)
    consecutive_failures: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_delivery_at: datetime | None = Field(default=None)
    last_success_at: datetime | None = Field(default=None)
    last_failure_at: datetime | None = Field(default=None)
    last_failure_reason: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = Field(default=None)

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str]) -> list[str]:
        return normalize_events(value)

    @property
    def deleted(self) -> bool:
        """Whether the endpoint has been soft-deleted."""
        return self.deleted_at is not None

    @property
    def is_active(self) -> bool:
        """Whether the endpoint may receive deliveries (fan-out or retry)."""
        return self.status == EndpointStatus.ACTIVE and not self.deleted

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this endpoint should receive the given event type."""
        return self.is_active and event_type in self.events

    def record_success(self, at: datetime | None = None) -> Endpoint:
        """Reset the failure counter after a 2xx response."""
        at = at or utc_now()
        self.consecutive_failures = 0
        self.last_delivery_at = at
        self.last_success_at = at
        return self

    def record_failure(
        self,
        reason: str,
        at: datetime | None = None,
        max_reason_length: int = 2000,
    ) -> Endpoint:
        """Count a failed attempt."""
        at = at or utc_now()
        self.consecutive_failures += 1
        self.last_delivery_at = at
        self.last_failure_at = at
        self.last_failure_reason = truncate(reason, max_reason_length, marker="")
        return self

    def reactivate(self) -> Endpoint:
        """Return to ACTIVE with a clean failure history."""
        self.status = EndpointStatus.ACTIVE
        self.consecutive_failures = 0
        self.last_failure_reason = None
        return self


class EndpointUpdate(BaseModel):
    """Partial update of an endpoint by its owner.

    Only fields that are set are applied. Setting ``status`` to ACTIVE is
    a reactivation and resets the failure counter.
    """

    model_config = ConfigDict(extra="forbid")

    url: WebhookUrl | None = None
    events: list[str] | None = None
    status: EndpointStatus | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str] | None) -> list[str] | None:
        return normalize_events(value) if value is not None else None

    def apply_to(self, endpoint: Endpoint) -> Endpoint:
        """Apply this patch to an endpoint in place."""
        if self.url is not None:
            endpoint.url = self.url
        if self.events is not None:
            endpoint.events = self.events
        if self.status is not None:
            if self.status == EndpointStatus.ACTIVE:
                endpoint.reactivate()
            else:
                endpoint.status = self.status
        if self.metadata is not None:
            endpoint.metadata = self.metadata
        endpoint.updated_at = utc_now()
        return endpoint


__all__ = [
    "Endpoint",
    "EndpointStatus",
    "EndpointUpdate",
    "MAX_URL_LENGTH",
    "normalize_events",
]
