"""Delivery models: the envelope sent to receivers and the attempt record.

A delivery record is created once per (event, endpoint) pair and is
mutated in place by every later attempt, so it always describes the most
recent attempt plus the running attempt count.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, truncate, utc_now


class DeliveryStatus(str, Enum):
    """Lifecycle state of a delivery record.

    PENDING -> DELIVERED | RETRIED | FAILED
    RETRIED -> RETRIED | DELIVERED | FAILED
    """

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    RETRIED = "RETRIED"
    FAILED = "FAILED"


# Statuses the retry sweep considers when next_retry_at has passed. A
# PENDING record is only due once the lease of its first attempt expired.
RETRYABLE_STATUSES = (DeliveryStatus.PENDING, DeliveryStatus.FAILED, DeliveryStatus.RETRIED)


class Envelope(BaseModel):
    """JSON body POSTed to every subscriber of an event.

    The envelope is serialized exactly once per fan-out. Those bytes are
    signed, sent, stored on every delivery record and resent on retry.
    """

    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1, description="Event type")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event was raised")
    data: Any = Field(default_factory=dict, description="Event-specific payload")

    def to_body(self) -> bytes:
        """Serialize to the UTF-8 JSON bytes that get signed and sent."""
        return self.model_dump_json().encode("utf-8")


class Delivery(BaseModel):
    """Record of delivering one event to one endpoint.

    Attributes:
        id: Unique identifier (``dlv_`` prefix), sent as ``X-Webhook-ID``.
        endpoint_id: Endpoint this delivery targets. Never changes.
        owner_id: Owner of the endpoint, copied for owner-scoped queries.
        event: Event type that triggered the delivery.
        payload: Exact JSON body delivered, as a string.
        request_headers: Headers sent on the most recent attempt.
        response_status: HTTP status of the most recent attempt.
        response_body: Truncated response body of the most recent attempt.
        duration_ms: Wall-clock duration of the most recent attempt.
        error: Reason the most recent attempt failed.
        status: PENDING, DELIVERED, RETRIED or FAILED.
        attempts: HTTP attempts made so far.
        next_retry_at: When the retry sweep should pick this up again.
        delivered_at: When a 2xx response was received.
        version: Write counter used for optimistic claims.
        claim_token: Token of the worker that currently owns a retry.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    endpoint_id: str = Field(description="Target endpoint")
    owner_id: str = Field(description="Owner of the target endpoint")
    event: str = Field(description="Event type")
    payload: str = Field(description="Serialized envelope")
    request_headers: dict[str, str] = Field(default_factory=dict)
    response_status: int | None = Field(default=None)
    response_body: str | None = Field(default=None)
    duration_ms: int | None = Field(default=None, ge=0)
    error: str | None = Field(default=None)
    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING)
    attempts: int = Field(default=1, ge=1, description="HTTP attempts made so far")
    next_retry_at: datetime | None = Field(default=None)
    delivered_at: datetime | None = Field(default=None)
    version: int = Field(default=0, ge=0)
    claim_token: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def body(self) -> bytes:
        """Payload bytes, identical to what was signed on the first attempt."""
        return self.payload.encode("utf-8")

    @property
    def is_terminal(self) -> bool:
        """Whether the retry sweep will leave this record alone."""
        return self.status == DeliveryStatus.DELIVERED or (
            self.status == DeliveryStatus.FAILED and self.next_retry_at is None
        )

    def _record_response(
        self,
        response_status: int | None,
        response_body: str | None,
        duration_ms: int | None,
        max_body_length: int,
    ) -> None:
        self.response_status = response_status
        self.response_body = (
            truncate(response_body, max_body_length) if response_body is not None else None
        )
        self.duration_ms = duration_ms

    def mark_delivered(
        self,
        response_status: int,
        response_body: str | None = None,
        duration_ms: int | None = None,
        max_body_length: int = 10240,
        at: datetime | None = None,
    ) -> Delivery:
        """Mark the delivery as successful."""
        at = at or utc_now()
        self._record_response(response_status, response_body, duration_ms, max_body_length)
        self.status = DeliveryStatus.DELIVERED
        self.error = None
        self.delivered_at = at
        self.next_retry_at = None
        self.claim_token = None
        return self

    def mark_retrying(
        self,
        next_retry_at: datetime,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
        duration_ms: int | None = None,
        max_body_length: int = 10240,
    ) -> Delivery:
        """Mark a failed attempt that will be retried at next_retry_at."""
        self._record_response(response_status, response_body, duration_ms, max_body_length)
        self.status = DeliveryStatus.RETRIED
        self.error = error
        self.next_retry_at = next_retry_at
        self.claim_token = None
        return self

    def mark_failed(
        self,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
        duration_ms: int | None = None,
        max_body_length: int = 10240,
    ) -> Delivery:
        """Mark a failed attempt with no retries left."""
        self._record_response(response_status, response_body, duration_ms, max_body_length)
        self.status = DeliveryStatus.FAILED
        self.error = error
        self.next_retry_at = None
        self.claim_token = None
        return self

    def terminate(self, reason: str | None = None) -> Delivery:
        """Stop retrying without another attempt, keeping the last response."""
        self.status = DeliveryStatus.FAILED
        if reason:
            self.error = reason
        self.next_retry_at = None
        self.claim_token = None
        return self


class DeliveryQuery(BaseModel):
    """Filters for listing an owner's deliveries."""

    model_config = ConfigDict(extra="forbid")

    endpoint_id: str | None = None
    event: str | None = None
    status: DeliveryStatus | None = None
    since: datetime | None = Field(default=None, description="created_at lower bound (inclusive)")
    until: datetime | None = Field(default=None, description="created_at upper bound (inclusive)")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class DeliveryPage(BaseModel):
    """One page of deliveries, newest first."""

    model_config = ConfigDict(extra="forbid")

    items: list[Delivery] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)


class FanoutResult(BaseModel):
    """Aggregate outcome of delivering one event to its subscribers."""

    model_config = ConfigDict(extra="forbid")

    event: str
    matched: int = Field(default=0, ge=0, description="ACTIVE subscribers found")
    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    delivery_ids: list[str] = Field(default_factory=list)


class RetrySweepResult(BaseModel):
    """Counts from one retry sweep."""

    model_config = ConfigDict(extra="forbid")

    processed: int = Field(default=0, ge=0, description="Due records examined")
    dispatched: int = Field(default=0, ge=0, description="Records claimed and re-sent")
    terminated: int = Field(default=0, ge=0, description="Records forced to FAILED")
    skipped: int = Field(default=0, ge=0, description="Claims lost to another worker")
    errors: int = Field(default=0, ge=0, description="Records whose processing raised")


__all__ = [
    "Delivery",
    "DeliveryPage",
    "DeliveryQuery",
    "DeliveryStatus",
    "Envelope",
    "FanoutResult",
    "RETRYABLE_STATUSES",
    "RetrySweepResult",
]
