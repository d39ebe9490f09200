"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import Delivery, DeliveryStatus, Endpoint, EndpointStatus


class EndpointCreateRequest(BaseModel):
    """Request body for registering an endpoint.

    URL and event validation happens in the service so that bad input is
    reported as a 400 validation_error.

    Attributes:
        url: HTTP(S) URL that will receive POSTed events.
        events: Event types to subscribe to.
        metadata: Free-form owner metadata.
    """

    model_config = ConfigDict(extra="forbid")

    url: str = Field(description="Destination URL")
    events: list[str] = Field(description="Event types to subscribe to")
    metadata: dict[str, Any] = Field(default_factory=dict)


class EndpointUpdateRequest(BaseModel):
    """Request body for patching an endpoint. Only set fields are applied."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    events: list[str] | None = None
    status: EndpointStatus | None = Field(
        default=None,
        description="ACTIVE reactivates and resets the failure counter",
    )
    metadata: dict[str, Any] | None = None


class EndpointResponse(BaseModel):
    """An endpoint as shown to its owner. Never includes the secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    url: str
    events: list[str]
    status: EndpointStatus
    consecutive_failures: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_delivery_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> EndpointResponse:
        data = endpoint.model_dump(exclude={"secret", "owner_id", "deleted_at"})
        data["url"] = str(endpoint.url)
        return cls.model_validate(data)


class EndpointCreatedResponse(EndpointResponse):
    """Registration response. The only place the signing secret is shown."""

    secret: str = Field(description="HMAC-SHA256 signing secret, shown once")

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> EndpointCreatedResponse:
        data = endpoint.model_dump(exclude={"owner_id", "deleted_at"})
        data["url"] = str(endpoint.url)
        return cls.model_validate(data)


class EndpointListResponse(BaseModel):
    """Response model for listing endpoints."""

    model_config = ConfigDict(extra="forbid")

    endpoints: list[EndpointResponse]
    count: int


class DeliveryResponse(BaseModel):
    """A delivery record as shown to the endpoint owner."""

    model_config = ConfigDict(extra="forbid")

    id: str
    endpoint_id: str
    event: str
    payload: str
    request_headers: dict[str, str] = Field(default_factory=dict)
    response_status: int | None = None
    response_body: str | None = None
    duration_ms: int | None = None
    error: str | None = None
    status: DeliveryStatus
    attempts: int
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliveryResponse:
        return cls.model_validate(
            delivery.model_dump(exclude={"owner_id", "version", "claim_token"})
        )


class DeliveryListResponse(BaseModel):
    """One page of deliveries, newest first."""

    model_config = ConfigDict(extra="forbid")

    items: list[DeliveryResponse]
    total: int
    page: int
    limit: int


class HealthResponse(BaseModel):
    """Response model for health check.

    Attributes:
        status: Health status ("healthy" or "unhealthy").
        version: hookrelay version.
        storage_connected: Whether Qdrant answered.
        sweeps_running: Whether the retry and health sweeps are running.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    sweeps_running: bool = False
