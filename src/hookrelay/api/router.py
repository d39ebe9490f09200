"""FastAPI router for the hookrelay management API.

The owner of every endpoint and delivery is taken from the ``X-Owner-Id``
header, which the upstream auth layer is expected to set.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from hookrelay import __version__
from hookrelay.models import DeliveryQuery, DeliveryStatus
from hookrelay.service import WebhookService

from .schemas import (
    DeliveryListResponse,
    DeliveryResponse,
    EndpointCreatedResponse,
    EndpointCreateRequest,
    EndpointListResponse,
    EndpointResponse,
    EndpointUpdateRequest,
    HealthResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]
OwnerDep = Annotated[str, Header(alias="X-Owner-Id", min_length=1)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health, including Qdrant connectivity."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)

    storage_connected = await _service.storage.ping()
    return HealthResponse(
        status="healthy" if storage_connected else "unhealthy",
        version=__version__,
        storage_connected=storage_connected,
        sweeps_running=_service.sweeper.running,
    )


@router.post(
    "/webhooks/endpoints",
    response_model=EndpointCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["endpoints"],
)
async def create_endpoint(
    request: EndpointCreateRequest,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> EndpointCreatedResponse:
    """Register a webhook endpoint.

    The response is the only time the signing secret is returned.
    """
    endpoint = await service.create_endpoint(
        owner_id=owner_id,
        url=request.url,
        events=request.events,
        metadata=request.metadata,
    )
    return EndpointCreatedResponse.from_endpoint(endpoint)


@router.get("/webhooks/endpoints", response_model=EndpointListResponse, tags=["endpoints"])
async def list_endpoints(owner_id: OwnerDep, service: ServiceDep) -> EndpointListResponse:
    """List the owner's endpoints, newest first."""
    endpoints = await service.list_endpoints(owner_id)
    return EndpointListResponse(
        endpoints=[EndpointResponse.from_endpoint(e) for e in endpoints],
        count=len(endpoints),
    )


@router.get(
    "/webhooks/endpoints/{endpoint_id}",
    response_model=EndpointResponse,
    tags=["endpoints"],
)
async def get_endpoint(
    endpoint_id: str,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> EndpointResponse:
    """Get one endpoint, including its health counters."""
    endpoint = await service.get_endpoint(endpoint_id, owner_id)
    return EndpointResponse.from_endpoint(endpoint)


@router.patch(
    "/webhooks/endpoints/{endpoint_id}",
    response_model=EndpointResponse,
    tags=["endpoints"],
)
async def update_endpoint(
    endpoint_id: str,
    request: EndpointUpdateRequest,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> EndpointResponse:
    """Patch url, events, status or metadata.

    Setting status to ACTIVE reactivates a FAILING or DISABLED endpoint
    and resets its failure counter.
    """
    endpoint = await service.update_endpoint(
        endpoint_id,
        owner_id,
        request.model_dump(exclude_unset=True),
    )
    return EndpointResponse.from_endpoint(endpoint)


@router.delete(
    "/webhooks/endpoints/{endpoint_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["endpoints"],
)
async def delete_endpoint(
    endpoint_id: str,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> None:
    """Soft-delete an endpoint. Its delivery log is kept."""
    await service.delete_endpoint(endpoint_id, owner_id)


@router.post(
    "/webhooks/endpoints/{endpoint_id}/test",
    response_model=DeliveryResponse,
    tags=["endpoints"],
)
async def test_endpoint(
    endpoint_id: str,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> DeliveryResponse:
    """Send a webhook.test event to the endpoint and return the delivery."""
    delivery = await service.test_endpoint(endpoint_id, owner_id)
    return DeliveryResponse.from_delivery(delivery)


@router.get("/webhooks/deliveries", response_model=DeliveryListResponse, tags=["deliveries"])
async def list_deliveries(
    owner_id: OwnerDep,
    service: ServiceDep,
    endpoint_id: str | None = None,
    event: str | None = None,
    delivery_status: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> DeliveryListResponse:
    """List deliveries to the owner's endpoints, newest first."""
    result = await service.list_deliveries(
        owner_id,
        DeliveryQuery(
            endpoint_id=endpoint_id,
            event=event,
            status=delivery_status,
            since=since,
            until=until,
            page=page,
            limit=limit,
        ),
    )
    return DeliveryListResponse(
        items=[DeliveryResponse.from_delivery(d) for d in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.post(
    "/webhooks/deliveries/{delivery_id}/retry",
    response_model=DeliveryResponse,
    tags=["deliveries"],
)
async def retry_delivery(
    delivery_id: str,
    owner_id: OwnerDep,
    service: ServiceDep,
) -> DeliveryResponse:
    """Retry a failed delivery now.

    Returns 409 if it already succeeded or has no attempts left.
    """
    delivery = await service.retry_delivery(delivery_id, owner_id)
    return DeliveryResponse.from_delivery(delivery)
