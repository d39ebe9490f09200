"""Endpoint storage operations for hookrelay.

Owner edits replace the whole record. Health updates made after each
delivery attempt only write the health fields, so they never clobber a
concurrent owner edit to url or events.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from qdrant_client import models

from hookrelay.models import Endpoint, EndpointStatus, EndpointUpdate, utc_now

logger = logging.getLogger(__name__)

# Fields written by delivery outcomes and the health monitor
HEALTH_FIELDS = {
    "status",
    "consecutive_failures",
    "last_delivery_at",
    "last_success_at",
    "last_failure_at",
    "last_failure_reason",
    "updated_at",
}


class EndpointMixin:
    """Mixin providing endpoint operations for HookRelayStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert / _retrieve / _set_payload / _scroll_all
    - _model_to_payload / _payload_to_model
    - _endpoint_lock(endpoint_id) -> asyncio.Lock
    """

    _upsert: Any
    _retrieve: Any
    _set_payload: Any
    _scroll_all: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _endpoint_lock: Any

    async def store_endpoint(self, endpoint: Endpoint) -> str:
        """Store (insert or replace) an endpoint.

        Returns:
            The endpoint ID.
        """
        await self._upsert("endpoints", endpoint.id, self._model_to_payload(endpoint))
        return endpoint.id

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None:
        """Get an endpoint by ID, including soft-deleted ones."""
        payload = await self._retrieve("endpoints", endpoint_id)
        if payload is None:
            return None
        endpoint: Endpoint = self._payload_to_model(payload, Endpoint)
        return endpoint

    async def list_endpoints(self, owner_id: str) -> list[Endpoint]:
        """List an owner's non-deleted endpoints, newest first."""
        payloads = await self._scroll_all(
            "endpoints",
            models.Filter(
                must=[
                    models.FieldCondition(key="owner_id", match=models.MatchValue(value=owner_id)),
                    models.FieldCondition(key="deleted", match=models.MatchValue(value=False)),
                ]
            ),
        )
        endpoints = [self._payload_to_model(p, Endpoint) for p in payloads]
        endpoints.sort(key=lambda e: e.created_at, reverse=True)
        return endpoints

    async def list_endpoint_ids(self, owner_id: str) -> list[str]:
        """IDs of an owner's non-deleted endpoints."""
        return [endpoint.id for endpoint in await self.list_endpoints(owner_id)]

    async def list_active_subscribers(self, event_type: str) -> list[Endpoint]:
        """Get all ACTIVE, non-deleted endpoints subscribed to an event type."""
        payloads = await self._scroll_all(
            "endpoints",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="status",
                        match=models.MatchValue(value=EndpointStatus.ACTIVE.value),
                    ),
                    models.FieldCondition(key="deleted", match=models.MatchValue(value=False)),
                    # Matches when any element of the events array equals the value
                    models.FieldCondition(key="events", match=models.MatchValue(value=event_type)),
                ]
            ),
        )
        endpoints: list[Endpoint] = [self._payload_to_model(p, Endpoint) for p in payloads]
        return [e for e in endpoints if e.subscribes_to(event_type)]

    async def list_quarantine_candidates(self, failure_threshold: int) -> list[Endpoint]:
        """Get ACTIVE, non-deleted endpoints at or above the failure threshold."""
        payloads = await self._scroll_all(
            "endpoints",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="status",
                        match=models.MatchValue(value=EndpointStatus.ACTIVE.value),
                    ),
                    models.FieldCondition(key="deleted", match=models.MatchValue(value=False)),
                    models.FieldCondition(
                        key="consecutive_failures",
                        range=models.Range(gte=failure_threshold),
                    ),
                ]
            ),
        )
        return [self._payload_to_model(p, Endpoint) for p in payloads]

    async def update_endpoint(self, endpoint_id: str, patch: EndpointUpdate) -> Endpoint | None:
        """Apply an owner patch to an endpoint.

        Returns:
            The updated endpoint, or None if it does not exist or is deleted.
        """
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id)
            if endpoint is None or endpoint.deleted:
                return None
            patch.apply_to(endpoint)
            await self.store_endpoint(endpoint)
            return endpoint

    async def soft_delete_endpoint(self, endpoint_id: str, at: datetime | None = None) -> bool:
        """Mark an endpoint deleted. Its deliveries are kept.

        Returns:
            True if the endpoint existed and was not already deleted.
        """
        at = at or utc_now()
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id)
            if endpoint is None or endpoint.deleted:
                return False
            await self._set_payload(
                "endpoints",
                endpoint_id,
                {"deleted_at": at.isoformat(), "deleted": True, "updated_at": at.isoformat()},
            )
            return True

    async def record_endpoint_success(
        self,
        endpoint_id: str,
        at: datetime | None = None,
    ) -> Endpoint | None:
        """Reset an endpoint's failure counter after a successful delivery."""
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id)
            if endpoint is None:
                return None
            endpoint.record_success(at)
            await self._write_health(endpoint)
            return endpoint

    async def record_endpoint_failure(
        self,
        endpoint_id: str,
        reason: str,
        at: datetime | None = None,
        max_reason_length: int = 2000,
    ) -> Endpoint | None:
        """Increment an endpoint's failure counter after a failed delivery."""
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id)
            if endpoint is None:
                return None
            endpoint.record_failure(reason, at, max_reason_length)
            await self._write_health(endpoint)
            return endpoint

    async def set_endpoint_status(
        self,
        endpoint_id: str,
        status: EndpointStatus,
        expected_status: EndpointStatus | None = None,
        min_consecutive_failures: int | None = None,
    ) -> bool:
        """Change an endpoint's status.

        Args:
            endpoint_id: Endpoint to update.
            status: New status.
            expected_status: Only update if the current status matches.
            min_consecutive_failures: Only update if the failure counter is
                still at least this high.

        Returns:
            True if the status was written.
        """
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id)
            if endpoint is None or endpoint.deleted:
                return False
            if expected_status is not None and endpoint.status != expected_status:
                return False
            if (
                min_consecutive_failures is not None
                and endpoint.consecutive_failures < min_consecutive_failures
            ):
                return False
            endpoint.status = status
            endpoint.updated_at = utc_now()
            await self._write_health(endpoint)
            return True

    async def _write_health(self, endpoint: Endpoint) -> None:
        payload = endpoint.model_dump(mode="json", include=HEALTH_FIELDS)
        await self._set_payload("endpoints", endpoint.id, payload)
