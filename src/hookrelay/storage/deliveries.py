"""Delivery record storage operations for hookrelay.

Every write bumps the record's ``version``. Retry workers claim a record
with a compare-and-set on (status, version) and confirm the claim by
reading back their claim token; only the winner dispatches.

The compare-and-set runs under an in-process lock, so it is only atomic
within one process. Run the sweeps in a single process and set
``HOOKRELAY_SWEEPS_ENABLED=false`` on every other worker.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from qdrant_client import models

from hookrelay.models import (
    RETRYABLE_STATUSES,
    Delivery,
    DeliveryQuery,
    DeliveryStatus,
    utc_now,
)

from .base import to_timestamp

logger = logging.getLogger(__name__)


class DeliveryMixin:
    """Mixin providing delivery record operations for HookRelayStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert / _retrieve / _count / _scroll_ordered
    - _model_to_payload / _payload_to_model
    - _claim_lock: asyncio.Lock
    """

    _upsert: Any
    _retrieve: Any
    _count: Any
    _scroll_ordered: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _claim_lock: Any

    async def store_delivery(self, delivery: Delivery) -> str:
        """Store a delivery record, bumping its version.

        Args:
            delivery: Delivery to store. Its version and updated_at are
                updated in place.

        Returns:
            The delivery ID.
        """
        delivery.version += 1
        delivery.updated_at = utc_now()
        await self._upsert("deliveries", delivery.id, self._model_to_payload(delivery))
        return delivery.id

    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        """Get a delivery record by ID."""
        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        delivery: Delivery = self._payload_to_model(payload, Delivery)
        return delivery

    async def claim_delivery(
        self,
        delivery: Delivery,
        lease_until: datetime,
        now: datetime | None = None,
    ) -> Delivery | None:
        """Claim a delivery for one more attempt.

        The claim succeeds only if the stored record still has the version
        the caller read, is FAILED or RETRIED, and is not held by a live
        claim. A PENDING record is claimable once the lease of its first
        attempt has expired. A successful claim counts the attempt, sets
        RETRIED and pushes next_retry_at to lease_until so a worker that
        dies mid-attempt leaves the record due again later.

        Args:
            delivery: The record as the caller last read it.
            lease_until: New next_retry_at while the attempt is in flight.
            now: Current time, used to decide whether an old claim expired.

        Returns:
            The claimed record, or None if another worker won.
        """
        now = now or utc_now()
        async with self._claim_lock:
            current = await self.get_delivery(delivery.id)
            if current is None or current.version != delivery.version:
                return None
            if current.status not in RETRYABLE_STATUSES:
                return None
            in_flight = current.status == DeliveryStatus.PENDING or current.claim_token is not None
            if in_flight and (current.next_retry_at is None or current.next_retry_at > now):
                return None

            token = secrets.token_hex(8)
            current.attempts += 1
            current.status = DeliveryStatus.RETRIED
            current.next_retry_at = lease_until
            current.claim_token = token
            await self.store_delivery(current)

        confirmed = await self.get_delivery(current.id)
        if confirmed is None or confirmed.claim_token != token:
            logger.info("Lost claim on delivery %s", delivery.id)
            return None
        return confirmed

    async def terminate_delivery(self, delivery: Delivery, reason: str | None = None) -> bool:
        """Force a delivery to FAILED without another attempt.

        Guarded by version like a claim, so a record another worker just
        claimed is left alone.

        Returns:
            True if the record was terminated.
        """
        async with self._claim_lock:
            current = await self.get_delivery(delivery.id)
            if current is None or current.version != delivery.version:
                return False
            current.terminate(reason)
            await self.store_delivery(current)

        delivery.terminate(reason)
        delivery.version = current.version
        delivery.updated_at = current.updated_at
        return True

    async def get_due_deliveries(
        self,
        now: datetime | None = None,
        limit: int = 50,
    ) -> list[Delivery]:
        """Get retryable deliveries whose next_retry_at has passed.

        Covers FAILED and RETRIED records due for their next attempt, claims
        whose lease expired, and PENDING records whose first attempt never
        completed.

        Args:
            now: Cut-off time. Defaults to the current time.
            limit: Maximum records to return.

        Returns:
            Due deliveries, oldest next_retry_at first.
        """
        now = now or utc_now()
        payloads = await self._scroll_ordered(
            "deliveries",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="status",
                        match=models.MatchAny(any=[s.value for s in RETRYABLE_STATUSES]),
                    ),
                    models.FieldCondition(
                        key="next_retry_ts",
                        range=models.Range(lte=now.timestamp()),
                    ),
                ]
            ),
            order_key="next_retry_ts",
            direction=models.Direction.ASC,
            limit=limit,
        )
        return [self._payload_to_model(p, Delivery) for p in payloads]

    async def list_deliveries(
        self,
        endpoint_ids: Sequence[str],
        query: DeliveryQuery,
    ) -> tuple[list[Delivery], int]:
        """List deliveries of the given endpoints, newest first.

        Args:
            endpoint_ids: Endpoints whose deliveries may be returned.
            query: Filters and pagination.

        Returns:
            Tuple of (page of deliveries, total matching count).
        """
        if not endpoint_ids:
            return [], 0

        conditions: list[models.Condition] = [
            models.FieldCondition(
                key="endpoint_id",
                match=models.MatchAny(any=list(endpoint_ids)),
            )
        ]
        if query.event is not None:
            conditions.append(
                models.FieldCondition(key="event", match=models.MatchValue(value=query.event))
            )
        if query.status is not None:
            conditions.append(
                models.FieldCondition(
                    key="status", match=models.MatchValue(value=query.status.value)
                )
            )
        if query.since is not None or query.until is not None:
            conditions.append(
                models.FieldCondition(
                    key="created_ts",
                    range=models.Range(
                        gte=to_timestamp(query.since),
                        lte=to_timestamp(query.until),
                    ),
                )
            )

        delivery_filter = models.Filter(must=conditions)
        total = await self._count("deliveries", delivery_filter)
        if total <= query.offset:
            return [], total

        # Ordered scrolls have no cursor, so a page is cut from the head
        payloads = await self._scroll_ordered(
            "deliveries",
            delivery_filter,
            order_key="created_ts",
            direction=models.Direction.DESC,
            limit=query.offset + query.limit,
        )
        page = payloads[query.offset :]
        return [self._payload_to_model(p, Delivery) for p in page], total
