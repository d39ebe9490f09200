"""Delivery mixin for WebhookService.

Covers the producer entry points (deliver_webhook and its background
variant) and the owner-facing delivery operations: test events, the
delivery log and manual retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import ConflictError, NotFoundError
from hookrelay.models import (
    Delivery,
    DeliveryPage,
    DeliveryQuery,
    DeliveryStatus,
    Envelope,
    FanoutResult,
)

if TYPE_CHECKING:
    from hookrelay.config import Settings
    from hookrelay.storage import HookRelayStorage
    from hookrelay.webhooks import Dispatcher, FanoutRouter, RetryScheduler

logger = logging.getLogger(__name__)

TEST_EVENT = "webhook.test"
TEST_MESSAGE = "This is a test webhook delivery from hookrelay"


class DeliveriesMixin:
    """Mixin providing delivery operations.

    Expects these attributes from the base class:
    - storage: HookRelayStorage
    - settings: Settings
    - dispatcher / router / retry_scheduler
    - get_endpoint(endpoint_id, owner_id) -> Endpoint
    """

    storage: HookRelayStorage
    settings: Settings
    dispatcher: Dispatcher
    router: FanoutRouter
    retry_scheduler: RetryScheduler
    get_endpoint: Any

    async def deliver_webhook(self, event: str, data: Any = None) -> FanoutResult:
        """Deliver an event to every ACTIVE subscriber. Never raises.

        Example:
            ```python
            result = await service.deliver_webhook("post.published", {"post_id": "p_1"})
            print(f"{result.succeeded}/{result.matched} delivered")
            ```
        """
        return await self.router.deliver_webhook(event, data)

    def deliver_webhook_background(
        self, event: str, data: Any = None
    ) -> asyncio.Task[FanoutResult]:
        """Start a fan-out without waiting for it. Never raises."""
        return self.router.deliver_webhook_background(event, data)

    async def test_endpoint(self, endpoint_id: str, owner_id: str) -> Delivery:
        """Send a synthetic webhook.test event to one endpoint.

        The endpoint's subscriptions and status are ignored. The attempt
        creates a normal delivery record and counts toward endpoint health.

        Raises:
            NotFoundError: If unknown, deleted, or owned by someone else.
        """
        endpoint = await self.get_endpoint(endpoint_id, owner_id)
        body = Envelope(
            event=TEST_EVENT,
            data={"message": TEST_MESSAGE, "endpoint_id": endpoint.id},
        ).to_body()
        return await self.dispatcher.deliver(endpoint, TEST_EVENT, body)

    async def list_deliveries(
        self,
        owner_id: str,
        query: DeliveryQuery | None = None,
    ) -> DeliveryPage:
        """List deliveries to the owner's non-deleted endpoints, newest first.

        An endpoint_id filter naming someone else's (or a deleted)
        endpoint yields an empty page rather than an error.
        """
        query = query or DeliveryQuery()
        endpoint_ids = await self.storage.list_endpoint_ids(owner_id)
        if query.endpoint_id is not None:
            endpoint_ids = [eid for eid in endpoint_ids if eid == query.endpoint_id]

        items, total = await self.storage.list_deliveries(endpoint_ids, query)
        return DeliveryPage(items=items, total=total, page=query.page, limit=query.limit)

    async def get_delivery(self, delivery_id: str, owner_id: str) -> Delivery:
        """Get one delivery record of the owner's.

        Raises:
            NotFoundError: If unknown or owned by someone else.
        """
        delivery = await self.storage.get_delivery(delivery_id)
        if delivery is None or delivery.owner_id != owner_id:
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def retry_delivery(self, delivery_id: str, owner_id: str) -> Delivery:
        """Retry a delivery now, outside the retry schedule.

        The attempt runs synchronously and counts toward max_attempts.

        Raises:
            NotFoundError: If the delivery is unknown or not the owner's, or
                its endpoint has been deleted.
            ConflictError: If the delivery already succeeded, has no
                attempts left, or is being retried by another worker.
        """
        delivery = await self.get_delivery(delivery_id, owner_id)

        if delivery.status == DeliveryStatus.DELIVERED:
            raise ConflictError("delivery", delivery_id, "Delivery already succeeded")
        if delivery.attempts >= self.settings.max_attempts:
            raise ConflictError(
                "delivery",
                delivery_id,
                f"Delivery has used all {self.settings.max_attempts} attempts",
            )

        endpoint = await self.storage.get_endpoint(delivery.endpoint_id)
        if endpoint is None or endpoint.deleted or endpoint.owner_id != owner_id:
            raise NotFoundError("endpoint", delivery.endpoint_id)

        retried = await self.retry_scheduler.retry(delivery, endpoint)
        if retried is None:
            raise ConflictError(
                "delivery",
                delivery_id,
                "Delivery is being retried by another worker",
            )

        logger.info(
            "Manual retry of %s by %s: %s (attempt %d)",
            delivery_id,
            owner_id,
            retried.status.value,
            retried.attempts,
        )
        return retried
