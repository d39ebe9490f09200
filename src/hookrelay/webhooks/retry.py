"""Retry scheduler: re-sends due FAILED/RETRIED deliveries.

Each sweep takes a bounded batch of due records, oldest first. Records
that ran out of attempts, or whose endpoint is gone or no longer ACTIVE,
are terminated as FAILED. The rest are claimed and re-sent with bounded
concurrency.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.models import Delivery, Endpoint, RetrySweepResult, utc_now

from .dispatcher import Dispatcher

if TYPE_CHECKING:
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)

Outcome = Literal["dispatched", "terminated", "skipped"]


class RetryScheduler:
    """Processes due delivery retries.

    Example:
        ```python
        scheduler = RetryScheduler(storage, dispatcher)
        result = await scheduler.process_due()
        print(result.dispatched, result.terminated)
        ```
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        dispatcher: Dispatcher,
        settings: Settings | None = None,
    ) -> None:
        self._storage = storage
        self._dispatcher = dispatcher
        self._settings = settings or default_settings

    async def process_due(self, now: datetime | None = None) -> RetrySweepResult:
        """Run one retry sweep.

        Args:
            now: Sweep time. Defaults to the current time.

        Returns:
            Counts of processed, dispatched, terminated and skipped records.
        """
        now = now or utc_now()
        due = await self._storage.get_due_deliveries(now, limit=self._settings.retry_batch_size)
        result = RetrySweepResult(processed=len(due))
        if not due:
            return result

        endpoints: dict[str, Endpoint | None] = {}
        for endpoint_id in {d.endpoint_id for d in due}:
            endpoints[endpoint_id] = await self._storage.get_endpoint(endpoint_id)

        semaphore = asyncio.Semaphore(self._settings.retry_max_concurrent)
        outcomes = await asyncio.gather(
            *(
                self._process_one(delivery, endpoints.get(delivery.endpoint_id), now, semaphore)
                for delivery in due
            ),
            return_exceptions=True,
        )

        for delivery, outcome in zip(due, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.errors += 1
                logger.error("Retry of delivery %s raised: %r", delivery.id, outcome)
            elif outcome == "dispatched":
                result.dispatched += 1
            elif outcome == "terminated":
                result.terminated += 1
            else:
                result.skipped += 1

        logger.info(
            "Retry sweep: %d due, %d dispatched, %d terminated, %d skipped, %d errors",
            result.processed,
            result.dispatched,
            result.terminated,
            result.skipped,
            result.errors,
        )
        return result

    async def retry(
        self,
        delivery: Delivery,
        endpoint: Endpoint,
        now: datetime | None = None,
    ) -> Delivery | None:
        """Claim a delivery and make one more attempt.

        Returns:
            The record after the attempt, or None if the claim was lost.
        """
        now = now or utc_now()
        lease_until = now + timedelta(seconds=self._settings.claim_lease_seconds)
        claimed = await self._storage.claim_delivery(delivery, lease_until, now)
        if claimed is None:
            return None
        return await self._dispatcher.redeliver(endpoint, claimed)

    async def _process_one(
        self,
        delivery: Delivery,
        endpoint: Endpoint | None,
        now: datetime,
        semaphore: asyncio.Semaphore,
    ) -> Outcome:
        if delivery.attempts >= self._settings.max_attempts:
            return await self._terminate(delivery, None)
        if endpoint is None or endpoint.deleted:
            return await self._terminate(delivery, "Endpoint deleted")
        if not endpoint.is_active:
            return await self._terminate(delivery, f"Endpoint is {endpoint.status.value}")

        async with semaphore:
            retried = await self.retry(delivery, endpoint, now)
        if retried is None:
            logger.debug("Delivery %s claimed by another worker", delivery.id)
            return "skipped"
        return "dispatched"

    async def _terminate(self, delivery: Delivery, reason: str | None) -> Outcome:
        if not await self._storage.terminate_delivery(delivery, reason):
            return "skipped"
        logger.info(
            "Delivery %s terminated after %d attempts: %s",
            delivery.id,
            delivery.attempts,
            reason or delivery.error,
        )
        return "terminated"
