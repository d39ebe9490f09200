"""Fan-out of one event to every ACTIVE subscriber.

The envelope is serialized once and the same bytes go to every endpoint.
Dispatches run concurrently with settle-all semantics: one endpoint
failing never stops the others, and nothing is raised to the producer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.models import Delivery, DeliveryStatus, Endpoint, Envelope, FanoutResult

from .dispatcher import Dispatcher

if TYPE_CHECKING:
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)


class FanoutRouter:
    """Routes events to subscribed endpoints through a Dispatcher.

    Example:
        ```python
        router = FanoutRouter(storage, dispatcher)
        result = await router.deliver_webhook("post.published", {"id": "p_1"})

        # Producers that must not wait
        router.deliver_webhook_background("post.published", {"id": "p_1"})
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
        self._semaphore = asyncio.Semaphore(self._settings.fanout_max_concurrent)
        self._background: set[asyncio.Task[FanoutResult]] = set()

    @property
    def pending_background(self) -> int:
        """Number of background fan-outs still running."""
        return len(self._background)

    async def deliver_webhook(self, event: str, data: Any = None) -> FanoutResult:
        """Deliver an event to every ACTIVE endpoint subscribed to it.

        Never raises. Per-endpoint failures are recorded on their delivery
        records and counted in the result.

        Args:
            event: Event type, e.g. "post.published".
            data: JSON-serializable event payload.

        Returns:
            Aggregate counts and the IDs of the created delivery records.
        """
        result = FanoutResult(event=event)
        try:
            endpoints = await self._storage.list_active_subscribers(event)
            if not endpoints:
                logger.debug("No active endpoints subscribed to %s", event)
                return result

            body = Envelope(event=event, data=data if data is not None else {}).to_body()
        except Exception:
            logger.exception("Failed to prepare fan-out of %s", event)
            return result

        result.matched = len(endpoints)
        outcomes = await asyncio.gather(
            *(self._deliver_one(endpoint, event, body) for endpoint in endpoints),
            return_exceptions=True,
        )

        for endpoint, outcome in zip(endpoints, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.error(
                    "Delivery of %s to %s raised: %r",
                    event,
                    endpoint.id,
                    outcome,
                )
                continue
            result.delivery_ids.append(outcome.id)
            if outcome.status == DeliveryStatus.DELIVERED:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "Fan-out of %s complete: %d endpoints, %d succeeded, %d failed",
            event,
            result.matched,
            result.succeeded,
            result.failed,
        )
        return result

    def deliver_webhook_background(
        self, event: str, data: Any = None
    ) -> asyncio.Task[FanoutResult]:
        """Start a fan-out without waiting for it.

        The task is referenced until it finishes so it is not garbage
        collected mid-flight.
        """
        task = asyncio.create_task(self.deliver_webhook(event, data), name=f"fanout:{event}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for all background fan-outs to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _deliver_one(self, endpoint: Endpoint, event: str, body: bytes) -> Delivery:
        async with self._semaphore:
            return await self._dispatcher.deliver(endpoint, event, body)


async def deliver_webhook(
    storage: HookRelayStorage,
    event: str,
    data: Any = None,
    settings: Settings | None = None,
) -> FanoutResult:
    """Convenience function to fan out one event with a throwaway dispatcher.

    Args:
        storage: Initialized HookRelayStorage.
        event: Event type.
        data: Event-specific payload.
        settings: Delivery settings. Defaults to the global settings.

    Returns:
        Aggregate fan-out result.
    """
    dispatcher = Dispatcher(storage, settings)
    try:
        router = FanoutRouter(storage, dispatcher, settings)
        return await router.deliver_webhook(event, data)
    finally:
        await dispatcher.close()
