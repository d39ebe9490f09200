"""Core hookrelay service layer.

This module provides WebhookService, which wires storage, the dispatcher,
fan-out, the retry scheduler and the health monitor behind one facade.

Example:
    ```python
    from hookrelay.service import WebhookService

    async with WebhookService.create() as hooks:
        endpoint = await hooks.create_endpoint(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["post.published"],
        )
        print(f"Signing secret: {endpoint.secret}")

        result = await hooks.deliver_webhook("post.published", {"post_id": "p_1"})
        print(f"{result.succeeded} delivered, {result.failed} failed")
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from hookrelay.config import Settings
from hookrelay.models import RetrySweepResult
from hookrelay.storage import HookRelayStorage
from hookrelay.webhooks import (
    Dispatcher,
    FanoutRouter,
    HealthMonitor,
    RetryScheduler,
    SweepRunner,
)

from .deliveries import DeliveriesMixin
from .endpoints import EndpointsMixin

logger = logging.getLogger(__name__)


@dataclass
class WebhookService(EndpointsMixin, DeliveriesMixin):
    """High-level facade over the webhook delivery engine.

    This service provides:
    - create/list/get/update/delete_endpoint(): Owner-scoped endpoint registry
    - test_endpoint(): Send a synthetic webhook.test event
    - list_deliveries() / retry_delivery(): Delivery log and manual retries
    - deliver_webhook(): Producer entry point, never raises
    - start_sweeps() / stop_sweeps(): Periodic retry and health sweeps

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        transport: Optional HTTP transport for outbound requests
            (httpx.MockTransport in tests).
    """

    storage: HookRelayStorage
    settings: Settings
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    dispatcher: Dispatcher = field(init=False, repr=False)
    router: FanoutRouter = field(init=False, repr=False)
    retry_scheduler: RetryScheduler = field(init=False, repr=False)
    health_monitor: HealthMonitor = field(init=False, repr=False)
    sweeper: SweepRunner = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Build the delivery components around the shared storage."""
        self.dispatcher = Dispatcher(self.storage, self.settings, transport=self.transport)
        self.router = FanoutRouter(self.storage, self.dispatcher, self.settings)
        self.retry_scheduler = RetryScheduler(self.storage, self.dispatcher, self.settings)
        self.health_monitor = HealthMonitor(self.storage, self.settings)
        self.sweeper = SweepRunner(self.retry_scheduler, self.health_monitor, self.settings)

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=HookRelayStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        if not self.storage.is_initialized:
            await self.storage.initialize()

    async def close(self) -> None:
        """Stop sweeps, wait for background fan-outs and release resources."""
        await self.sweeper.stop()
        await self.router.drain()
        await self.dispatcher.close()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def start_sweeps(self) -> None:
        """Start the periodic retry and health sweeps."""
        await self.sweeper.start()

    async def stop_sweeps(self) -> None:
        """Stop the periodic sweeps."""
        await self.sweeper.stop()

    async def run_retry_sweep(self) -> RetrySweepResult:
        """Run one retry sweep now (outside the timer)."""
        return await self.retry_scheduler.process_due()

    async def run_health_sweep(self) -> list[str]:
        """Run one health sweep now (outside the timer)."""
        return await self.health_monitor.sweep()


__all__ = ["WebhookService"]
