"""Qdrant storage client for hookrelay.

This module provides the main HookRelayStorage class that combines
endpoint and delivery operations through mixins.

Example:
    ```python
    from hookrelay.storage import HookRelayStorage

    async with HookRelayStorage() as storage:
        await storage.store_endpoint(endpoint)
        subscribers = await storage.list_active_subscribers("post.published")
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from .base import StorageBase
from .deliveries import DeliveryMixin
from .endpoints import EndpointMixin

logger = logging.getLogger(__name__)


class HookRelayStorage(EndpointMixin, DeliveryMixin, StorageBase):
    """Async Qdrant storage client for endpoints and delivery records.

    This class combines functionality from multiple mixins:
    - EndpointMixin: store_endpoint, get_endpoint, list_active_subscribers,
      record_endpoint_success/failure, set_endpoint_status, etc.
    - DeliveryMixin: store_delivery, get_delivery, claim_delivery,
      terminate_delivery, get_due_deliveries, list_deliveries

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> HookRelayStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def ping(self) -> bool:
        """Check that Qdrant answers."""
        try:
            await self.client.get_collections()
        except Exception:
            logger.warning("Qdrant health check failed", exc_info=True)
            return False
        return True
