"""Storage backends for hookrelay.

This module persists endpoints and delivery records to Qdrant.

Example:
    ```python
    from hookrelay.storage import HookRelayStorage

    async with HookRelayStorage() as storage:
        due = await storage.get_due_deliveries(limit=50)
    ```
"""

from .base import COLLECTION_NAMES
from .client import HookRelayStorage
from .retry import storage_operation, storage_retry

__all__ = [
    "COLLECTION_NAMES",
    "HookRelayStorage",
    "storage_operation",
    "storage_retry",
]
