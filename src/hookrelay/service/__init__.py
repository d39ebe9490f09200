"""hookrelay service layer.

Provides the high-level WebhookService for managing endpoints and
delivering events.

Example:
    ```python
    from hookrelay.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.deliver_webhook("post.published", {"post_id": "p_1"})
    ```
"""

from .base import WebhookService
from .deliveries import TEST_EVENT
from .endpoints import to_validation_error

__all__ = [
    "TEST_EVENT",
    "WebhookService",
    "to_validation_error",
]
