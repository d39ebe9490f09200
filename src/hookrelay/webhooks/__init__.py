"""Webhook delivery engine.

Provides signing, single-attempt dispatch, fan-out, the retry scheduler,
the endpoint health monitor and the timers that run the two sweeps.

Example:
    ```python
    from hookrelay.webhooks import Dispatcher, FanoutRouter

    dispatcher = Dispatcher(storage)
    router = FanoutRouter(storage, dispatcher)
    result = await router.deliver_webhook("post.published", {"id": "p_1"})
    ```
"""

from .dispatcher import (
    EVENT_HEADER,
    ID_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    Dispatcher,
    build_headers,
)
from .fanout import FanoutRouter, deliver_webhook
from .health import HealthMonitor
from .retry import RetryScheduler
from .signing import compute_signature, generate_secret, verify_signature
from .sweeper import SweepRunner

__all__ = [
    "EVENT_HEADER",
    "ID_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "Dispatcher",
    "FanoutRouter",
    "HealthMonitor",
    "RetryScheduler",
    "SweepRunner",
    "build_headers",
    "compute_signature",
    "deliver_webhook",
    "generate_secret",
    "verify_signature",
]
