"""Single delivery attempts: sign, POST, record the outcome.

The dispatcher never raises for a failed delivery. Non-2xx responses,
timeouts, connection errors and unexpected exceptions while sending are
all recorded on the delivery record and scheduled for retry while
attempts remain.

Example:
    ```python
    dispatcher = Dispatcher(storage)
    delivery = await dispatcher.deliver(endpoint, "post.published", body)
    await dispatcher.close()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.logging import bind_context, unbind_context
from hookrelay.models import Delivery, DeliveryStatus, Endpoint, utc_now

from .signing import compute_signature

if TYPE_CHECKING:
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
ID_HEADER = "X-Webhook-ID"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def build_headers(
    delivery: Delivery,
    secret: str,
    timestamp: datetime,
    user_agent: str,
) -> dict[str, str]:
    """Build the signed request headers for one attempt."""
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: compute_signature(secret, delivery.body),
        EVENT_HEADER: delivery.event,
        ID_HEADER: delivery.id,
        TIMESTAMP_HEADER: timestamp.isoformat(),
        "User-Agent": user_agent,
    }


class Dispatcher:
    """Performs single delivery attempts against one endpoint.

    The delivery record is written before the endpoint's health counters.
    A failed health write is logged and never reverts the record.
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: Storage for delivery records and endpoint health.
            settings: Delivery settings. Defaults to the global settings.
            client: Shared HTTP client. One is created (and owned) if omitted.
            transport: Transport for the owned client, e.g. httpx.MockTransport.
        """
        self._storage = storage
        self._settings = settings or default_settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            timeout=self._settings.request_timeout_seconds,
            follow_redirects=False,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    async def close(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()

    async def deliver(self, endpoint: Endpoint, event: str, body: bytes) -> Delivery:
        """Make the first delivery attempt of an event to an endpoint.

        The record is persisted as PENDING before the request so that the
        X-Webhook-ID header carries its real ID. The PENDING write carries a
        claim lease in next_retry_at, so a record left PENDING by a crash or
        a failed final write becomes due for the retry sweep.

        Args:
            endpoint: Destination endpoint.
            event: Event type.
            body: Serialized envelope bytes, shared across endpoints.

        Returns:
            The delivery record after the attempt.
        """
        delivery = Delivery(
            endpoint_id=endpoint.id,
            owner_id=endpoint.owner_id,
            event=event,
            payload=body.decode("utf-8"),
            status=DeliveryStatus.PENDING,
            attempts=1,
            next_retry_at=utc_now() + timedelta(seconds=self._settings.claim_lease_seconds),
        )
        await self._storage.store_delivery(delivery)
        return await self._attempt(endpoint, delivery)

    async def redeliver(self, endpoint: Endpoint, delivery: Delivery) -> Delivery:
        """Resend a claimed delivery record with its original body bytes.

        The caller must already have claimed the record, which counts the
        attempt.
        """
        return await self._attempt(endpoint, delivery)

    async def _attempt(self, endpoint: Endpoint, delivery: Delivery) -> Delivery:
        bind_context(delivery_id=delivery.id, endpoint_id=endpoint.id, event=delivery.event)
        try:
            return await self._send(endpoint, delivery)
        finally:
            unbind_context("delivery_id", "endpoint_id", "event")

    async def _send(self, endpoint: Endpoint, delivery: Delivery) -> Delivery:
        timeout = self._settings.request_timeout_seconds
        headers = build_headers(delivery, endpoint.secret, utc_now(), self._settings.user_agent)
        delivery.request_headers = headers

        response_status: int | None = None
        response_body: str | None = None
        error: str | None = None

        start = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                response = await self._client.post(
                    str(endpoint.url),
                    content=delivery.body,
                    headers=headers,
                )
            response_status = response.status_code
            response_body = response.text
            if not 200 <= response_status < 300:
                error = f"HTTP {response_status}"
        except (TimeoutError, httpx.TimeoutException):
            error = f"Request timed out after {timeout:g}s"
        except httpx.HTTPError as e:
            error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        except Exception as e:
            logger.exception("Unexpected error delivering %s to %s", delivery.id, endpoint.id)
            error = f"Unexpected error: {e}"
        duration_ms = int((time.monotonic() - start) * 1000)

        now = utc_now()
        max_body = self._settings.response_body_max_length
        if error is None and response_status is not None:
            delivery.mark_delivered(
                response_status=response_status,
                response_body=response_body,
                duration_ms=duration_ms,
                max_body_length=max_body,
                at=now,
            )
            logger.info(
                "Webhook delivered: %s %s to %s (status %d, attempt %d)",
                delivery.event,
                delivery.id,
                endpoint.id,
                response_status,
                delivery.attempts,
            )
        else:
            error = error or "No response"
            if delivery.attempts < self._settings.max_attempts:
                delay = self._settings.retry_delay_minutes(delivery.attempts)
                delivery.mark_retrying(
                    next_retry_at=now + timedelta(minutes=delay),
                    error=error,
                    response_status=response_status,
                    response_body=response_body,
                    duration_ms=duration_ms,
                    max_body_length=max_body,
                )
                logger.info(
                    "Webhook failed, retry in %d min: %s to %s (attempt %d): %s",
                    delay,
                    delivery.id,
                    endpoint.id,
                    delivery.attempts,
                    error,
                )
            else:
                delivery.mark_failed(
                    error=error,
                    response_status=response_status,
                    response_body=response_body,
                    duration_ms=duration_ms,
                    max_body_length=max_body,
                )
                logger.warning(
                    "Webhook failed permanently: %s to %s after %d attempts: %s",
                    delivery.id,
                    endpoint.id,
                    delivery.attempts,
                    error,
                )

        await self._storage.store_delivery(delivery)
        await self._record_health(endpoint, error, now)
        return delivery

    async def _record_health(self, endpoint: Endpoint, error: str | None, at: datetime) -> None:
        try:
            if error is None:
                await self._storage.record_endpoint_success(endpoint.id, at)
            else:
                await self._storage.record_endpoint_failure(
                    endpoint.id,
                    error,
                    at,
                    self._settings.failure_reason_max_length,
                )
        except Exception:
            logger.warning("Failed to update health of endpoint %s", endpoint.id, exc_info=True)
