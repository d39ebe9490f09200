"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from hookrelay.config import Settings
from hookrelay.models import Endpoint
from hookrelay.service import WebhookService
from hookrelay.storage import HookRelayStorage

Responder = Callable[[httpx.Request], Any]


class Receiver:
    """In-process webhook receiver backed by httpx.MockTransport.

    Records every request and answers with ``status_code`` unless a
    custom ``responder`` is set. A responder may return an
    httpx.Response, raise (e.g. httpx.ConnectError), or be a coroutine
    function that sleeps to simulate a slow receiver.
    """

    def __init__(self, status_code: int = 200, body: str = "ok") -> None:
        self.status_code = status_code
        self.body = body
        self.responder: Responder | None = None
        self.requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responder is not None:
            result = self.responder(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return httpx.Response(self.status_code, text=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: isolated prefix, no background sweeps."""
    return Settings(
        env="test",
        collection_prefix="test",
        sweeps_enabled=False,
        request_timeout_seconds=2.0,
    )


@pytest.fixture
async def storage() -> AsyncIterator[HookRelayStorage]:
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = HookRelayStorage(prefix="test")
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
def receiver() -> Receiver:
    """A receiver that answers 200 OK."""
    return Receiver()


@pytest.fixture
async def service(
    storage: HookRelayStorage,
    test_settings: Settings,
    receiver: Receiver,
) -> AsyncIterator[WebhookService]:
    """WebhookService over in-memory storage, POSTing to the receiver."""
    svc = WebhookService(storage=storage, settings=test_settings, transport=receiver.transport)
    await svc.initialize()

    yield svc

    await svc.sweeper.stop()
    await svc.router.drain()
    await svc.dispatcher.close()


@pytest.fixture
def make_endpoint() -> Callable[..., Endpoint]:
    """Factory for Endpoint models with sensible defaults."""

    def _make(**overrides: Any) -> Endpoint:
        data: dict[str, Any] = {
            "owner_id": "user_1",
            "url": "https://receiver.example.com/hooks",
            "events": ["post.published"],
        }
        data.update(overrides)
        return Endpoint(**data)

    return _make
