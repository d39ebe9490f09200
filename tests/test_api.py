"""Tests for hookrelay REST API."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from hookrelay.api.app import create_app
from hookrelay.api.router import set_service
from hookrelay.config import Settings
from hookrelay.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from hookrelay.models import (
    Delivery,
    DeliveryPage,
    DeliveryStatus,
    Endpoint,
    EndpointStatus,
)
from hookrelay.service import WebhookService

OWNER_HEADERS = {"X-Owner-Id": "user_1"}


def make_endpoint(**overrides) -> Endpoint:
    data = {
        "owner_id": "user_1",
        "url": "https://receiver.example.com/hooks",
        "events": ["post.published"],
    }
    data.update(overrides)
    return Endpoint(**data)


def make_delivery(**overrides) -> Delivery:
    data = {
        "endpoint_id": "whk_abc",
        "owner_id": "user_1",
        "event": "post.published",
        "payload": '{"event":"post.published"}',
        "status": DeliveryStatus.DELIVERED,
        "response_status": 200,
        "delivered_at": datetime(2026, 1, 1, tzinfo=UTC),
        "claim_token": "abc123",
        "version": 3,
    }
    data.update(overrides)
    return Delivery(**data)


@pytest.fixture
def mock_service():
    """Create a mock WebhookService."""
    service = MagicMock(spec=WebhookService)
    service.create_endpoint = AsyncMock()
    service.list_endpoints = AsyncMock()
    service.get_endpoint = AsyncMock()
    service.update_endpoint = AsyncMock()
    service.delete_endpoint = AsyncMock()
    service.test_endpoint = AsyncMock()
    service.list_deliveries = AsyncMock()
    service.retry_delivery = AsyncMock()
    service.storage = MagicMock()
    service.storage.ping = AsyncMock(return_value=True)
    service.sweeper = MagicMock()
    service.sweeper.running = True
    return service


@pytest.fixture
def client(mock_service):
    """Test client over the full app (error handlers included), lifespan not run."""
    app = create_app(Settings(collection_prefix="test", sweeps_enabled=False))
    set_service(mock_service)
    yield TestClient(app)
    set_service(None)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_healthy(self, client):
        """Should report healthy when Qdrant answers."""
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_connected"] is True
        assert data["sweeps_running"] is True
        assert "version" in data

    def test_storage_down(self, client, mock_service):
        """Should report unhealthy when Qdrant does not answer."""
        mock_service.storage.ping.return_value = False

        data = client.get("/api/v1/health").json()

        assert data["status"] == "unhealthy"
        assert data["storage_connected"] is False

    def test_service_not_initialized(self):
        """Should return unhealthy when the service is not ready."""
        app = create_app(Settings(collection_prefix="test"))
        set_service(None)

        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_routes_503_without_service(self):
        """Other routes should return 503 before startup."""
        app = create_app(Settings(collection_prefix="test"))
        set_service(None)

        response = TestClient(app).get("/api/v1/webhooks/endpoints", headers=OWNER_HEADERS)

        assert response.status_code == 503


class TestEndpointRoutes:
    """Tests for /webhooks/endpoints."""

    def test_create_returns_secret(self, client, mock_service):
        """Registration should return 201 and the secret, once."""
        endpoint = make_endpoint()
        mock_service.create_endpoint.return_value = endpoint

        response = client.post(
            "/api/v1/webhooks/endpoints",
            json={"url": str(endpoint.url), "events": ["post.published"]},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == endpoint.id
        assert data["secret"] == endpoint.secret
        assert data["status"] == "ACTIVE"
        assert "owner_id" not in data
        mock_service.create_endpoint.assert_called_once_with(
            owner_id="user_1",
            url="https://receiver.example.com/hooks",
            events=["post.published"],
            metadata={},
        )

    def test_create_validation_error(self, client, mock_service):
        """Service validation errors should map to 400."""
        mock_service.create_endpoint.side_effect = ValidationError("url", "invalid URL")

        response = client.post(
            "/api/v1/webhooks/endpoints",
            json={"url": "nope", "events": ["post.published"]},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert response.json()["error"]["field"] == "url"

    def test_create_requires_owner(self, client, mock_service):
        """A missing X-Owner-Id header should be rejected."""
        response = client.post(
            "/api/v1/webhooks/endpoints",
            json={"url": "https://x.example.com", "events": ["a"]},
        )

        assert response.status_code == 422
        mock_service.create_endpoint.assert_not_called()

    def test_list_hides_secret(self, client, mock_service):
        """Listing should never include secrets."""
        mock_service.list_endpoints.return_value = [make_endpoint(), make_endpoint()]

        response = client.get("/api/v1/webhooks/endpoints", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert all("secret" not in e for e in data["endpoints"])
        mock_service.list_endpoints.assert_called_once_with("user_1")

    def test_get_hides_secret(self, client, mock_service):
        """Reading an endpoint should show health but not the secret."""
        endpoint = make_endpoint(
            status=EndpointStatus.FAILING,
            consecutive_failures=12,
            last_failure_reason="HTTP 500",
        )
        mock_service.get_endpoint.return_value = endpoint

        response = client.get(f"/api/v1/webhooks/endpoints/{endpoint.id}", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert "secret" not in data
        assert data["status"] == "FAILING"
        assert data["consecutive_failures"] == 12
        assert data["last_failure_reason"] == "HTTP 500"

    def test_get_not_found(self, client, mock_service):
        """Unknown or foreign endpoints should map to 404."""
        mock_service.get_endpoint.side_effect = NotFoundError("endpoint", "whk_x")

        response = client.get("/api/v1/webhooks/endpoints/whk_x", headers=OWNER_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "whk_x"

    def test_patch_passes_only_set_fields(self, client, mock_service):
        """PATCH should forward only the fields present in the body."""
        endpoint = make_endpoint()
        mock_service.update_endpoint.return_value = endpoint

        response = client.patch(
            f"/api/v1/webhooks/endpoints/{endpoint.id}",
            json={"status": "ACTIVE"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 200
        mock_service.update_endpoint.assert_called_once_with(
            endpoint.id, "user_1", {"status": EndpointStatus.ACTIVE}
        )

    def test_patch_rejects_unknown_fields(self, client, mock_service):
        """PATCH should not accept fields outside the patchable set."""
        response = client.patch(
            "/api/v1/webhooks/endpoints/whk_x",
            json={"secret": "whsec_mine"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 422
        mock_service.update_endpoint.assert_not_called()

    def test_delete(self, client, mock_service):
        """DELETE should return 204."""
        response = client.delete("/api/v1/webhooks/endpoints/whk_x", headers=OWNER_HEADERS)

        assert response.status_code == 204
        mock_service.delete_endpoint.assert_called_once_with("whk_x", "user_1")

    def test_delete_not_found(self, client, mock_service):
        """Deleting an unknown endpoint should return 404."""
        mock_service.delete_endpoint.side_effect = NotFoundError("endpoint", "whk_x")

        response = client.delete("/api/v1/webhooks/endpoints/whk_x", headers=OWNER_HEADERS)

        assert response.status_code == 404

    def test_test_endpoint(self, client, mock_service):
        """The test route should return the resulting delivery."""
        delivery = make_delivery(event="webhook.test")
        mock_service.test_endpoint.return_value = delivery

        response = client.post("/api/v1/webhooks/endpoints/whk_abc/test", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == delivery.id
        assert data["event"] == "webhook.test"
        assert data["status"] == "DELIVERED"


class TestDeliveryRoutes:
    """Tests for /webhooks/deliveries."""

    def test_list(self, client, mock_service):
        """Listing should return a page without internal fields."""
        delivery = make_delivery()
        mock_service.list_deliveries.return_value = DeliveryPage(
            items=[delivery], total=1, page=1, limit=20
        )

        response = client.get("/api/v1/webhooks/deliveries", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["id"] == delivery.id
        assert "claim_token" not in item
        assert "version" not in item
        assert "owner_id" not in item

    def test_list_filters(self, client, mock_service):
        """Query parameters should become a DeliveryQuery."""
        mock_service.list_deliveries.return_value = DeliveryPage(page=2, limit=5)

        response = client.get(
            "/api/v1/webhooks/deliveries",
            params={
                "endpoint_id": "whk_abc",
                "event": "post.published",
                "status": "FAILED",
                "page": 2,
                "limit": 5,
            },
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 200
        owner_id, query = mock_service.list_deliveries.call_args.args
        assert owner_id == "user_1"
        assert query.endpoint_id == "whk_abc"
        assert query.event == "post.published"
        assert query.status == DeliveryStatus.FAILED
        assert query.page == 2
        assert query.limit == 5

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"page": 0}])
    def test_list_bounds(self, client, mock_service, params):
        """Out-of-range pagination should be rejected."""
        response = client.get(
            "/api/v1/webhooks/deliveries", params=params, headers=OWNER_HEADERS
        )

        assert response.status_code == 422
        mock_service.list_deliveries.assert_not_called()

    def test_retry(self, client, mock_service):
        """A successful manual retry should return the updated record."""
        mock_service.retry_delivery.return_value = make_delivery(attempts=2)

        response = client.post("/api/v1/webhooks/deliveries/dlv_x/retry", headers=OWNER_HEADERS)

        assert response.status_code == 200
        assert response.json()["attempts"] == 2
        mock_service.retry_delivery.assert_called_once_with("dlv_x", "user_1")

    def test_retry_conflict(self, client, mock_service):
        """Retrying a delivered record should return 409."""
        mock_service.retry_delivery.side_effect = ConflictError(
            "delivery", "dlv_x", "Delivery already succeeded"
        )

        response = client.post("/api/v1/webhooks/deliveries/dlv_x/retry", headers=OWNER_HEADERS)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

    def test_storage_error_is_500(self, client, mock_service):
        """Other hookrelay errors should map to 500."""
        mock_service.retry_delivery.side_effect = StorageError("qdrant down")

        response = client.post("/api/v1/webhooks/deliveries/dlv_x/retry", headers=OWNER_HEADERS)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "storage_error"


class TestLifespan:
    """Tests for app startup and shutdown."""

    @pytest.mark.parametrize("enabled", [True, False])
    def test_sweeps_follow_setting(self, mock_service, monkeypatch, enabled):
        """Only a process with sweeps enabled should start them."""
        mock_service.initialize = AsyncMock()
        mock_service.start_sweeps = AsyncMock()
        mock_service.close = AsyncMock()
        monkeypatch.setattr(WebhookService, "create", MagicMock(return_value=mock_service))
        app = create_app(Settings(collection_prefix="test", sweeps_enabled=enabled))

        with TestClient(app):
            pass

        assert mock_service.start_sweeps.await_count == (1 if enabled else 0)
        mock_service.close.assert_awaited_once()
