"""Tests for hookrelay exception hierarchy."""

import pytest

from hookrelay.exceptions import (
    ConflictError,
    HookRelayError,
    NotFoundError,
    StorageError,
    ValidationError,
)


class TestHookRelayError:
    """Tests for the base HookRelayError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = HookRelayError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_error_code(self):
        """Should have default error code."""
        assert HookRelayError("test").code == "hookrelay_error"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert HookRelayError("Something went wrong").to_dict() == {
            "error": {
                "code": "hookrelay_error",
                "message": "Something went wrong",
            }
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from HookRelayError."""
        exceptions = [
            ValidationError("url", "invalid"),
            NotFoundError("endpoint", "whk_1"),
            ConflictError("delivery", "dlv_1", "already delivered"),
            StorageError("failed"),
        ]
        for exc in exceptions:
            assert isinstance(exc, HookRelayError)

    def test_can_catch_with_base(self):
        """Specific errors can be caught as HookRelayError."""
        with pytest.raises(HookRelayError):
            raise NotFoundError("delivery", "dlv_x")


class TestValidationError:
    """Tests for ValidationError."""

    def test_field_in_message(self):
        """Message should be prefixed with the field name."""
        error = ValidationError("events", "at least one event type is required")
        assert error.field == "events"
        assert error.message == "events: at least one event type is required"
        assert error.code == "validation_error"

    def test_to_dict_includes_field(self):
        """to_dict should expose the failing field."""
        result = ValidationError("url", "bad").to_dict()
        assert result["error"]["field"] == "url"
        assert result["error"]["code"] == "validation_error"


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_attributes(self):
        """Should carry the resource type and ID."""
        error = NotFoundError("endpoint", "whk_abc")
        assert error.resource_type == "endpoint"
        assert error.resource_id == "whk_abc"
        assert error.message == "endpoint not found: whk_abc"

    def test_to_dict(self):
        """to_dict should include resource details."""
        assert NotFoundError("delivery", "dlv_1").to_dict() == {
            "error": {
                "code": "not_found",
                "resource_type": "delivery",
                "resource_id": "dlv_1",
                "message": "delivery not found: dlv_1",
            }
        }


class TestConflictError:
    """Tests for ConflictError."""

    def test_attributes(self):
        """Should carry the resource and a free-form message."""
        error = ConflictError("delivery", "dlv_1", "Delivery already succeeded")
        assert error.resource_id == "dlv_1"
        assert error.message == "Delivery already succeeded"
        assert error.code == "conflict"
        assert error.to_dict()["error"]["resource_type"] == "delivery"


class TestStorageError:
    """Tests for StorageError."""

    def test_code(self):
        """Should use the storage_error code."""
        assert StorageError("qdrant down").code == "storage_error"
