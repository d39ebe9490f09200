"""hookrelay exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookRelayError for easy catching.

Transient delivery failures (non-2xx responses, timeouts, connection
errors) are never raised: they are recorded on the delivery record.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all hookrelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookrelay_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid input provided.

    Raised when endpoint registration or update input fails validation.
    Nothing is persisted when this is raised.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookRelayError):
    """Resource not found.

    Raised for unknown IDs and for resources owned by someone else, so the
    existence of another owner's endpoint is never revealed.

    Attributes:
        resource_type: Type of resource ("endpoint", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class ConflictError(HookRelayError):
    """Operation conflicts with the current resource state.

    Raised when retrying an already delivered (or exhausted) delivery, or
    when a concurrent retry claimed the delivery first.

    Attributes:
        resource_type: Type of resource.
        resource_id: ID of the conflicting resource.
    """

    code: str = "conflict"

    def __init__(self, resource_type: str, resource_id: str, message: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookRelayError):
    """Storage operation failed.

    Raised when a Qdrant operation fails after retries.
    """

    code: str = "storage_error"

