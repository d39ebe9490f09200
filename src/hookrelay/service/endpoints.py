"""Endpoint management mixin for WebhookService.

All operations are owner-scoped. An endpoint that belongs to someone
else is reported exactly like an unknown one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.models import Endpoint, EndpointUpdate

if TYPE_CHECKING:
    from hookrelay.config import Settings
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)


def to_validation_error(exc: PydanticValidationError) -> ValidationError:
    """Convert the first pydantic error to a hookrelay ValidationError."""
    errors = exc.errors()
    if not errors:
        return ValidationError("input", str(exc))
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return ValidationError(field, first.get("msg", "invalid value"))


class EndpointsMixin:
    """Mixin providing endpoint registration and management.

    Expects these attributes from the base class:
    - storage: HookRelayStorage
    - settings: Settings
    """

    storage: HookRelayStorage
    settings: Settings

    async def create_endpoint(
        self,
        owner_id: str,
        url: str,
        events: list[str],
        metadata: dict[str, Any] | None = None,
    ) -> Endpoint:
        """Register a new endpoint with a fresh signing secret.

        The returned endpoint carries the secret. It is the only response
        that should ever show it to the owner.

        Raises:
            ValidationError: If the URL or event list is invalid. Nothing
                is stored in that case.
        """
        try:
            endpoint = Endpoint(
                owner_id=owner_id,
                url=url,
                events=events,
                metadata=metadata or {},
            )
        except PydanticValidationError as e:
            raise to_validation_error(e) from e

        await self.storage.store_endpoint(endpoint)
        logger.info("Endpoint %s created for %s", endpoint.id, owner_id)
        return endpoint

    async def list_endpoints(self, owner_id: str) -> list[Endpoint]:
        """List an owner's endpoints, newest first, excluding deleted ones."""
        return await self.storage.list_endpoints(owner_id)

    async def get_endpoint(self, endpoint_id: str, owner_id: str) -> Endpoint:
        """Get one of the owner's endpoints.

        Raises:
            NotFoundError: If unknown, deleted, or owned by someone else.
        """
        endpoint = await self.storage.get_endpoint(endpoint_id)
        if endpoint is None or endpoint.deleted or endpoint.owner_id != owner_id:
            raise NotFoundError("endpoint", endpoint_id)
        return endpoint

    async def update_endpoint(
        self,
        endpoint_id: str,
        owner_id: str,
        patch: EndpointUpdate | dict[str, Any],
    ) -> Endpoint:
        """Patch url, events, status or metadata of an endpoint.

        Setting status to ACTIVE reactivates the endpoint, which resets
        its failure counter and clears the last failure reason.

        Raises:
            ValidationError: If the patch is invalid.
            NotFoundError: If unknown, deleted, or owned by someone else.
        """
        if not isinstance(patch, EndpointUpdate):
            try:
                patch = EndpointUpdate.model_validate(patch)
            except PydanticValidationError as e:
                raise to_validation_error(e) from e

        await self.get_endpoint(endpoint_id, owner_id)
        updated = await self.storage.update_endpoint(endpoint_id, patch)
        if updated is None:
            raise NotFoundError("endpoint", endpoint_id)

        logger.info(
            "Endpoint %s updated (%s), status %s",
            endpoint_id,
            ", ".join(sorted(patch.model_fields_set)),
            updated.status.value,
        )
        return updated

    async def delete_endpoint(self, endpoint_id: str, owner_id: str) -> None:
        """Soft-delete an endpoint.

        Its delivery records are kept. Pending retries are terminated by
        the next retry sweep.

        Raises:
            NotFoundError: If unknown, already deleted, or owned by someone else.
        """
        await self.get_endpoint(endpoint_id, owner_id)
        if not await self.storage.soft_delete_endpoint(endpoint_id):
            raise NotFoundError("endpoint", endpoint_id)
        logger.info("Endpoint %s deleted by %s", endpoint_id, owner_id)
