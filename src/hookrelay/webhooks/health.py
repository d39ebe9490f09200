"""Endpoint health monitor: quarantines chronically failing endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.models import EndpointStatus

if TYPE_CHECKING:
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Moves ACTIVE endpoints past the failure threshold to FAILING.

    In-flight retries of a quarantined endpoint are not touched here. The
    retry scheduler terminates them when it sees the endpoint is no longer
    ACTIVE.
    """

    def __init__(self, storage: HookRelayStorage, settings: Settings | None = None) -> None:
        self._storage = storage
        self._settings = settings or default_settings

    async def sweep(self) -> list[str]:
        """Quarantine every endpoint at or above the failure threshold.

        Returns:
            IDs of the endpoints moved to FAILING.
        """
        threshold = self._settings.failure_threshold
        candidates = await self._storage.list_quarantine_candidates(threshold)

        quarantined: list[str] = []
        for endpoint in candidates:
            changed = await self._storage.set_endpoint_status(
                endpoint.id,
                EndpointStatus.FAILING,
                expected_status=EndpointStatus.ACTIVE,
                min_consecutive_failures=threshold,
            )
            if changed:
                quarantined.append(endpoint.id)
                logger.warning(
                    "Endpoint %s quarantined after %d consecutive failures",
                    endpoint.id,
                    endpoint.consecutive_failures,
                )

        if quarantined:
            logger.info("Health sweep quarantined %d endpoints", len(quarantined))
        return quarantined
