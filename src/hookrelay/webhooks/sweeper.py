"""Timers that drive the retry and health sweeps.

The two sweeps run as independent asyncio tasks and share nothing but
storage. A sweep that raises is logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.logging import bind_context, clear_context

from .health import HealthMonitor
from .retry import RetryScheduler

logger = logging.getLogger(__name__)


class SweepRunner:
    """Runs RetryScheduler.process_due and HealthMonitor.sweep on intervals.

    Example:
        ```python
        runner = SweepRunner(scheduler, monitor)
        await runner.start()
        ...
        await runner.stop()
        ```
    """

    def __init__(
        self,
        retry_scheduler: RetryScheduler,
        health_monitor: HealthMonitor,
        settings: Settings | None = None,
    ) -> None:
        self._retry_scheduler = retry_scheduler
        self._health_monitor = health_monitor
        self._settings = settings or default_settings
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start both sweep loops. Calling start twice is a no-op."""
        if self.running:
            return

        self._tasks = [
            asyncio.create_task(
                self._loop(
                    "retry",
                    self._settings.retry_interval_seconds,
                    self._retry_scheduler.process_due,
                ),
                name="hookrelay:retry-sweep",
            ),
            asyncio.create_task(
                self._loop(
                    "health",
                    self._settings.health_interval_seconds,
                    self._health_monitor.sweep,
                ),
                name="hookrelay:health-sweep",
            ),
        ]
        logger.info(
            "Sweeps started (retry every %gs, health every %gs)",
            self._settings.retry_interval_seconds,
            self._settings.health_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel both sweep loops and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Sweeps stopped")

    async def _loop(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
    ) -> None:
        bind_context(sweep=name)
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    await tick()
                except Exception:
                    logger.exception("%s sweep failed", name.capitalize())
        finally:
            clear_context()
