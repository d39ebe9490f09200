"""Tests for the sweep timers."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import structlog

from hookrelay.config import Settings
from hookrelay.models import RetrySweepResult
from hookrelay.webhooks import HealthMonitor, RetryScheduler, SweepRunner


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with sweep intervals short enough for tests."""
    return Settings(
        collection_prefix="test",
        retry_interval_seconds=0.01,
        health_interval_seconds=0.01,
    )


@pytest.fixture
def scheduler() -> AsyncMock:
    mock = AsyncMock(spec=RetryScheduler)
    mock.process_due.return_value = RetrySweepResult()
    return mock


@pytest.fixture
def monitor() -> AsyncMock:
    mock = AsyncMock(spec=HealthMonitor)
    mock.sweep.return_value = []
    return mock


class TestSweepRunner:
    """Tests for SweepRunner start/stop."""

    async def test_runs_both_sweeps(self, scheduler, monitor, fast_settings):
        """Both loops should tick while running."""
        runner = SweepRunner(scheduler, monitor, fast_settings)
        await runner.start()
        try:
            await asyncio.sleep(0.1)
        finally:
            await runner.stop()

        assert scheduler.process_due.await_count >= 1
        assert monitor.sweep.await_count >= 1

    async def test_start_is_idempotent(self, scheduler, monitor, fast_settings):
        """A second start should not add more loops."""
        runner = SweepRunner(scheduler, monitor, fast_settings)
        await runner.start()
        tasks = list(runner._tasks)
        await runner.start()

        assert runner._tasks == tasks
        await runner.stop()

    async def test_stop(self, scheduler, monitor, fast_settings):
        """stop() should cancel the loops and allow a restart."""
        runner = SweepRunner(scheduler, monitor, fast_settings)
        await runner.start()
        assert runner.running

        await runner.stop()
        assert not runner.running

        await runner.stop()
        await runner.start()
        assert runner.running
        await runner.stop()

    async def test_failing_tick_keeps_looping(self, scheduler, monitor, fast_settings):
        """An exception in one sweep should be logged and the loop continue."""
        scheduler.process_due.side_effect = RuntimeError("qdrant down")
        runner = SweepRunner(scheduler, monitor, fast_settings)
        await runner.start()
        try:
            await asyncio.sleep(0.1)
            assert runner.running
        finally:
            await runner.stop()

        assert scheduler.process_due.await_count >= 2

    async def test_waits_one_interval_before_first_tick(self, scheduler, monitor):
        """No sweep should run before the first interval elapses."""
        settings = Settings(
            collection_prefix="test",
            retry_interval_seconds=60,
            health_interval_seconds=60,
        )
        runner = SweepRunner(scheduler, monitor, settings)
        await runner.start()
        await asyncio.sleep(0.05)
        await runner.stop()

        scheduler.process_due.assert_not_called()
        monitor.sweep.assert_not_called()

    async def test_sweep_name_bound_in_log_context(self, scheduler, monitor, fast_settings):
        """Each loop should log with its sweep name bound."""
        seen: dict[str, str] = {}

        def capture_retry(*args, **kwargs):
            seen["retry"] = structlog.contextvars.get_contextvars().get("sweep")
            return RetrySweepResult()

        def capture_health(*args, **kwargs):
            seen["health"] = structlog.contextvars.get_contextvars().get("sweep")
            return []

        scheduler.process_due.side_effect = capture_retry
        monitor.sweep.side_effect = capture_health
        runner = SweepRunner(scheduler, monitor, fast_settings)
        await runner.start()
        try:
            await asyncio.sleep(0.1)
        finally:
            await runner.stop()

        assert seen == {"retry": "retry", "health": "health"}
        assert "sweep" not in structlog.contextvars.get_contextvars()
