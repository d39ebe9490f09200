"""Tests for the endpoint health monitor."""

from hookrelay.models import EndpointStatus, EndpointUpdate


class TestHealthSweep:
    """Tests for HealthMonitor.sweep."""

    async def test_quarantines_after_threshold(self, service, storage, make_endpoint, receiver):
        """Ten consecutive failures should move an endpoint to FAILING."""
        endpoint = make_endpoint()
        await storage.store_endpoint(endpoint)
        receiver.status_code = 500

        for _ in range(10):
            await service.deliver_webhook("post.published", {})

        assert await service.health_monitor.sweep() == [endpoint.id]
        stored = await storage.get_endpoint(endpoint.id)
        assert stored.status == EndpointStatus.FAILING
        assert stored.consecutive_failures == 10

    async def test_below_threshold_left_alone(self, service, storage, make_endpoint, receiver):
        """Nine failures should not quarantine."""
        endpoint = make_endpoint()
        await storage.store_endpoint(endpoint)
        receiver.status_code = 500

        for _ in range(9):
            await service.deliver_webhook("post.published", {})

        assert await service.health_monitor.sweep() == []
        assert (await storage.get_endpoint(endpoint.id)).status == EndpointStatus.ACTIVE

    async def test_quarantined_endpoint_gets_no_events(
        self, service, storage, make_endpoint, receiver
    ):
        """After quarantine new events should not be sent to the endpoint."""
        endpoint = make_endpoint(consecutive_failures=10)
        await storage.store_endpoint(endpoint)
        await service.health_monitor.sweep()

        result = await service.deliver_webhook("post.published", {})

        assert result.matched == 0
        assert receiver.requests == []

    async def test_disabled_endpoint_not_changed(self, service, storage, make_endpoint):
        """Owner-disabled endpoints stay DISABLED regardless of failures."""
        endpoint = make_endpoint(status=EndpointStatus.DISABLED, consecutive_failures=50)
        await storage.store_endpoint(endpoint)

        assert await service.health_monitor.sweep() == []
        assert (await storage.get_endpoint(endpoint.id)).status == EndpointStatus.DISABLED

    async def test_success_before_sweep_prevents_quarantine(
        self, service, storage, make_endpoint, receiver
    ):
        """A success resets the counter so the next sweep finds nothing."""
        endpoint = make_endpoint(consecutive_failures=10)
        await storage.store_endpoint(endpoint)

        await service.deliver_webhook("post.published", {})

        assert await service.health_monitor.sweep() == []
        assert (await storage.get_endpoint(endpoint.id)).status == EndpointStatus.ACTIVE

    async def test_reactivation_resets_and_resumes(
        self, service, storage, make_endpoint, receiver
    ):
        """Reactivating a FAILING endpoint should reset it and resume deliveries."""
        endpoint = make_endpoint(consecutive_failures=10)
        await storage.store_endpoint(endpoint)
        await service.health_monitor.sweep()

        updated = await service.update_endpoint(
            endpoint.id, endpoint.owner_id, EndpointUpdate(status=EndpointStatus.ACTIVE)
        )
        assert updated.status == EndpointStatus.ACTIVE
        assert updated.consecutive_failures == 0

        result = await service.deliver_webhook("post.published", {})
        assert result.succeeded == 1
