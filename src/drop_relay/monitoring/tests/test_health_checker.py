"""
Tests for component health checking.

Health checks verify that delivery, the retry queue, the correlator and
the router are functioning.
"""
import asyncio

import pytest

from drop_relay.delivery import FailureCategory
from drop_relay.monitoring import AggregateHealth, ComponentHealth, HealthChecker, HealthStatus


class TestDeliveryHealthCheck:
    """Tests for the delivery circuit breaker check."""

    @pytest.mark.asyncio
    async def test_healthy_without_failures(self, health_checker):
        health = await health_checker.check_delivery()

        assert health.status == HealthStatus.HEALTHY
        assert health.component == "delivery"

    @pytest.mark.asyncio
    async def test_degraded_after_some_failures(self, health_checker, mock_delivery):
        mock_delivery.tracker.record_failure(FailureCategory.SERVER_ERROR)

        health = await health_checker.check_delivery()

        assert health.status == HealthStatus.DEGRADED
        assert "1 consecutive" in health.message

    @pytest.mark.asyncio
    async def test_unhealthy_after_threshold(self, health_checker, mock_delivery):
        for _ in range(10):
            mock_delivery.tracker.record_failure(FailureCategory.TIMEOUT)

        health = await health_checker.check_delivery()

        assert health.status == HealthStatus.UNHEALTHY
        assert "unhealthy" in health.message.lower()

    @pytest.mark.asyncio
    async def test_recovers_on_success(self, health_checker, mock_delivery):
        for _ in range(10):
            mock_delivery.tracker.record_failure(FailureCategory.TIMEOUT)
        mock_delivery.tracker.record_success()

        health = await health_checker.check_delivery()
        assert health.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_not_configured(self):
        health = await HealthChecker().check_delivery()

        assert health.status == HealthStatus.WARNING
        assert "no delivery" in health.message.lower()


class TestQueueHealthCheck:
    """Tests for retry queue fill level."""

    @pytest.mark.asyncio
    async def test_empty_queue_healthy(self, health_checker):
        health = await health_checker.check_queue()

        assert health.status == HealthStatus.HEALTHY
        assert health.component == "retry_queue"

    @pytest.mark.asyncio
    async def test_warning_when_mostly_full(self, health_checker, mock_delivery):
        for i in range(8):
            mock_delivery.queue.enqueue({"n": i}, None, "drop", "timeout")

        health = await health_checker.check_queue()

        assert health.status == HealthStatus.WARNING
        assert "80%" in health.message

    @pytest.mark.asyncio
    async def test_unhealthy_when_full(self, health_checker, mock_delivery):
        for i in range(10):
            mock_delivery.queue.enqueue({"n": i}, None, "drop", "timeout")

        health = await health_checker.check_queue()

        assert health.status == HealthStatus.UNHEALTHY
        assert "full" in health.message.lower()

    @pytest.mark.asyncio
    async def test_custom_warning_threshold(self, mock_delivery):
        checker = HealthChecker(delivery=mock_delivery, queue_warning_utilization=0.2)
        for i in range(2):
            mock_delivery.queue.enqueue({"n": i}, None, "drop", "timeout")

        health = await checker.check_queue()
        assert health.status == HealthStatus.WARNING


class TestCorrelatorHealthCheck:
    """Tests for correlator backlog."""

    @pytest.mark.asyncio
    async def test_healthy_with_small_backlog(self, health_checker):
        health = await health_checker.check_correlator()

        assert health.status == HealthStatus.HEALTHY
        assert "4 emitted" in health.message

    @pytest.mark.asyncio
    async def test_warning_with_large_backlog(self, health_checker, mock_correlator, correlator_stats_factory):
        mock_correlator.stats.return_value = correlator_stats_factory(pending=21)

        health = await health_checker.check_correlator()

        assert health.status == HealthStatus.WARNING
        assert "21" in health.message

    @pytest.mark.asyncio
    async def test_not_configured(self):
        health = await HealthChecker().check_correlator()
        assert health.status == HealthStatus.WARNING


class TestRouterHealthCheck:
    """Tests for events held until group configs load."""

    @pytest.mark.asyncio
    async def test_healthy_when_nothing_held(self, health_checker):
        health = await health_checker.check_router()
        assert health.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_degraded_when_events_held(self, health_checker, mock_router):
        mock_router.pending_count = 3

        health = await health_checker.check_router()

        assert health.status == HealthStatus.DEGRADED
        assert "3 events" in health.message


class TestAggregateHealth:
    """Tests for aggregate health across components."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, health_checker):
        overall = await health_checker.check_all()

        assert isinstance(overall, AggregateHealth)
        assert overall.status == HealthStatus.HEALTHY
        assert [c.component for c in overall.components] == [
            "delivery",
            "retry_queue",
            "correlator",
            "router",
        ]

    @pytest.mark.asyncio
    async def test_any_unhealthy_makes_overall_unhealthy(self, health_checker, mock_delivery):
        for _ in range(10):
            mock_delivery.tracker.record_failure(FailureCategory.NETWORK_ERROR)

        overall = await health_checker.check_all()
        assert overall.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_warning_makes_overall_degraded(self, health_checker, mock_correlator, correlator_stats_factory):
        mock_correlator.stats.return_value = correlator_stats_factory(pending=50)

        overall = await health_checker.check_all()
        assert overall.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_check_exception_reported_unhealthy(self, health_checker, mock_correlator):
        mock_correlator.stats.side_effect = RuntimeError("boom")

        overall = await health_checker.check_all()

        correlator = next(c for c in overall.components if c.component == "correlator")
        assert correlator.status == HealthStatus.UNHEALTHY
        assert "boom" in correlator.message
        assert overall.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_slow_check_times_out(self, health_checker):
        async def slow():
            await asyncio.sleep(1)
            return ComponentHealth("router", HealthStatus.HEALTHY, "late")

        health_checker.check_router = slow

        overall = await health_checker.check_all(timeout=0.04)

        router = next(c for c in overall.components if c.component == "router")
        assert router.status == HealthStatus.UNHEALTHY
        assert "timed out" in router.message

    @pytest.mark.asyncio
    async def test_to_dict(self, health_checker):
        overall = await health_checker.check_all()
        data = overall.to_dict()

        assert data["status"] == "healthy"
        assert data["components"][0] == {
            "component": "delivery",
            "status": "healthy",
            "message": "Webhook deliveries succeeding",
        }
        assert "checked_at" in data


class TestOverallStatusCalculation:
    def test_empty_is_healthy(self):
        assert HealthChecker()._calculate_overall_status([]) == HealthStatus.HEALTHY

    def test_warning_only(self):
        components = [
            ComponentHealth("a", HealthStatus.HEALTHY, ""),
            ComponentHealth("b", HealthStatus.WARNING, ""),
        ]
        assert HealthChecker()._calculate_overall_status(components) == HealthStatus.DEGRADED
