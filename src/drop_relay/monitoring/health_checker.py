"""
Health Checker for relay component health monitoring.

Aggregates the delivery circuit breaker, retry queue fill level, correlator
backlog and router hold list into one status.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from drop_relay.core.correlator import KillCorrelator
    from drop_relay.delivery.service import DeliveryService
    from drop_relay.routing.router import SubmissionRouter

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health check result for a single component."""

    component: str
    status: HealthStatus
    message: str


@dataclass
class AggregateHealth:
    """Overall relay health."""

    status: HealthStatus
    components: List[ComponentHealth] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "status": self.status.value,
            "components": [
                {"component": c.component, "status": c.status.value, "message": c.message}
                for c in self.components
            ],
            "checked_at": self.checked_at.isoformat(),
        }


class HealthChecker:
    """
    Checks health of relay components.

    Monitors:
    - Delivery: circuit breaker state and consecutive failures
    - Retry queue: fill level
    - Correlator: correlations still waiting for signals
    - Router: events held until group configs load

    Usage:
        checker = HealthChecker(delivery=service, correlator=pipeline.correlator)

        # Check single component
        health = await checker.check_delivery()

        # Check all components
        overall = await checker.check_all()
    """

    def __init__(
        self,
        delivery: Optional["DeliveryService"] = None,
        correlator: Optional["KillCorrelator"] = None,
        router: Optional["SubmissionRouter"] = None,
        queue_warning_utilization: float = 0.8,
        max_pending_correlations: int = 20,
    ) -> None:
        """
        Initialize the health checker.

        Args:
            delivery: Delivery service to check
            correlator: Kill correlator to check
            router: Submission router to check
            queue_warning_utilization: Retry queue fill ratio that triggers a warning
            max_pending_correlations: Pending correlations above which to warn
        """
        self._delivery = delivery
        self._correlator = correlator
        self._router = router
        self._queue_warning_utilization = queue_warning_utilization
        self._max_pending_correlations = max_pending_correlations

    async def check_delivery(self) -> ComponentHealth:
        """
        Check the delivery circuit breaker.

        Returns:
            ComponentHealth with status
        """
        if self._delivery is None:
            return ComponentHealth(
                component="delivery",
                status=HealthStatus.WARNING,
                message="No delivery service configured",
            )

        state = self._delivery.tracker.state()
        if not state.healthy:
            return ComponentHealth(
                component="delivery",
                status=HealthStatus.UNHEALTHY,
                message=f"API unhealthy after {state.consecutive_failures} consecutive failures",
            )

        if state.consecutive_failures > 0:
            return ComponentHealth(
                component="delivery",
                status=HealthStatus.DEGRADED,
                message=f"{state.consecutive_failures} consecutive delivery failures",
            )

        return ComponentHealth(
            component="delivery",
            status=HealthStatus.HEALTHY,
            message="Webhook deliveries succeeding",
        )

    async def check_queue(self) -> ComponentHealth:
        """
        Check retry queue fill level.

        Returns:
            ComponentHealth with status
        """
        if self._delivery is None:
            return ComponentHealth(
                component="retry_queue",
                status=HealthStatus.WARNING,
                message="No delivery service configured",
            )

        stats = self._delivery.queue.stats()
        if stats.is_full:
            return ComponentHealth(
                component="retry_queue",
                status=HealthStatus.UNHEALTHY,
                message=f"Retry queue full ({stats.size}/{stats.capacity}), new failures are dropped",
            )

        if stats.utilization >= self._queue_warning_utilization:
            return ComponentHealth(
                component="retry_queue",
                status=HealthStatus.WARNING,
                message=f"Retry queue at {stats.utilization:.0%} ({stats.size}/{stats.capacity})",
            )

        return ComponentHealth(
            component="retry_queue",
            status=HealthStatus.HEALTHY,
            message=f"Retry queue has {stats.size} submissions",
        )

    async def check_correlator(self) -> ComponentHealth:
        """
        Check the correlator backlog.

        Returns:
            ComponentHealth with status
        """
        if self._correlator is None:
            return ComponentHealth(
                component="correlator",
                status=HealthStatus.WARNING,
                message="No correlator configured",
            )

        stats = self._correlator.stats()
        if stats.pending > self._max_pending_correlations:
            return ComponentHealth(
                component="correlator",
                status=HealthStatus.WARNING,
                message=f"{stats.pending} correlations pending",
            )

        return ComponentHealth(
            component="correlator",
            status=HealthStatus.HEALTHY,
            message=f"{stats.pending} pending, {stats.emitted} emitted",
        )

    async def check_router(self) -> ComponentHealth:
        """
        Check whether events are held waiting for group configs.

        Returns:
            ComponentHealth with status
        """
        if self._router is None:
            return ComponentHealth(
                component="router",
                status=HealthStatus.WARNING,
                message="No router configured",
            )

        held = self._router.pending_count
        if held > 0:
            return ComponentHealth(
                component="router",
                status=HealthStatus.DEGRADED,
                message=f"{held} events held until group configs load",
            )

        return ComponentHealth(
            component="router",
            status=HealthStatus.HEALTHY,
            message="Routing events",
        )

    async def check_all(self, timeout: float = 5.0) -> AggregateHealth:
        """
        Check all components with timeout.

        Args:
            timeout: Maximum time for all checks in seconds

        Returns:
            AggregateHealth with all component results
        """
        components = []

        checks = [
            ("delivery", self.check_delivery),
            ("retry_queue", self.check_queue),
            ("correlator", self.check_correlator),
            ("router", self.check_router),
        ]

        for name, check_func in checks:
            try:
                result = await asyncio.wait_for(
                    check_func(),
                    timeout=timeout / len(checks),
                )
                components.append(result)
            except asyncio.TimeoutError:
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check timed out",
                ))
            except Exception as e:
                logger.error(f"{name} health check failed: {e}")
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check failed: {str(e)}",
                ))

        overall_status = self._calculate_overall_status(components)

        return AggregateHealth(
            status=overall_status,
            components=components,
        )

    def _calculate_overall_status(
        self,
        components: List[ComponentHealth],
    ) -> HealthStatus:
        """Calculate overall status from component statuses."""
        statuses = [c.status for c in components]

        # Any UNHEALTHY -> overall UNHEALTHY
        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY

        # Any DEGRADED or WARNING -> overall DEGRADED
        if HealthStatus.DEGRADED in statuses or HealthStatus.WARNING in statuses:
            return HealthStatus.DEGRADED

        return HealthStatus.HEALTHY
