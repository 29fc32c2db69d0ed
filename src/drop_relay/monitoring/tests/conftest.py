"""
Pytest fixtures for monitoring tests.

The delivery service is a MagicMock wrapping a real FailureTracker and
RetryQueue so health checks read genuine state.
"""
import pytest
from unittest.mock import MagicMock

from drop_relay.core import CorrelatorStats
from drop_relay.delivery import FailureTracker, RetryConfig, RetryQueue
from drop_relay.monitoring import HealthChecker


def correlator_stats(pending=0, emitted=0):
    return CorrelatorStats(
        pending=pending,
        stored_durations=0,
        emitted=emitted,
        duplicates=0,
        flushed=0,
        expired_durations=0,
    )


@pytest.fixture
def retry_config():
    return RetryConfig(queue_capacity=10)


@pytest.fixture
def mock_delivery(retry_config):
    """Delivery service backed by a real tracker and queue."""
    delivery = MagicMock()
    delivery.tracker = FailureTracker(retry_config, clock=lambda: 1000.0, rng=lambda: 0.0)
    delivery.queue = RetryQueue(retry_config, clock=lambda: 1000.0)
    return delivery


@pytest.fixture
def mock_correlator():
    correlator = MagicMock()
    correlator.stats.return_value = correlator_stats(pending=1, emitted=4)
    return correlator


@pytest.fixture
def mock_router():
    router = MagicMock()
    router.pending_count = 0
    return router


@pytest.fixture
def health_checker(mock_delivery, mock_correlator, mock_router):
    """HealthChecker with all components healthy."""
    return HealthChecker(
        delivery=mock_delivery,
        correlator=mock_correlator,
        router=mock_router,
    )


@pytest.fixture
def correlator_stats_factory():
    return correlator_stats
