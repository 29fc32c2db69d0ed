"""
Failure classification, health tracking and backoff for webhook delivery.

FailureTracker is the coarse circuit breaker for the delivery layer. It
counts consecutive failures across all submissions; once they reach
max_consecutive_failures the API is considered unhealthy and the retry
queue is only drained after health_check_interval_seconds have passed since
the last failure. Any success restores health immediately.

Client errors other than 429 are counted but never affect health: a 401 says
something about the submission, not the service.
"""
from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

import aiohttp

from drop_relay.errors import (
    ClientResponseError,
    DeliveryError,
    DeliveryTimeoutError,
    NetworkError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)


class FailureCategory(str, Enum):
    """Why a delivery attempt failed."""
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"

    @property
    def is_permanent(self) -> bool:
        return self == FailureCategory.CLIENT_ERROR


def classify_status(status_code: int) -> Optional[FailureCategory]:
    """Category for an HTTP status, None for success."""
    if status_code == 429:
        return FailureCategory.RATE_LIMITED
    if 400 <= status_code < 500:
        return FailureCategory.CLIENT_ERROR
    if status_code >= 500:
        return FailureCategory.SERVER_ERROR
    return None


def classify_failure(error: BaseException) -> FailureCategory:
    """
    Classify a delivery exception.

    DeliveryErrors carry their category (or a status code to derive it
    from); raw aiohttp/asyncio exceptions are mapped by type. Anything else
    is UNKNOWN.
    """
    if isinstance(error, DeliveryError):
        if error.category is not None:
            return error.category
        if isinstance(error, DeliveryTimeoutError):
            return FailureCategory.TIMEOUT
        if isinstance(error, NetworkError):
            return FailureCategory.NETWORK_ERROR
        if isinstance(error, RateLimitError):
            return FailureCategory.RATE_LIMITED
        if isinstance(error, ClientResponseError):
            return FailureCategory.CLIENT_ERROR
        if isinstance(error, ServerError):
            return FailureCategory.SERVER_ERROR
        if error.status_code is not None:
            return classify_status(error.status_code) or FailureCategory.UNKNOWN
        return FailureCategory.UNKNOWN

    if isinstance(error, asyncio.TimeoutError):
        return FailureCategory.TIMEOUT
    if isinstance(error, aiohttp.ClientResponseError):
        return classify_status(error.status) or FailureCategory.UNKNOWN
    if isinstance(error, (aiohttp.ClientError, ConnectionError)):
        return FailureCategory.NETWORK_ERROR
    return FailureCategory.UNKNOWN


def failure_reason(error: BaseException) -> str:
    """Short human-readable reason stored on records and queue items."""
    if isinstance(error, asyncio.TimeoutError):
        return "Connection timeout"
    if isinstance(error, DeliveryError):
        return str(error)
    if isinstance(error, aiohttp.ClientError):
        return f"Network error: {error}"
    return f"{type(error).__name__}: {error}"


# =============================================================================
# Tracker
# =============================================================================


@dataclass
class RetryConfig:
    """Configuration for retry policy, backoff and the retry queue."""

    # Backoff: base * 2**min(n-1, max_exponent), capped at ceiling
    backoff_base_seconds: float = 1.0
    backoff_ceiling_seconds: float = 60.0
    backoff_max_exponent: int = 6
    jitter_ratio: float = 0.1

    # Health
    max_consecutive_failures: int = 10
    max_timeout_failures: int = 20
    health_check_interval_seconds: float = 30.0

    # Queue
    queue_capacity: int = 500
    max_attempts: int = 5
    max_age_seconds: float = 24 * 3600

    # Drain loop
    drain_interval_seconds: float = 10.0
    enabled: bool = True


@dataclass
class FailureState:
    """Snapshot of FailureTracker counters."""

    consecutive_failures: int
    failures_by_category: Dict[FailureCategory, int]
    last_failure_time: Optional[float]
    last_success_time: Optional[float]
    healthy: bool

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "consecutive_failures": self.consecutive_failures,
            "failures_by_category": {
                category.value: count for category, count in self.failures_by_category.items()
            },
            "last_failure_time": self.last_failure_time,
            "last_success_time": self.last_success_time,
            "healthy": self.healthy,
        }


class FailureTracker:
    """
    Thread-safe failure counters with a derived health flag.

    Usage:
        tracker = FailureTracker(RetryConfig())
        tracker.record_failure(FailureCategory.SERVER_ERROR)
        if tracker.should_retry(FailureCategory.SERVER_ERROR):
            await asyncio.sleep(tracker.retry_delay())
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ):
        self._config = config or RetryConfig()
        self._clock = clock
        self._rng = rng
        self._lock = threading.Lock()

        self._consecutive = 0
        self._by_category: Dict[FailureCategory, int] = {c: 0 for c in FailureCategory}
        self._last_failure: Optional[float] = None
        self._last_success: Optional[float] = None
        self._healthy = True

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return self._healthy

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive

    def record_success(self) -> None:
        with self._lock:
            restored = not self._healthy
            failures = self._consecutive
            self._consecutive = 0
            self._last_success = self._clock()
            self._healthy = True
        if restored:
            logger.info(f"API connection restored after {failures} consecutive failures")

    def record_failure(self, category: FailureCategory, status_code: Optional[int] = None) -> None:
        with self._lock:
            self._consecutive += 1
            self._by_category[category] += 1
            self._last_failure = self._clock()
            consecutive = self._consecutive

            if category == FailureCategory.CLIENT_ERROR:
                logger.debug(f"Client error {status_code} recorded, health unchanged")
                return

            was_healthy = self._healthy
            self._healthy = consecutive < self._config.max_consecutive_failures

        logger.debug(f"{category.value} failure recorded, consecutive={consecutive}")
        if was_healthy and not self._healthy:
            logger.warning(f"API marked unhealthy after {consecutive} consecutive failures")

    def should_retry(self, category: FailureCategory) -> bool:
        consecutive = self.consecutive_failures
        if category == FailureCategory.RATE_LIMITED:
            return True
        if category == FailureCategory.CLIENT_ERROR:
            return False
        if category == FailureCategory.SERVER_ERROR:
            return consecutive < self._config.max_consecutive_failures
        # TIMEOUT, NETWORK_ERROR and UNKNOWN
        return consecutive < self._config.max_timeout_failures

    def backoff_delay(self, failures: int) -> float:
        """Delay before the next attempt after `failures` consecutive failures, without jitter."""
        if failures <= 0:
            return 0.0
        exponent = min(failures - 1, self._config.backoff_max_exponent)
        delay = self._config.backoff_base_seconds * (2 ** exponent)
        return min(delay, self._config.backoff_ceiling_seconds)

    def retry_delay(self) -> float:
        """Current backoff delay in seconds, with up to jitter_ratio added."""
        delay = self.backoff_delay(self.consecutive_failures)
        if delay == 0:
            return 0.0
        return delay * (1 + self._config.jitter_ratio * self._rng())

    def should_perform_health_check(self) -> bool:
        """True when unhealthy and the cooldown since the last failure has passed."""
        with self._lock:
            if self._healthy or self._last_failure is None:
                return False
            elapsed = self._clock() - self._last_failure
        return elapsed >= self._config.health_check_interval_seconds

    def can_drain(self) -> bool:
        return self.is_healthy or self.should_perform_health_check()

    def state(self) -> FailureState:
        with self._lock:
            return FailureState(
                consecutive_failures=self._consecutive,
                failures_by_category=dict(self._by_category),
                last_failure_time=self._last_failure,
                last_success_time=self._last_success,
                healthy=self._healthy,
            )

    def reset(self) -> None:
        with self._lock:
            self._consecutive = 0
            self._by_category = {c: 0 for c in FailureCategory}
            self._last_failure = None
            self._last_success = self._clock()
            self._healthy = True
        logger.info("Failure tracker reset")
