"""
Bounded FIFO retry queue for failed webhook deliveries.

A full queue rejects new items rather than blocking or overwriting. Items
are dropped for good once their attempts reach max_attempts or they age
past max_age_seconds.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Deque, Optional

from drop_relay.delivery.failures import RetryConfig
from drop_relay.routing.webhook import WebhookBody

if TYPE_CHECKING:
    from drop_relay.routing.models import SubmissionRecord

logger = logging.getLogger(__name__)


@dataclass
class QueuedDelivery:
    """A failed delivery waiting to be retried."""

    payload: WebhookBody
    screenshot: Optional[bytes]
    category: Optional[str]
    failure_reason: str
    queued_at: float
    record: Optional["SubmissionRecord"] = field(default=None, repr=False)
    attempts: int = 0
    last_retry_at: Optional[float] = None
    last_retry_failure: Optional[str] = None

    @property
    def has_screenshot(self) -> bool:
        return bool(self.screenshot)

    def age(self, now: float) -> float:
        return now - self.queued_at

    def is_expired(self, now: float, max_age_seconds: float) -> bool:
        return self.age(now) > max_age_seconds

    def mark_attempt(self, now: float) -> None:
        self.attempts += 1
        self.last_retry_at = now


@dataclass
class QueueStats:
    """Retry queue statistics."""

    size: int
    total_queued: int
    total_processed: int
    capacity: int

    @property
    def utilization(self) -> float:
        return self.size / self.capacity if self.capacity else 0.0

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "total_queued": self.total_queued,
            "total_processed": self.total_processed,
            "capacity": self.capacity,
            "utilization": round(self.utilization, 3),
        }


class RetryQueue:
    """
    Bounded FIFO of QueuedDelivery items.

    Usage:
        queue = RetryQueue(RetryConfig(queue_capacity=500))
        if not queue.enqueue(payload, screenshot, "drop", "HTTP 503"):
            ...  # full, item dropped
        item = queue.dequeue()
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or RetryConfig()
        self._clock = clock
        self._items: Deque[QueuedDelivery] = deque()
        self._lock = threading.Lock()
        self._total_queued = 0
        self._total_processed = 0

    @property
    def capacity(self) -> int:
        return self._config.queue_capacity

    def enqueue(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes],
        category: Optional[str],
        failure_reason: str,
        record: Optional["SubmissionRecord"] = None,
    ) -> bool:
        """
        Queue a failed delivery.

        Returns:
            False if the queue is full (the item is dropped)
        """
        item = QueuedDelivery(
            payload=payload,
            screenshot=screenshot,
            category=category,
            failure_reason=failure_reason,
            queued_at=self._clock(),
            record=record,
        )
        with self._lock:
            if len(self._items) >= self._config.queue_capacity:
                logger.warning(
                    f"Retry queue is full ({self._config.queue_capacity}), dropping {category} submission"
                )
                return False
            self._items.append(item)
            self._total_queued += 1
            size = len(self._items)

        logger.debug(f"Queued {category} submission for retry, queue size {size}")
        return True

    def dequeue(self) -> Optional[QueuedDelivery]:
        with self._lock:
            if not self._items:
                return None
            self._total_processed += 1
            return self._items.popleft()

    def peek(self) -> Optional[QueuedDelivery]:
        with self._lock:
            return self._items[0] if self._items else None

    def requeue(self, item: QueuedDelivery, reason: Optional[str] = None) -> bool:
        """
        Put a retried item back after another failure.

        Returns:
            False if the item used up its attempts or the queue is full
        """
        if item.attempts >= self._config.max_attempts:
            logger.warning(
                f"Dropping {item.category} submission after {item.attempts} retry attempts"
            )
            return False

        with self._lock:
            if len(self._items) >= self._config.queue_capacity:
                logger.warning("Cannot requeue submission, retry queue is full")
                return False
            if reason:
                item.last_retry_failure = reason
            self._items.append(item)
            size = len(self._items)

        logger.debug(
            f"Requeued {item.category} submission (attempt {item.attempts}), queue size {size}"
        )
        return True

    def is_expired(self, item: QueuedDelivery) -> bool:
        return item.is_expired(self._clock(), self._config.max_age_seconds)

    def record_attempt(self, item: QueuedDelivery) -> None:
        """Count a retry attempt on a dequeued item."""
        item.mark_attempt(self._clock())

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
        if cleared:
            logger.info(f"Cleared {cleared} queued submissions")
        return cleared

    def stats(self) -> QueueStats:
        with self._lock:
            return QueueStats(
                size=len(self._items),
                total_queued=self._total_queued,
                total_processed=self._total_processed,
                capacity=self._config.queue_capacity,
            )

    def is_empty(self) -> bool:
        return len(self) == 0

    def is_full(self) -> bool:
        return len(self) >= self._config.queue_capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
