"""
DeliveryService - reliable webhook delivery.

Flow:
    1. submit() is called from any thread (game loop, flush timers) and
       schedules the send on the event loop without blocking
    2. Success: record the success, mark the submission SENT and surface
       any notice from the service
    3. Failure: classify it, record it, mark the submission FAILED and,
       if the tracker allows, enqueue it for retry (marked RETRYING)
    4. A background loop drains the retry queue every drain_interval_seconds
       while the API is healthy (or a health check is due), sleeping the
       backoff delay before each retry

In-flight requests are never cancelled on stop(); they run to completion
(bounded by the client timeout) and stop() waits for them.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Set

from drop_relay.delivery.client import WebhookClient, WebhookResponse
from drop_relay.delivery.failures import (
    FailureState,
    FailureTracker,
    RetryConfig,
    classify_failure,
    failure_reason,
)
from drop_relay.delivery.queue import QueuedDelivery, QueueStats, RetryQueue
from drop_relay.routing.models import SubmissionRecord
from drop_relay.routing.webhook import WebhookBody

logger = logging.getLogger(__name__)


class NoticeSink(Protocol):
    """Receives player-facing messages returned by the service."""

    def notice(self, message: str) -> None: ...


@dataclass
class RetryStats:
    """Delivery statistics."""

    failures: FailureState
    queue: QueueStats
    healthy: bool
    processing_enabled: bool
    sent: int
    failed: int
    retried: int
    dropped: int

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "failures": self.failures.to_dict(),
            "queue": self.queue.to_dict(),
            "healthy": self.healthy,
            "processing_enabled": self.processing_enabled,
            "sent": self.sent,
            "failed": self.failed,
            "retried": self.retried,
            "dropped": self.dropped,
        }


class DeliveryService:
    """
    Sends webhook payloads and retries the ones that fail.

    Usage:
        async with WebhookClient(WebhookClientConfig(url=url)) as client:
            service = DeliveryService(client, RetryConfig())
            await service.start()
            router = SubmissionRouter(dispatch=service.submit)
            # ... game session ...
            await service.stop()
    """

    def __init__(
        self,
        client: WebhookClient,
        config: Optional[RetryConfig] = None,
        tracker: Optional[FailureTracker] = None,
        queue: Optional[RetryQueue] = None,
        notices: Optional[NoticeSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the delivery service.

        Args:
            client: Webhook client used for every attempt
            config: Retry configuration
            tracker: Failure tracker (created from config if not provided)
            queue: Retry queue (created from config if not provided)
            notices: Optional sink for notice/rank_update messages
            sleep: Backoff sleep, injectable for tests
        """
        self._client = client
        self._config = config or RetryConfig()
        self._tracker = tracker if tracker is not None else FailureTracker(self._config)
        self._queue = queue if queue is not None else RetryQueue(self._config)
        self._notices = notices
        self._sleep = sleep

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._processing_enabled = True
        self._stop_event: Optional[asyncio.Event] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._retry_in_flight = False

        self._sent = 0
        self._failed = 0
        self._retried = 0
        self._dropped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tracker(self) -> FailureTracker:
        return self._tracker

    @property
    def queue(self) -> RetryQueue:
        return self._queue

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Bind to the running loop and start the retry drain loop."""
        if self._running:
            logger.warning("DeliveryService already running")
            return

        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._running = True

        if self._config.enabled:
            self._drain_task = asyncio.create_task(self._drain_loop(), name="retry_drain")
            logger.info(
                f"Started retry drain task (interval={self._config.drain_interval_seconds}s)"
            )

    async def stop(self) -> None:
        """Stop draining and wait for in-flight sends to finish."""
        if not self._running:
            return

        logger.info("Stopping delivery service...")
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._drain_task is not None and not self._drain_task.done():
            # A retry mid-send finishes and the loop exits before the next item
            if not self._retry_in_flight:
                self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
        self._drain_task = None

        # Let sends scheduled from other threads get created first
        await asyncio.sleep(0)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        logger.info(f"Delivery service stopped ({len(self._queue)} submissions left in queue)")

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes] = None,
        record: Optional[SubmissionRecord] = None,
    ) -> None:
        """
        Schedule delivery of a payload. Safe to call from any thread.

        Never blocks and never raises delivery errors to the caller.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self._running:
            logger.warning(f"Delivery service not running, dropping {payload.event_type} submission")
            if record is not None:
                record.mark_failed("Delivery service not running")
            return

        loop.call_soon_threadsafe(self._spawn_send, payload, screenshot, record)

    def retry_submission(self, record: SubmissionRecord) -> bool:
        """
        Manually retry a tracked submission with its original payload.

        Returns:
            True if the retry was scheduled
        """
        if record.payload is None:
            logger.warning(f"Cannot retry {record.token}: missing payload")
            return False
        if not record.status.can_retry:
            logger.warning(f"Cannot retry {record.token}: status is {record.status.value}")
            return False

        record.mark_retrying("Manual retry")
        self.submit(record.payload, record.screenshot, record)
        return True

    def _spawn_send(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes],
        record: Optional[SubmissionRecord],
    ) -> None:
        task = asyncio.ensure_future(self.deliver(payload, screenshot, record))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def deliver(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes] = None,
        record: Optional[SubmissionRecord] = None,
    ) -> bool:
        """
        One delivery attempt, enqueueing for retry on a retryable failure.

        Returns:
            True if delivered
        """
        if record is not None:
            record.mark_sending()

        try:
            response = await self._client.send(payload, screenshot)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._handle_failure(payload, screenshot, record, e)
            return False

        self._handle_success(record, response)
        return True

    def _handle_success(
        self,
        record: Optional[SubmissionRecord],
        response: WebhookResponse,
    ) -> None:
        self._tracker.record_success()
        self._sent += 1

        if record is not None:
            record.mark_sent("; ".join(response.messages) or None)
            if response.processed:
                record.mark_processed()

        for message in response.messages:
            self._surface(message)

    def _handle_failure(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes],
        record: Optional[SubmissionRecord],
        error: Exception,
    ) -> None:
        category = classify_failure(error)
        reason = failure_reason(error)
        self._tracker.record_failure(category, getattr(error, "status_code", None))
        self._failed += 1

        if record is not None:
            record.mark_failed(reason)

        if not self._config.enabled or not self._tracker.should_retry(category):
            logger.warning(
                f"Not retrying {payload.event_type} submission ({category.value}): {reason}"
            )
            return

        if self._queue.enqueue(payload, screenshot, payload.event_type, reason, record):
            if record is not None:
                record.mark_retrying(reason)
            logger.info(f"Queued {payload.event_type} submission for retry: {reason}")

    def _surface(self, message: str) -> None:
        if self._notices is None:
            logger.info(f"Service notice: {message}")
            return
        try:
            self._notices.notice(message)
        except Exception as e:
            logger.error(f"Error surfacing service notice: {e}")

    # =========================================================================
    # Retry drain
    # =========================================================================

    async def _drain_loop(self) -> None:
        """Periodically drain the retry queue."""
        interval = self._config.drain_interval_seconds

        while self._running:
            try:
                # Wait for interval or stop
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=interval,
                    )
                    break  # Stop requested
                except asyncio.TimeoutError:
                    pass  # Continue with drain

                if not self._running:
                    break

                delivered = await self.drain_once()
                if delivered:
                    logger.info(f"Retry drain: {delivered} submissions delivered")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in retry drain: {e}")

    async def drain_once(self) -> int:
        """
        Retry queued submissions in FIFO order.

        Stops at the first failed retry so backoff can grow before the next
        pass. Items queued during the pass wait for the next one.

        Returns:
            Number of submissions delivered
        """
        if not self._processing_enabled or not self._config.enabled:
            return 0

        delivered = 0
        for _ in range(len(self._queue)):
            if not self._tracker.can_drain():
                logger.debug("API unhealthy, deferring retry drain")
                break

            if self._stop_requested():
                break

            item = self._queue.peek()
            if item is None:
                break

            if self._queue.is_expired(item):
                self._queue.dequeue()
                logger.debug(f"Dropping expired {item.category} submission")
                self._drop(item, "Expired in retry queue")
                continue

            # Items stay queued through the backoff so a stop here loses nothing
            delay = self._tracker.retry_delay()
            if delay > 0:
                logger.debug(f"Retrying {item.category} submission in {delay:.2f}s")
                await self._sleep(delay)

            if self._stop_requested():
                break
            item = self._queue.dequeue()
            if item is None:
                break

            if not await self._retry(item):
                break
            delivered += 1

        return delivered

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def _retry(self, item: QueuedDelivery) -> bool:
        self._retry_in_flight = True
        try:
            return await self._send_retry(item)
        finally:
            self._retry_in_flight = False

    async def _send_retry(self, item: QueuedDelivery) -> bool:
        self._queue.record_attempt(item)
        if item.record is not None:
            item.record.mark_sending()

        try:
            response = await self._client.send(item.payload, item.screenshot)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            category = classify_failure(e)
            reason = failure_reason(e)
            self._tracker.record_failure(category, getattr(e, "status_code", None))
            self._failed += 1

            if not self._tracker.should_retry(category):
                logger.warning(f"Giving up on {item.category} submission ({category.value}): {reason}")
                self._drop(item, reason)
            elif self._queue.requeue(item, reason):
                if item.record is not None:
                    item.record.mark_retrying(reason)
            else:
                self._drop(item, reason)
            return False

        self._retried += 1
        self._handle_success(item.record, response)
        return True

    def _drop(self, item: QueuedDelivery, reason: str) -> None:
        self._dropped += 1
        if item.record is not None:
            item.record.mark_failed(reason)

    # =========================================================================
    # Control and stats
    # =========================================================================

    def set_processing_enabled(self, enabled: bool) -> None:
        self._processing_enabled = enabled
        logger.info(f"Retry processing {'enabled' if enabled else 'disabled'}")

    def clear_queue(self) -> int:
        return self._queue.clear()

    def stats(self) -> RetryStats:
        return RetryStats(
            failures=self._tracker.state(),
            queue=self._queue.stats(),
            healthy=self._tracker.is_healthy,
            processing_enabled=self._processing_enabled,
            sent=self._sent,
            failed=self._failed,
            retried=self._retried,
            dropped=self._dropped,
        )
