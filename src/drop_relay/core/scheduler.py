"""
Deferred callback scheduling.

The correlator needs "call this in 15 seconds unless cancelled" and a
clock. ThreadScheduler provides that with one daemon worker thread and a
due-time heap for live use;
ManualScheduler advances a virtual clock explicitly, for tests and for
replaying recorded chat logs.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules callbacks after a delay and reports the current time."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle: ...

    def now(self) -> float: ...


def _run_safely(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception as e:
        logger.exception(f"Scheduled callback failed: {e}")


class _Handle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ThreadScheduler:
    """
    Runs callbacks on a single daemon worker thread, in due-time order.

    The worker starts on the first schedule() and sleeps on a condition
    until the earliest entry is due. Cancelled entries are skipped when
    they reach the head of the heap.

    Usage:
        scheduler = ThreadScheduler()
        handle = scheduler.schedule(15.0, flush)
        handle.cancel()
        scheduler.close()
    """

    def __init__(self) -> None:
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _Handle, Callable[[], None]]] = []
        self._cond = threading.Condition()
        self._worker: Optional[threading.Thread] = None
        self._closed = False

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        handle = _Handle()
        due = self.now() + max(0.0, delay)
        with self._cond:
            if self._closed:
                logger.warning("Scheduler closed, dropping callback")
                handle.cancel()
                return handle
            heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._run, name="drop-relay-scheduler", daemon=True
                )
                self._worker.start()
            self._cond.notify()
        return handle

    def now(self) -> float:
        return time.monotonic()

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not fired or been cancelled."""
        with self._cond:
            return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the worker. Callbacks not yet due are discarded."""
        with self._cond:
            self._closed = True
            self._queue.clear()
            self._cond.notify()
            worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def _run(self) -> None:
        while True:
            callback = self._next_due()
            if callback is None:
                return
            _run_safely(callback)

    def _next_due(self) -> Optional[Callable[[], None]]:
        """Block until a callback is due, or return None once closed."""
        with self._cond:
            while not self._closed:
                if not self._queue:
                    self._cond.wait()
                    continue
                due, _, handle, callback = self._queue[0]
                if handle.cancelled:
                    heapq.heappop(self._queue)
                    continue
                wait = due - self.now()
                if wait <= 0:
                    heapq.heappop(self._queue)
                    return callback
                self._cond.wait(wait)
            return None



class ManualScheduler:
    """
    Scheduler driven by explicit calls to advance().

    Callbacks fire in due-time order, on the calling thread, with now()
    reporting the callback's due time while it runs.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _Handle, Callable[[], None]]] = []
        self._lock = threading.Lock()

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        handle = _Handle()
        with self._lock:
            heapq.heappush(
                self._queue, (self._now + max(0.0, delay), next(self._seq), handle, callback)
            )
        return handle

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not fired or been cancelled."""
        with self._lock:
            return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that comes due.

        Returns:
            Number of callbacks fired
        """
        target = self._now + seconds
        fired = 0
        while True:
            entry = self._pop_due(target)
            if entry is None:
                break
            due, handle, callback = entry
            self._now = due
            if not handle.cancelled:
                _run_safely(callback)
                fired += 1
        self._now = target
        return fired

    def _pop_due(
        self, target: float
    ) -> Optional[Tuple[float, _Handle, Callable[[], None]]]:
        with self._lock:
            if not self._queue or self._queue[0][0] > target:
                return None
            due, _, handle, callback = heapq.heappop(self._queue)
            return due, handle, callback
