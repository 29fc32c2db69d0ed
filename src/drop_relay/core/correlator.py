"""
Kill event correlator.

The game reports one kill over three unordered channels with no shared id:

    - the count message   "Your Vorkath kill count is: 120."
    - the time/PB message "Fight duration: 1:12.60 (new personal best)"
    - the loot callback   fired when the reward is rolled

KillCorrelator joins them into one DomainEvent per kill. Each subject moves
through Empty -> Pending -> Emitted:

    Empty -> Pending    first signal opens a PendingCorrelation and
                        schedules a deferred flush
    Pending -> Pending  later signals fill empty slots (last non-null wins)
    Pending -> Emitted  subject + count (or duration) known and the
                        subject has been quiet for settle_ticks ticks,
                        OR loot for the subject arrives,
                        OR the deferred flush fires

Emission is guarded by a per-correlation lock and an emitted flag, so the
flush timer thread and the game thread can never both emit the same kill.

Durations that arrive before their subject is known (raid completion
times precede the raid count) are stored under every subject they could
belong to, and consumed by whichever count or loot names the subject.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional

from drop_relay.core.events import DomainEvent, EventCategory, EventFactory
from drop_relay.core.kill_counts import KillCountCache, cache_key
from drop_relay.core.scheduler import ScheduledHandle, Scheduler
from drop_relay.ingestion.models import PartialSignal, SignalKind
from drop_relay.ingestion.parser import CLUE_PREFIX, SOLO

logger = logging.getLogger(__name__)


# Encounters where the same (subject, count) legitimately repeats because
# each team member's kill is reported separately
MULTI_PART_ENCOUNTERS = frozenset({
    "Penance Queen",
    "Royal Titans",
})

# Sub-key for durations that could belong to any subject
ANY_SUBJECT = "*"


@dataclass
class CorrelatorConfig:
    """Configuration for kill correlation."""

    # Deferred flush after the first signal for a subject
    flush_window_seconds: float = 15.0
    # Quiet ticks before a complete correlation is emitted
    settle_ticks: int = 2
    # Same (subject, count) within this window is a duplicate
    dedup_window_seconds: float = 5.0
    # Subject-less durations are held this long for a count or loot
    time_message_window_seconds: float = 5.0
    max_bad_ticks: int = 10
    # Loot source remembered for a following duration
    recent_subject_ticks: int = 5
    # Delay before the exact chat count is merged into the cache
    count_merge_delay_seconds: float = 15.0


@dataclass
class PendingCorrelation:
    """Mutable accumulator for one subject's kill."""

    subject: str
    created_at: float
    last_signal_at: float
    count: Optional[int] = None
    duration: Optional[timedelta] = None
    best_duration: Optional[timedelta] = None
    is_new_record: Optional[bool] = None
    team_size: Optional[str] = None
    quiet_ticks: int = 0
    # Carries a time/PB that arrived after the kill was already emitted
    follow_up: bool = False
    emitted: bool = False
    flush_handle: Optional[ScheduledHandle] = field(default=None, repr=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_complete(self) -> bool:
        return self.count is not None or self.duration is not None

    def merge(self, signal: PartialSignal, now: float) -> None:
        """Fill slots from a signal. Absent values never clear a slot."""
        if signal.count is not None:
            self.count = signal.count
        if signal.duration is not None:
            self.duration = signal.duration
        if signal.best_duration is not None:
            self.best_duration = signal.best_duration
        if signal.is_new_record is not None:
            self.is_new_record = signal.is_new_record
        if signal.team_size is not None:
            self.team_size = signal.team_size
        self.last_signal_at = now
        self.quiet_ticks = 0


@dataclass
class StoredDuration:
    """A duration waiting for its subject."""

    signal: PartialSignal
    stored_at: float
    ticks: int = 0


@dataclass
class CorrelatorStats:
    pending: int
    stored_durations: int
    emitted: int
    duplicates: int
    flushed: int
    expired_durations: int


class KillCorrelator:
    """
    Joins count, duration and loot signals into kill events.

    Usage:
        correlator = KillCorrelator(
            emit=router_callback,
            cache=KillCountCache(),
            scheduler=ThreadScheduler(),
            events=EventFactory("Zezima"),
        )
        correlator.on_signals(parser.parse(message))
        correlator.on_loot("Vorkath")
        correlator.on_tick()
    """

    def __init__(
        self,
        emit: Callable[[DomainEvent], None],
        cache: KillCountCache,
        scheduler: Scheduler,
        events: EventFactory,
        config: Optional[CorrelatorConfig] = None,
    ):
        """
        Initialize the correlator.

        Args:
            emit: Receives each emitted DomainEvent (may be called from the
                scheduler's thread)
            cache: Kill-count cache, shared with the drop handler
            scheduler: Deferred flush scheduler and clock
            events: Factory stamping player and idempotency token
            config: Windows and tick limits
        """
        self._emit_callback = emit
        self._cache = cache
        self._scheduler = scheduler
        self._events = events
        self._config = config or CorrelatorConfig()

        self._lock = threading.RLock()
        self._pending: Dict[str, PendingCorrelation] = {}
        self._stored: Dict[str, StoredDuration] = {}
        self._recent: Dict[str, float] = {}

        self._team_size: Optional[str] = None
        self._recent_subject: Optional[str] = None
        self._recent_subject_ticks = 0
        self._recent_count: Optional[int] = None

        self._emitted = 0
        self._duplicates = 0
        self._flushed = 0
        self._expired_durations = 0

    @property
    def config(self) -> CorrelatorConfig:
        return self._config

    @property
    def pending_subjects(self) -> List[str]:
        with self._lock:
            return [s for s, p in self._pending.items() if not p.emitted]

    # =========================================================================
    # Signal input (game thread)
    # =========================================================================

    def on_signals(self, signals: Iterable[PartialSignal]) -> None:
        for signal in signals:
            self.on_signal(signal)

    def on_signal(self, signal: PartialSignal) -> None:
        """Fold one partial signal into the correlation state."""
        if signal.kind == SignalKind.COUNT:
            self._on_count(signal)
        elif signal.kind == SignalKind.DURATION:
            self._on_duration(signal)
        elif signal.kind == SignalKind.TEAM_SIZE:
            with self._lock:
                self._team_size = signal.team_size

    def on_loot(self, source: str) -> Optional[DomainEvent]:
        """
        Loot was received from a source.

        A pending correlation for the source is emitted immediately. When the
        loot names a more specific variant of the same raid (e.g. Hard Mode)
        the loot name replaces the chat-derived one.

        Args:
            source: Loot source name (NPC name or event name)

        Returns:
            The emitted event, if one was emitted
        """
        subject = cache_key(source)
        now = self._scheduler.now()

        with self._lock:
            pending = self._pending_for_loot(subject)

            if pending is None:
                stored = self._take_stored(subject)
                if stored is None:
                    # Remember the source for a duration that may follow
                    self._remember_subject(subject, None)
                    return None
                pending = self._open(subject, now)
                pending.merge(stored.signal, now)

            elif pending.subject != subject and self._is_more_specific(subject, pending.subject):
                logger.debug(f"Loot renames {pending.subject} -> {subject}")
                del self._pending[pending.subject]
                pending.subject = subject
                self._pending[subject] = pending

        return self._emit(pending, "loot")

    def on_tick(self) -> None:
        """
        Advance one game tick.

        Emits settled correlations and ages out stored durations, the
        recent loot source, and dedup records.
        """
        now = self._scheduler.now()
        settled: List[PendingCorrelation] = []

        with self._lock:
            for pending in list(self._pending.values()):
                if pending.emitted:
                    continue
                pending.quiet_ticks += 1
                if pending.is_complete and pending.quiet_ticks >= self._config.settle_ticks:
                    settled.append(pending)

            self._age_stored(now)

            if self._recent_subject is not None:
                self._recent_subject_ticks += 1
                if self._recent_subject_ticks >= self._config.recent_subject_ticks:
                    self._forget_subject()

            cutoff = now - self._config.dedup_window_seconds
            for key in [k for k, seen in self._recent.items() if seen < cutoff]:
                del self._recent[key]

        for pending in settled:
            self._emit(pending, "settled")

    def flush_all(self) -> int:
        """Emit every pending correlation now (shutdown, end of replay)."""
        with self._lock:
            pending = [p for p in self._pending.values() if not p.emitted]
        return sum(1 for p in pending if self._emit(p, "flush_all") is not None)

    def reset(self) -> None:
        """Drop all correlation state without emitting (logout, world hop)."""
        with self._lock:
            for pending in self._pending.values():
                with pending.lock:
                    pending.emitted = True
                if pending.flush_handle is not None:
                    pending.flush_handle.cancel()
            self._pending.clear()
            self._stored.clear()
            self._team_size = None
            self._forget_subject()

    def stats(self) -> CorrelatorStats:
        with self._lock:
            stored = {id(s) for s in self._stored.values()}
            return CorrelatorStats(
                pending=sum(1 for p in self._pending.values() if not p.emitted),
                stored_durations=len(stored),
                emitted=self._emitted,
                duplicates=self._duplicates,
                flushed=self._flushed,
                expired_durations=self._expired_durations,
            )

    # =========================================================================
    # Signal handling
    # =========================================================================

    def _on_count(self, signal: PartialSignal) -> None:
        subject = signal.subject
        count = signal.count
        if subject is None or count is None:
            return

        # Clue totals are exact; the casket loot adds the last one
        if subject.startswith(CLUE_PREFIX):
            self._cache.put(subject, count - 1)
            return

        # Loot may arrive before or after this message and will increment
        # the cache, so store count - 1 now and the exact count later
        self._cache.merge_max(subject, count - 1)
        self._scheduler.schedule(
            self._config.count_merge_delay_seconds,
            lambda: self._cache.merge_max(subject, count),
        )

        now = self._scheduler.now()
        with self._lock:
            pending = self._pending.get(subject)
            if pending is None or pending.emitted:
                pending = self._open(subject, now)
            pending.merge(signal, now)

            stored = self._take_stored(subject)
            if stored is not None and pending.duration is None:
                pending.merge(stored.signal, now)

    def _on_duration(self, signal: PartialSignal) -> None:
        now = self._scheduler.now()

        if signal.standalone and signal.subject:
            with self._lock:
                pending = self._open(signal.subject, now)
                pending.merge(signal, now)
            self._emit(pending, "standalone")
            return

        with self._lock:
            pending = self._pending_for_duration(signal)

            if pending is None and self._recent_subject is not None:
                if signal.matches_subject(self._recent_subject):
                    pending = self._open(self._recent_subject, now)
                    if self._recent_count is not None:
                        pending.count = self._recent_count
                        pending.follow_up = True

            if pending is not None:
                pending.merge(signal, now)
                return

            self._store(signal, now)

    # =========================================================================
    # Pending correlations
    # =========================================================================

    def _open(self, subject: str, now: float) -> PendingCorrelation:
        """Create a pending correlation and schedule its deferred flush."""
        pending = PendingCorrelation(subject=subject, created_at=now, last_signal_at=now)
        self._pending[subject] = pending
        pending.flush_handle = self._scheduler.schedule(
            self._config.flush_window_seconds,
            lambda: self._flush(pending),
        )
        logger.debug(f"Opened correlation for {subject}")
        return pending

    def _pending_for_duration(self, signal: PartialSignal) -> Optional[PendingCorrelation]:
        candidates = [
            p for p in self._pending.values()
            if not p.emitted and p.duration is None and signal.matches_subject(p.subject)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.last_signal_at)

    def _pending_for_loot(self, subject: str) -> Optional[PendingCorrelation]:
        pending = self._pending.get(subject)
        if pending is not None and not pending.emitted:
            return pending

        for other in self._pending.values():
            if other.emitted:
                continue
            if other.subject.startswith(subject) or subject.startswith(other.subject):
                return other
        return None

    @staticmethod
    def _is_more_specific(name: str, than: str) -> bool:
        return name.startswith(than) and len(name) > len(than)

    def _flush(self, pending: PendingCorrelation) -> None:
        """Deferred flush, runs on the scheduler's thread."""
        if self._emit(pending, "flush") is not None:
            with self._lock:
                self._flushed += 1

    def _emit(self, pending: PendingCorrelation, reason: str) -> Optional[DomainEvent]:
        """
        Emit a pending correlation at most once.

        Returns:
            The event handed to the emit callback, or None if this call lost
            the race or the event was a duplicate
        """
        with pending.lock:
            if pending.emitted:
                return None
            pending.emitted = True

        if pending.flush_handle is not None:
            pending.flush_handle.cancel()

        with self._lock:
            if self._pending.get(pending.subject) is pending:
                del self._pending[pending.subject]
            team_size = pending.team_size or self._team_size or SOLO
            self._team_size = None
            if self._recent_subject == pending.subject:
                self._forget_subject()

            count = pending.count
            if count is None:
                count = self._cache.get(pending.subject)

            if not pending.follow_up and self._is_duplicate(pending.subject, count):
                self._duplicates += 1
                logger.debug(f"Discarding duplicate kill {pending.subject} #{count}")
                return None
            self._emitted += 1

            # Count then loot emits before the time/PB message is posted
            if reason == "loot" and pending.duration is None:
                self._remember_subject(pending.subject, count)

        event = self._events.create(
            EventCategory.NPC_KILL,
            pending.subject,
            count=count,
            duration=pending.duration,
            best_duration=pending.best_duration,
            is_personal_best=pending.is_new_record is True,
            team_size=team_size,
        )
        logger.info(
            f"Kill: {event.subject} #{event.count} ({reason}, "
            f"time={event.duration}, pb={event.is_personal_best})"
        )
        self._emit_callback(event)
        return event

    def _remember_subject(self, subject: str, count: Optional[int]) -> None:
        """Hold a loot source so a duration in the next few ticks can find it."""
        self._recent_subject = subject
        self._recent_subject_ticks = 0
        self._recent_count = count

    def _forget_subject(self) -> None:
        self._recent_subject = None
        self._recent_subject_ticks = 0
        self._recent_count = None

    def _is_duplicate(self, subject: str, count: Optional[int]) -> bool:
        if count is None or subject in MULTI_PART_ENCOUNTERS:
            return False
        key = f"{subject}-{count}"
        now = self._scheduler.now()
        seen = self._recent.get(key)
        self._recent[key] = now
        return seen is not None and now - seen < self._config.dedup_window_seconds

    # =========================================================================
    # Stored durations
    # =========================================================================

    def _store(self, signal: PartialSignal, now: float) -> None:
        stored = StoredDuration(signal=signal, stored_at=now)
        for key in signal.candidates or (ANY_SUBJECT,):
            self._stored[key] = stored
        logger.debug(f"Stored duration for {list(signal.candidates) or 'any subject'}")

    def _take_stored(self, subject: str) -> Optional[StoredDuration]:
        stored = self._stored.get(subject) or self._stored.get(ANY_SUBJECT)
        if stored is None:
            return None
        for key in [k for k, s in self._stored.items() if s is stored]:
            del self._stored[key]
        return stored

    def _age_stored(self, now: float) -> None:
        expired = set()
        for stored in {id(s): s for s in self._stored.values()}.values():
            stored.ticks += 1
            too_old = now - stored.stored_at > self._config.time_message_window_seconds
            if too_old or stored.ticks > self._config.max_bad_ticks:
                expired.add(id(stored))

        if expired:
            for key in [k for k, s in self._stored.items() if id(s) in expired]:
                del self._stored[key]
            self._expired_durations += len(expired)
            logger.debug(f"Discarded {len(expired)} unclaimed duration(s)")
