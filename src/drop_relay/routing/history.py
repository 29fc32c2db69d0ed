"""
Bounded in-memory history of routed submissions.

Observability only: nothing reads the history back to make delivery
decisions. It backs the session statistics and manual retries.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from drop_relay.routing.models import SubmissionRecord, SubmissionStatus

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    """Submission statistics for the current session."""

    total_submissions: int
    notifications_sent: int
    failed_submissions: int
    total_value: int

    def to_dict(self) -> dict:
        return {
            "total_submissions": self.total_submissions,
            "notifications_sent": self.notifications_sent,
            "failed_submissions": self.failed_submissions,
            "total_value": self.total_value,
        }


class SubmissionHistory:
    """
    Keeps the most recent submission records.

    When full, the oldest PROCESSED record is evicted first, since it needs
    no further attention; otherwise the oldest record goes.

    Usage:
        history = SubmissionHistory(max_entries=50)
        history.add(record)
        stats = history.stats()
    """

    def __init__(self, max_entries: int = 50):
        self._max_entries = max_entries
        self._records: List[SubmissionRecord] = []
        self._lock = threading.Lock()
        # All drops count toward session value, qualified or not
        self._total_value = 0

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def add(self, record: SubmissionRecord) -> None:
        with self._lock:
            while self._records and len(self._records) >= self._max_entries:
                self._evict_one()
            self._records.append(record)

    def add_value(self, value: int) -> None:
        with self._lock:
            self._total_value += value

    def get(self, token: str) -> Optional[SubmissionRecord]:
        with self._lock:
            for record in self._records:
                if record.token == token:
                    return record
        return None

    def remove(self, record: SubmissionRecord) -> bool:
        with self._lock:
            try:
                self._records.remove(record)
                return True
            except ValueError:
                return False

    def mark_processed(self, token: str) -> bool:
        """Record the service's confirmation that a submission was processed."""
        record = self.get(token)
        if record is None:
            return False
        record.mark_processed()
        return True

    def records(self) -> List[SubmissionRecord]:
        """Snapshot, oldest first."""
        with self._lock:
            return list(self._records)

    def active(self) -> List[SubmissionRecord]:
        """Records still awaiting a final outcome."""
        return [r for r in self.records() if r.status.is_active]

    def stats(self) -> SessionStats:
        with self._lock:
            sent = sum(
                1 for r in self._records
                if r.status in (SubmissionStatus.SENT, SubmissionStatus.PROCESSED)
            )
            failed = sum(1 for r in self._records if r.status == SubmissionStatus.FAILED)
            return SessionStats(
                total_submissions=len(self._records),
                notifications_sent=sent,
                failed_submissions=failed,
                total_value=self._total_value,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _evict_one(self) -> None:
        for index, record in enumerate(self._records):
            if record.status == SubmissionStatus.PROCESSED:
                del self._records[index]
                logger.debug(f"History full, evicted processed submission {record.token}")
                return
        evicted = self._records.pop(0)
        logger.debug(f"History full, evicted oldest submission {evicted.token}")
