"""
Data models for the ingestion layer.

A PartialSignal is one fragment of information pulled out of a single line
of game text. Signals are immutable; the correlator consumes each one once
and merges it into whatever it already knows about the subject.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Tuple


class SignalKind(str, Enum):
    """What a partial signal carries."""
    COUNT = "count"
    DURATION = "duration"
    TEAM_SIZE = "team_size"
    NAME = "name"


class NameTopic(str, Enum):
    """Where a NAME signal came from."""
    COLLECTION_LOG = "collection_log"
    UNTRADEABLE_DROP = "untradeable_drop"


@dataclass(frozen=True)
class PartialSignal:
    """
    One fragment of a domain event extracted from a line of game text.

    Attributes:
        kind: Which slot this signal fills
        raw: The line the signal was parsed from
        subject: Canonical subject name, when the line names one
        count: Kill/completion count (COUNT signals)
        duration: Time of this attempt (DURATION signals)
        best_duration: Personal best at the time of the message
        is_new_record: True for "(new personal best)" lines, False for lines
            that quote a previous best, None when not applicable
        team_size: Team size text ("Solo", "3", "11-15")
        candidates: Subjects a subject-less duration may belong to. Empty
            means any subject.
        standalone: Duration that names its own subject and never waits for
            a count (delve levels)
        topic: Origin of a NAME signal
        item_name: Item named by a NAME signal
    """
    kind: SignalKind
    raw: str
    subject: Optional[str] = None
    count: Optional[int] = None
    duration: Optional[timedelta] = None
    best_duration: Optional[timedelta] = None
    is_new_record: Optional[bool] = None
    team_size: Optional[str] = None
    candidates: Tuple[str, ...] = ()
    standalone: bool = False
    topic: Optional[NameTopic] = None
    item_name: Optional[str] = None

    def matches_subject(self, subject: str) -> bool:
        """Whether a subject-less duration could belong to the given subject."""
        if self.subject is not None:
            return self.subject == subject
        if not self.candidates:
            return True
        return subject in self.candidates

    def __repr__(self) -> str:
        return (
            f"PartialSignal({self.kind.value}, subject={self.subject!r}, "
            f"count={self.count}, duration={self.duration}, "
            f"new_record={self.is_new_record})"
        )
