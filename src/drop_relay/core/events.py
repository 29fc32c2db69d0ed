"""
Domain events emitted by the core layer.

A DomainEvent is the complete, immutable unit handed to the router. Every
event carries an idempotency token assigned from a monotonic per-session
sequence so the receiving service can drop replays.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventCategory(str, Enum):
    """Event category. The value is the wire "type" field."""
    DROP = "drop"
    NPC_KILL = "npc_kill"
    COMBAT_ACHIEVEMENT = "combat_achievement"
    COLLECTION_LOG = "collection_log"
    PET = "pet"
    QUEST = "quest"
    LEVEL_UP = "level_up"
    XP_MILESTONE = "xp_milestone"
    XP_UPDATE = "xp_update"


@dataclass(frozen=True)
class DomainEvent:
    """
    A correlated, complete event.

    Attributes:
        category: What happened
        subject: Canonical boss/activity/item/quest name
        player: Player name the event belongs to
        token: Idempotency token, unique and increasing within a session
        count: Kill count, if known
        duration: Time of this kill
        best_duration: Personal best at the time of the kill
        is_personal_best: Whether this kill set a new personal best
        team_size: Team size text ("Solo", "3", "11-15")
        value: Total value for drops, 0 otherwise
        fields: Category-specific extra fields for the payload
        created_at: When the event was emitted
    """
    category: EventCategory
    subject: str
    player: str
    token: str
    count: Optional[int] = None
    duration: Optional[timedelta] = None
    best_duration: Optional[timedelta] = None
    is_personal_best: bool = False
    team_size: Optional[str] = None
    value: int = 0
    fields: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_kill_time(self) -> bool:
        """A kill with a duration attached."""
        return self.category == EventCategory.NPC_KILL and self.duration is not None


class TokenSource:
    """
    Thread-safe monotonic token generator.

    Tokens look like "<session>-000042" so they sort by issue order within
    a session and never collide across sessions.
    """

    def __init__(self, session: Optional[str] = None):
        self._session = session or uuid.uuid4().hex[:12]
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def session(self) -> str:
        return self._session

    def next(self) -> str:
        with self._lock:
            seq = next(self._counter)
        return f"{self._session}-{seq:06d}"


class EventFactory:
    """
    Creates DomainEvents stamped with the player and a fresh token.

    Shared by the correlator and the auxiliary handlers so that all events
    in a session draw from one token sequence.
    """

    def __init__(
        self,
        player_name: str,
        account_hash: Optional[str] = None,
        tokens: Optional[TokenSource] = None,
    ):
        self.player_name = player_name
        self.account_hash = account_hash
        self._tokens = tokens or TokenSource()

    def create(self, category: EventCategory, subject: str, **kwargs: Any) -> DomainEvent:
        return DomainEvent(
            category=category,
            subject=subject,
            player=self.player_name,
            token=self._tokens.next(),
            **kwargs,
        )
