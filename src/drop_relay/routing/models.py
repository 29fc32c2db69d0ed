"""
Data models for submission routing.

GroupConfig mirrors the per-group notification settings the service returns.
A SubmissionIntent binds one DomainEvent to every group it qualified for, and
a SubmissionRecord tracks that intent through delivery.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from drop_relay.core.events import DomainEvent, EventCategory
from drop_relay.errors import ConfigError
from drop_relay.ingestion.notifications import CombatTaskTier

if TYPE_CHECKING:
    from drop_relay.routing.webhook import WebhookBody


# =============================================================================
# Group configuration
# =============================================================================


@dataclass
class GroupConfig:
    """
    Notification settings for one group (destination).

    Missing keys in the service's JSON fall back to the defaults below, so
    a group that configured nothing receives everything.
    """

    group_id: str
    group_name: str = ""
    only_screenshots: bool = False
    send_drops: bool = True
    send_pbs: bool = True
    send_clogs: bool = True
    send_cas: bool = True
    send_pets: bool = True
    send_quests: bool = True
    send_xp: bool = True
    minimum_drop_value: int = 0
    send_stacked_items: bool = True
    minimum_ca_tier: Optional[str] = None
    minimum_level: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupConfig":
        """
        Build from the service's group config JSON.

        Raises:
            ConfigError: If group_id is missing or a threshold is not a number
        """
        group_id = data.get("group_id")
        if group_id is None or str(group_id).strip() == "":
            raise ConfigError(f"Group config without group_id: {data!r}")

        defaults = cls(group_id=str(group_id))
        try:
            # Older payloads carry min_value only
            minimum_drop_value = data.get("minimum_drop_value")
            if minimum_drop_value is None:
                minimum_drop_value = data.get("min_value", defaults.minimum_drop_value)

            return cls(
                group_id=str(group_id),
                group_name=str(data.get("group_name") or ""),
                only_screenshots=bool(data.get("only_screenshots", defaults.only_screenshots)),
                send_drops=bool(data.get("send_drops", defaults.send_drops)),
                send_pbs=bool(data.get("send_pbs", defaults.send_pbs)),
                send_clogs=bool(data.get("send_clogs", defaults.send_clogs)),
                send_cas=bool(data.get("send_cas", defaults.send_cas)),
                send_pets=bool(data.get("send_pets", defaults.send_pets)),
                send_quests=bool(data.get("send_quests", defaults.send_quests)),
                send_xp=bool(data.get("send_xp", defaults.send_xp)),
                minimum_drop_value=int(minimum_drop_value or 0),
                send_stacked_items=bool(
                    data.get("send_stacked_items", defaults.send_stacked_items)
                ),
                minimum_ca_tier=data.get("minimum_ca_tier") or None,
                minimum_level=int(data.get("minimum_level") or 0),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid group config for {group_id}: {e}") from e

    @property
    def minimum_ca_rank(self) -> int:
        """Rank of the minimum combat task tier, 0 when unset or unknown."""
        tier = CombatTaskTier.from_name(self.minimum_ca_tier)
        return tier.value if tier is not None else 0


# =============================================================================
# Screenshot policy
# =============================================================================


@dataclass
class ScreenshotPolicy:
    """Which events are sent with a screenshot attached."""

    drops: bool = True
    drop_value: int = 250_000
    pbs: bool = True
    clogs: bool = True
    cas: bool = True
    pets: bool = True
    quests: bool = False
    levels: bool = False
    minimum_level: int = 0

    def requires(self, event: DomainEvent) -> bool:
        category = event.category
        if category == EventCategory.DROP:
            return self.drops and event.value > self.drop_value
        if category == EventCategory.NPC_KILL:
            return self.pbs and event.is_personal_best
        if category == EventCategory.COLLECTION_LOG:
            return self.clogs
        if category == EventCategory.COMBAT_ACHIEVEMENT:
            return self.cas
        if category == EventCategory.PET:
            return self.pets
        if category == EventCategory.QUEST:
            return self.quests
        if category == EventCategory.LEVEL_UP:
            level = event.fields.get("level") or 0
            return self.levels and level >= self.minimum_level
        return False


# =============================================================================
# Submissions
# =============================================================================


class SubmissionStatus(str, Enum):
    """Lifecycle of a tracked submission."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    RETRYING = "retrying"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def is_terminal(self) -> bool:
        """Not retried automatically."""
        return self in (SubmissionStatus.PROCESSED, SubmissionStatus.FAILED)

    @property
    def is_active(self) -> bool:
        """Still in flight or awaiting confirmation."""
        return self in (
            SubmissionStatus.PENDING,
            SubmissionStatus.SENDING,
            SubmissionStatus.SENT,
            SubmissionStatus.RETRYING,
        )

    @property
    def can_retry(self) -> bool:
        """May be retried manually."""
        return self in (SubmissionStatus.FAILED, SubmissionStatus.SENT, SubmissionStatus.PENDING)


_STATUS_DESCRIPTIONS = {
    SubmissionStatus.PENDING: "Sending...",
    SubmissionStatus.SENDING: "Sending...",
    SubmissionStatus.SENT: "Sent successfully",
    SubmissionStatus.RETRYING: "Retrying...",
    SubmissionStatus.PROCESSED: "Processed by API",
    SubmissionStatus.FAILED: "Failed",
}


@dataclass(frozen=True)
class SubmissionIntent:
    """A DomainEvent bound to every group it qualified for."""

    event: DomainEvent
    group_ids: Tuple[str, ...] = ()
    screenshot_required: bool = False

    @property
    def is_direct(self) -> bool:
        """Sent without group notifications."""
        return not self.group_ids


@dataclass
class SubmissionRecord:
    """
    One routed submission, tracked in SubmissionHistory.

    Status changes come from the game thread (routing) and the event loop
    thread (delivery), so transitions are serialized by a lock.
    """

    token: str
    category: EventCategory
    subject: str
    group_ids: Tuple[str, ...]
    value: int = 0
    status: SubmissionStatus = SubmissionStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    responses: List[str] = field(default_factory=list)
    payload: Optional["WebhookBody"] = field(default=None, repr=False)
    screenshot: Optional[bytes] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def from_intent(cls, intent: SubmissionIntent) -> "SubmissionRecord":
        event = intent.event
        return cls(
            token=event.token,
            category=event.category,
            subject=event.subject,
            group_ids=intent.group_ids,
            value=event.value,
        )

    def mark_sending(self) -> None:
        self._transition(SubmissionStatus.SENDING)

    def mark_sent(self, response: Optional[str] = None) -> None:
        self._transition(SubmissionStatus.SENT, response=response)

    def mark_retrying(self, reason: Optional[str] = None) -> None:
        self._transition(SubmissionStatus.RETRYING, error=reason)

    def mark_failed(self, reason: str) -> None:
        self._transition(SubmissionStatus.FAILED, error=reason)

    def mark_processed(self) -> None:
        with self._lock:
            self.status = SubmissionStatus.PROCESSED
            self.processed_at = datetime.now(timezone.utc)
            self.updated_at = self.processed_at

    def _transition(
        self,
        status: SubmissionStatus,
        response: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            # A confirmation from the service is final
            if self.status == SubmissionStatus.PROCESSED:
                return
            self.status = status
            self.updated_at = datetime.now(timezone.utc)
            if response:
                self.responses.append(response)
            if error:
                self.last_error = error

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "token": self.token,
            "category": self.category.value,
            "subject": self.subject,
            "group_ids": list(self.group_ids),
            "value": self.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "last_error": self.last_error,
            "responses": list(self.responses),
        }
