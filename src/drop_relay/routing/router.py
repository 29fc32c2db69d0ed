"""
SubmissionRouter - qualifies DomainEvents against group configurations.

Every completed event is delivered once. Groups only decide whether the
delivery is tracked: all groups an event qualifies for are folded into one
SubmissionIntent carrying their ids, so fan-out never multiplies requests.

Flow:
    1. Drop events for categories the user disabled
    2. Hold events until group configs are loaded (bounded)
    3. Qualify against each GroupConfig, fold passing ids into one intent
    4. Build the webhook payload, capture a screenshot if policy requires
    5. Record tracked intents in SubmissionHistory and dispatch
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, FrozenSet, Iterable, List, Optional, Protocol, Sequence

from drop_relay.core.events import DomainEvent, EventCategory
from drop_relay.errors import ConfigError
from drop_relay.routing.history import SubmissionHistory
from drop_relay.routing.models import (
    GroupConfig,
    ScreenshotPolicy,
    SubmissionIntent,
    SubmissionRecord,
)
from drop_relay.routing.webhook import WebhookBody, build_payload

logger = logging.getLogger(__name__)


class ScreenshotProvider(Protocol):
    """Screenshot capture, provided by the host client."""

    def capture(self, event: DomainEvent) -> Optional[bytes]: ...


Dispatch = Callable[[WebhookBody, Optional[bytes], Optional[SubmissionRecord]], None]


@dataclass
class RouterConfig:
    """Configuration for SubmissionRouter."""

    account_hash: Optional[str] = None
    plugin_version: str = ""

    # Categories the user turned off entirely
    disabled_categories: FrozenSet[EventCategory] = field(default_factory=frozenset)

    # Qualify against group configs at all
    use_groups: bool = True

    # Deliver events no group qualified for, untracked
    send_unqualified: bool = True

    # Events held while group configs are loading
    pending_limit: int = 100


def load_group_configs(raw: Iterable[dict]) -> List[GroupConfig]:
    """
    Parse the service's group config list, skipping invalid entries.

    Args:
        raw: Decoded JSON list of group config objects

    Returns:
        Valid GroupConfigs, in order
    """
    configs = []
    for entry in raw:
        try:
            configs.append(GroupConfig.from_dict(entry))
        except ConfigError as e:
            logger.warning(f"Skipping group config: {e}")
    return configs


class SubmissionRouter:
    """
    Routes DomainEvents to the delivery layer.

    Usage:
        router = SubmissionRouter(dispatch=delivery.submit)
        router.on_group_configs_loaded(load_group_configs(api_response))
        pipeline = EventPipeline(emit=router.handle, player_name="Zezima")
    """

    def __init__(
        self,
        dispatch: Dispatch,
        config: Optional[RouterConfig] = None,
        screenshot_policy: Optional[ScreenshotPolicy] = None,
        screenshots: Optional[ScreenshotProvider] = None,
        history: Optional[SubmissionHistory] = None,
    ):
        self._dispatch = dispatch
        self._config = config or RouterConfig()
        self._policy = screenshot_policy or ScreenshotPolicy()
        self._screenshots = screenshots
        self._history = history if history is not None else SubmissionHistory()

        self._group_configs: Optional[List[GroupConfig]] = None
        self._pending: Deque[DomainEvent] = deque()
        self._lock = threading.Lock()

        self._routed = 0
        self._direct = 0
        self._skipped = 0

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def history(self) -> SubmissionHistory:
        return self._history

    @property
    def group_configs(self) -> Optional[List[GroupConfig]]:
        """Loaded group configs, None until the first load."""
        return self._group_configs

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_stats(self) -> dict:
        return {
            "routed": self._routed,
            "direct": self._direct,
            "skipped": self._skipped,
            "pending": self.pending_count,
            "groups_loaded": self._group_configs is not None,
        }

    # =========================================================================
    # Qualification
    # =========================================================================

    def route(
        self,
        event: DomainEvent,
        destinations: Optional[Sequence[GroupConfig]] = None,
    ) -> List[SubmissionIntent]:
        """
        Qualify an event against group configs.

        Args:
            event: Completed event
            destinations: Group configs to check (defaults to the loaded ones)

        Returns:
            One intent carrying every qualifying group id, a direct intent
            for events that bypass groups, or an empty list
        """
        screenshot_required = self._policy.requires(event)

        if self._bypasses_groups(event):
            return [SubmissionIntent(event, (), screenshot_required)]

        if destinations is None:
            destinations = self._group_configs or []

        will_capture = screenshot_required and self._screenshots is not None
        group_ids = []
        for group in destinations:
            reason = self._qualification_failure(event, group, will_capture)
            if reason is not None:
                logger.debug(f"{event.token} skipped for group {group.group_id}: {reason}")
                continue
            if group.group_id not in group_ids:
                group_ids.append(group.group_id)

        if not group_ids:
            return []
        return [SubmissionIntent(event, tuple(group_ids), screenshot_required)]

    def _bypasses_groups(self, event: DomainEvent) -> bool:
        """Kills without a new personal best are never group notifications."""
        return event.category == EventCategory.NPC_KILL and not event.is_personal_best

    def _qualification_failure(
        self,
        event: DomainEvent,
        group: GroupConfig,
        will_capture: bool,
    ) -> Optional[str]:
        """Returns None when the event qualifies, otherwise why it doesn't."""
        if group.only_screenshots and not will_capture:
            return "group requires screenshot"

        category = event.category
        if category == EventCategory.DROP:
            if not group.send_drops:
                return "send_drops=false"
            if event.value < group.minimum_drop_value:
                return f"value {event.value} < minimum {group.minimum_drop_value}"
            single_value = event.fields.get("single_value") or 0
            if not group.send_stacked_items and event.value > single_value > 0:
                return "stacked item and send_stacked_items=false"
            return None

        if category == EventCategory.NPC_KILL:
            return None if group.send_pbs else "send_pbs=false"

        if category == EventCategory.COLLECTION_LOG:
            return None if group.send_clogs else "send_clogs=false"

        if category == EventCategory.COMBAT_ACHIEVEMENT:
            if not group.send_cas:
                return "send_cas=false"
            rank = event.fields.get("tier_rank") or 0
            if rank < group.minimum_ca_rank:
                return f"tier below {group.minimum_ca_tier}"
            return None

        if category == EventCategory.PET:
            return None if group.send_pets else "send_pets=false"

        if category == EventCategory.QUEST:
            return None if group.send_quests else "send_quests=false"

        if category == EventCategory.LEVEL_UP:
            if not group.send_xp:
                return "send_xp=false"
            level = event.fields.get("level") or 0
            if level < group.minimum_level:
                return f"level {level} < minimum {group.minimum_level}"
            return None

        if category in (EventCategory.XP_MILESTONE, EventCategory.XP_UPDATE):
            return None if group.send_xp else "send_xp=false"

        return "unsupported category"

    # =========================================================================
    # Handling
    # =========================================================================

    def handle(self, event: DomainEvent) -> Optional[SubmissionRecord]:
        """
        Route and dispatch one event. Used as the pipeline's emit callback.

        Returns:
            The tracked SubmissionRecord, or None for direct, held or
            dropped events
        """
        if event.category in self._config.disabled_categories:
            logger.debug(f"{event.category.value} disabled, dropping {event.token}")
            self._skipped += 1
            return None

        if event.category == EventCategory.DROP:
            self._history.add_value(event.value)

        if self._awaiting_groups(event):
            self._hold(event)
            return None

        return self._deliver(event)

    def on_group_configs_loaded(self, configs: Sequence[GroupConfig]) -> int:
        """
        Install group configs and re-route events held while loading.

        Returns:
            Number of held events re-routed
        """
        with self._lock:
            self._group_configs = list(configs)
            held = list(self._pending)
            self._pending.clear()

        logger.info(f"Loaded {len(configs)} group configs, re-routing {len(held)} held events")
        for event in held:
            self._deliver(event)
        return len(held)

    def _awaiting_groups(self, event: DomainEvent) -> bool:
        return (
            self._config.use_groups
            and self._group_configs is None
            and not self._bypasses_groups(event)
        )

    def _hold(self, event: DomainEvent) -> None:
        with self._lock:
            if len(self._pending) >= self._config.pending_limit:
                dropped = self._pending.popleft()
                logger.warning(
                    f"Pending limit ({self._config.pending_limit}) reached, "
                    f"dropping held event {dropped.token}"
                )
            self._pending.append(event)
        logger.debug(f"Group configs not loaded, holding {event.token}")

    def _deliver(self, event: DomainEvent) -> Optional[SubmissionRecord]:
        if self._config.use_groups:
            intents = self.route(event)
        else:
            intents = []

        if intents:
            intent = intents[0]
        elif self._config.send_unqualified:
            intent = SubmissionIntent(event, (), self._policy.requires(event))
        else:
            logger.debug(f"No group qualified for {event.token}, not sending")
            self._skipped += 1
            return None

        return self._dispatch_intent(intent)

    def _dispatch_intent(self, intent: SubmissionIntent) -> Optional[SubmissionRecord]:
        event = intent.event
        payload = build_payload(
            event,
            group_ids=intent.group_ids,
            account_hash=self._config.account_hash,
            plugin_version=self._config.plugin_version,
        )

        screenshot = None
        if intent.screenshot_required:
            screenshot = self._capture(event)
            if screenshot:
                payload.attach_screenshot()

        record = None
        if intent.is_direct:
            self._direct += 1
        else:
            record = SubmissionRecord.from_intent(intent)
            record.payload = payload
            record.screenshot = screenshot
            self._history.add(record)
            self._routed += 1
            logger.info(
                f"Routing {event.category.value} '{event.subject}' ({event.token}) "
                f"to groups {','.join(intent.group_ids)}"
            )

        self._dispatch(payload, screenshot, record)
        return record

    def _capture(self, event: DomainEvent) -> Optional[bytes]:
        if self._screenshots is None:
            return None
        try:
            return self._screenshots.capture(event)
        except Exception as e:
            logger.warning(f"Screenshot capture failed for {event.token}, sending without: {e}")
            return None
