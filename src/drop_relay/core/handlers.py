"""
Auxiliary event handlers.

Unlike kills, these events need little or no correlation: a drop is one
loot callback, a combat task or quest is one message. Each handler turns
its input into DomainEvents and passes them to the same emit callback the
correlator uses.

Handlers:
    - DropHandler: loot callbacks -> drop events (priced through ItemPricer)
    - CollectionLogHandler: "New item added to your collection log" lines
    - CombatTaskHandler: combat achievement completions
    - PetHandler: pet primer message, named by a following item/clan line
    - QuestHandler: quest completion widget titles
    - ExperienceHandler: level-ups, xp milestones and periodic xp updates
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from drop_relay.core.correlator import KillCorrelator
from drop_relay.core.events import DomainEvent, EventCategory, EventFactory
from drop_relay.core.kill_counts import KillCountCache, LootSourceType, cache_key
from drop_relay.ingestion.aliases import CG_BOSS, GAUNTLET_BOSS
from drop_relay.ingestion.models import NameTopic, PartialSignal, SignalKind
from drop_relay.ingestion.notifications import (
    is_pet_name,
    parse_clan_pet,
    parse_combat_task,
    parse_pet_primer,
    parse_quest_title,
    pet_source,
    uc_first,
)

logger = logging.getLogger(__name__)

Emit = Callable[[DomainEvent], None]


# =============================================================================
# Drops
# =============================================================================


class ItemPricer(Protocol):
    """Item metadata lookup, provided by the host client."""

    def price(self, item_id: int) -> int: ...

    def name(self, item_id: int) -> str: ...


@dataclass(frozen=True)
class ItemStack:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class PricedItem:
    item_id: int
    name: str
    quantity: int
    unit_price: int

    @property
    def total(self) -> int:
        return self.quantity * self.unit_price


# Loot sources reported under a different encounter name
LOOT_SOURCE_RENAMES = {
    "Branda the Fire Queen": "Royal Titans",
    "Eldric the Ice King": "Royal Titans",
    "Dusk": "Grotesque Guardians",
}


def stack_items(items: Iterable[ItemStack]) -> List[ItemStack]:
    """Merge stacks of the same item, keeping first-seen order."""
    quantities: Dict[int, int] = {}
    for item in items:
        quantities[item.item_id] = quantities.get(item.item_id, 0) + item.quantity
    return [ItemStack(item_id, qty) for item_id, qty in quantities.items()]


class DropHandler:
    """
    Turns loot callbacks into drop events.

    Besides emitting the drop, each loot callback increments the source's
    kill count and tells the correlator that loot for the source arrived,
    which short-circuits a pending kill's deferred flush.
    """

    def __init__(
        self,
        emit: Emit,
        events: EventFactory,
        pricer: ItemPricer,
        cache: KillCountCache,
        correlator: Optional[KillCorrelator] = None,
    ):
        self._emit = emit
        self._events = events
        self._pricer = pricer
        self._cache = cache
        self._correlator = correlator

    def on_loot(
        self,
        source: str,
        items: Iterable[Tuple[int, int]],
        source_type: LootSourceType = LootSourceType.NPC,
    ) -> Optional[DomainEvent]:
        """
        Handle a loot callback.

        Args:
            source: NPC, player or event name the loot came from
            items: (item_id, quantity) pairs
            source_type: Kind of loot source

        Returns:
            The drop event, or None when nothing was received
        """
        source = LOOT_SOURCE_RENAMES.get(source, source)
        stacks = stack_items(ItemStack(item_id, qty) for item_id, qty in items)

        count = self._count_kill(source, source_type)

        if self._correlator is not None and source_type in (
            LootSourceType.NPC, LootSourceType.EVENT
        ):
            self._correlator.on_loot(source)

        priced = [self._price(stack) for stack in stacks if stack.quantity > 0]
        if not priced:
            return None

        total_value = sum(item.total for item in priced)
        single_value = sum(item.unit_price for item in priced)

        event = self._events.create(
            EventCategory.DROP,
            source,
            count=count,
            value=total_value,
            fields={
                "source_type": source_type.value.lower(),
                "single_value": single_value,
                "items": [
                    {
                        "item": item.name,
                        "id": item.item_id,
                        "quantity": item.quantity,
                        "value": item.unit_price,
                    }
                    for item in priced
                ],
            },
        )
        logger.debug(f"Drop from {source}: {len(priced)} item(s) worth {total_value}")
        self._emit(event)
        return event

    def _count_kill(self, source: str, source_type: LootSourceType) -> Optional[int]:
        # Gauntlet kills are counted from the completion message
        if cache_key(source, source_type) in (GAUNTLET_BOSS, CG_BOSS):
            return self._cache.get(source, source_type)
        return self._cache.increment(source, source_type)

    def _price(self, stack: ItemStack) -> PricedItem:
        return PricedItem(
            item_id=stack.item_id,
            name=self._pricer.name(stack.item_id),
            quantity=stack.quantity,
            unit_price=max(0, self._pricer.price(stack.item_id)),
        )


# =============================================================================
# Collection log
# =============================================================================


class CollectionLogHandler:
    """Emits collection_log events for new collection log slots."""

    def __init__(self, emit: Emit, events: EventFactory, cache: KillCountCache):
        self._emit = emit
        self._events = events
        self._cache = cache
        self._last_source: Optional[str] = None

    def note_source(self, source: Optional[str]) -> None:
        """Remember the most recent loot source for kill count lookup."""
        self._last_source = source

    def on_signal(self, signal: PartialSignal) -> Optional[DomainEvent]:
        if signal.kind != SignalKind.NAME or signal.topic != NameTopic.COLLECTION_LOG:
            return None
        if not signal.item_name:
            return None

        fields: Dict[str, object] = {"item_name": signal.item_name}
        count = None
        if self._last_source:
            count = self._cache.get(self._last_source)
            fields["source"] = self._last_source

        event = self._events.create(
            EventCategory.COLLECTION_LOG, signal.item_name, count=count, fields=fields
        )
        self._emit(event)
        return event


# =============================================================================
# Combat tasks
# =============================================================================


class CombatTaskHandler:
    """Emits combat_achievement events."""

    def __init__(self, emit: Emit, events: EventFactory):
        self._emit = emit
        self._events = events
        self.total_points = 0

    def on_message(self, message: str) -> Optional[DomainEvent]:
        task = parse_combat_task(message)
        if task is None:
            return None

        self.total_points += task.tier.points
        event = self._events.create(
            EventCategory.COMBAT_ACHIEVEMENT,
            task.task,
            fields={
                "tier": task.tier.display_name,
                "tier_rank": task.tier.value,
                "task": task.task,
                "points": task.tier.points,
                "session_points": self.total_points,
            },
        )
        self._emit(event)
        return event


# =============================================================================
# Pets
# =============================================================================


class PetHandler:
    """
    Emits pet events.

    The primer ("You have a funny feeling like you're being followed.")
    arms the handler. An untradeable drop or collection log line then names
    the pet, and a clan broadcast may add the milestone. The event is sent
    once a milestone is known or MAX_TICKS_WAIT ticks have passed.
    """

    MAX_TICKS_WAIT = 5

    def __init__(self, emit: Emit, events: EventFactory, cache: KillCountCache):
        self._emit = emit
        self._events = events
        self._cache = cache
        self.reset()

    @property
    def is_armed(self) -> bool:
        return self._armed

    def reset(self) -> None:
        self._armed = False
        self._pet_name: Optional[str] = None
        self._milestone: Optional[str] = None
        self._duplicate = False
        self._backpack = False
        self._collection = False
        self._ticks_waited = 0

    def on_message(self, message: str) -> None:
        if self._armed:
            return
        primer = parse_pet_primer(message)
        if primer is not None:
            self._armed = True
            self._duplicate = primer.duplicate
            self._backpack = primer.backpack

    def on_signal(self, signal: PartialSignal) -> None:
        """An item name line that may name the armed pet."""
        if not self._armed or signal.kind != SignalKind.NAME:
            return
        if self._pet_name is not None and self._collection:
            return
        if is_pet_name(signal.item_name):
            self._pet_name = signal.item_name
            if signal.topic == NameTopic.COLLECTION_LOG:
                self._collection = True

    def on_clan_message(self, message: str) -> None:
        if not self._armed:
            return
        broadcast = parse_clan_pet(message)
        if broadcast is not None and broadcast.user == self._events.player_name:
            self._pet_name = broadcast.pet
            self._milestone = broadcast.milestone

    def on_tick(self) -> Optional[DomainEvent]:
        if not self._armed:
            return None

        self._ticks_waited += 1
        if self._milestone is None and self._ticks_waited <= self.MAX_TICKS_WAIT:
            return None

        event = self._build_event()
        self.reset()
        self._emit(event)
        return event

    def _build_event(self) -> DomainEvent:
        pet = uc_first(self._pet_name) if self._pet_name else "Unknown Pet"

        if self._duplicate:
            previously_owned: Optional[bool] = True
        elif self._collection:
            previously_owned = False
        else:
            previously_owned = None

        if self._backpack:
            game_message = "feels something weird sneaking into their backpack"
        elif previously_owned:
            game_message = "has a funny feeling like they would have been followed..."
        else:
            game_message = "has a funny feeling like they're being followed"

        fields: Dict[str, object] = {
            "pet_name": pet,
            "game_message": game_message,
            "duplicate": self._duplicate,
        }
        if self._milestone is not None:
            fields["milestone"] = self._milestone
        if previously_owned is not None:
            fields["previously_owned"] = previously_owned

        count = None
        source = pet_source(pet)
        if source is not None:
            count = self._cache.get(source)
            if count:
                fields["source"] = source
                fields["killcount"] = count

        return self._events.create(EventCategory.PET, pet, count=count or None, fields=fields)


# =============================================================================
# Quests
# =============================================================================


class QuestHandler:
    """Emits quest events from the quest completion widget title."""

    def __init__(self, emit: Emit, events: EventFactory):
        self._emit = emit
        self._events = events

    def on_quest_widget(
        self,
        title: str,
        quests_completed: Optional[int] = None,
        quests_total: Optional[int] = None,
        quest_points: Optional[int] = None,
    ) -> Optional[DomainEvent]:
        quest = parse_quest_title(title)
        if quest is None:
            logger.debug(f"Not a quest completion title: {title!r}")
            return None

        fields: Dict[str, object] = {"quest_name": quest}
        if quests_completed and quests_total:
            fields["quests_completed"] = quests_completed
            fields["total_quests"] = quests_total
            fields["completion_percentage"] = f"{quests_completed * 100.0 / quests_total:.1f}%"
        if quest_points:
            fields["quest_points"] = quest_points

        event = self._events.create(EventCategory.QUEST, quest, fields=fields)
        self._emit(event)
        return event


# =============================================================================
# Experience
# =============================================================================


@dataclass
class ExperienceConfig:
    """Configuration for level and xp tracking."""

    xp_milestone_interval: int = 10_000_000
    # Ticks to wait so level-ups from one action arrive as one event
    batch_ticks: int = 2
    # Periodic xp_update events; 0 disables
    xp_update_interval_ticks: int = 0


MAX_REAL_LEVEL = 99


class ExperienceHandler:
    """
    Tracks skill levels and xp.

    The first observation of each skill only records a baseline. After that,
    a rising level queues a level_up and crossing an xp interval (for skills
    at 99) queues an xp_milestone. Queued notifications are sent together
    after batch_ticks quiet ticks.
    """

    def __init__(
        self,
        emit: Emit,
        events: EventFactory,
        config: Optional[ExperienceConfig] = None,
    ):
        self._emit = emit
        self._events = events
        self._config = config or ExperienceConfig()
        self._levels: Dict[str, int] = {}
        self._xp: Dict[str, int] = {}
        self._levelled: Dict[str, Tuple[int, int]] = {}
        self._milestones: Dict[str, int] = {}
        self._gains: Dict[str, int] = {}
        self._ticks_waited = 0
        self._update_ticks = 0

    def reset(self) -> None:
        self._levels.clear()
        self._xp.clear()
        self._levelled.clear()
        self._milestones.clear()
        self._gains.clear()
        self._ticks_waited = 0
        self._update_ticks = 0

    def on_skill_update(self, skill: str, level: int, xp: int) -> None:
        if xp <= 0 or level < 1:
            return

        previous_level = self._levels.get(skill)
        previous_xp = self._xp.get(skill)
        self._levels[skill] = level
        self._xp[skill] = xp

        if previous_level is None or previous_xp is None:
            return

        if level < previous_level:
            # Levels never regress; treat as a new baseline
            return

        if xp > previous_xp:
            self._gains[skill] = self._gains.get(skill, 0) + (xp - previous_xp)

        if level > previous_level:
            first = self._levelled.get(skill, (previous_level, level))[0]
            self._levelled[skill] = (first, level)
            self._ticks_waited = 0

        interval = self._config.xp_milestone_interval
        if interval > 0 and level >= MAX_REAL_LEVEL and xp // interval > previous_xp // interval:
            self._milestones[skill] = xp - xp % interval
            self._ticks_waited = 0

    def on_tick(self) -> List[DomainEvent]:
        emitted: List[DomainEvent] = []

        if self._levelled or self._milestones:
            self._ticks_waited += 1
            if self._ticks_waited > self._config.batch_ticks:
                self._ticks_waited = 0
                emitted.extend(self._notify_levels())
                emitted.extend(self._notify_milestones())

        if self._config.xp_update_interval_ticks > 0 and self._gains:
            self._update_ticks += 1
            if self._update_ticks >= self._config.xp_update_interval_ticks:
                self._update_ticks = 0
                emitted.append(self._notify_gains())

        for event in emitted:
            self._emit(event)
        return emitted

    def _notify_levels(self) -> List[DomainEvent]:
        if not self._levelled:
            return []
        levelled = dict(self._levelled)
        self._levelled.clear()

        summary = ", ".join(f"{skill} to {new}" for skill, (_, new) in levelled.items())
        fields: Dict[str, object] = {"skills": summary, "total_level": self.total_level}
        for skill, (old, new) in levelled.items():
            fields[f"{skill.lower()}_level"] = new
            fields[f"{skill.lower()}_previous_level"] = old

        top_level = max(new for _, new in levelled.values())
        return [
            self._events.create(
                EventCategory.LEVEL_UP,
                ", ".join(levelled),
                fields={**fields, "level": top_level},
            )
        ]

    def _notify_milestones(self) -> List[DomainEvent]:
        if not self._milestones:
            return []
        milestones = dict(self._milestones)
        self._milestones.clear()

        summary = ", ".join(f"{skill} to {xp:,} XP" for skill, xp in milestones.items())
        fields: Dict[str, object] = {
            "skills": summary,
            "interval": self._config.xp_milestone_interval,
            "total_xp": sum(self._xp.values()),
        }
        for skill, xp in milestones.items():
            fields[f"{skill.lower()}_xp"] = xp

        return [self._events.create(EventCategory.XP_MILESTONE, ", ".join(milestones), fields=fields)]

    def _notify_gains(self) -> DomainEvent:
        gains = dict(self._gains)
        self._gains.clear()
        fields: Dict[str, object] = {f"{skill.lower()}_xp_gained": xp for skill, xp in gains.items()}
        fields["total_xp_gained"] = sum(gains.values())
        return self._events.create(EventCategory.XP_UPDATE, ", ".join(gains), fields=fields)

    @property
    def total_level(self) -> int:
        return sum(min(level, MAX_REAL_LEVEL) for level in self._levels.values())
