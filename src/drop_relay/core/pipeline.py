"""
EventPipeline - game callbacks in, DomainEvents out.

Single entry point for the host game loop. Each callback is parsed, fed to
the correlator and the auxiliary handlers, and every resulting DomainEvent
goes to one emit callback (normally SubmissionRouter.handle).

All callbacks are invoked from the single-threaded game loop. Nothing raised
inside the pipeline propagates back to it; failures are logged and the
offending input is dropped.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Tuple

from drop_relay.core.correlator import CorrelatorConfig, KillCorrelator
from drop_relay.core.events import DomainEvent, EventFactory, TokenSource
from drop_relay.core.handlers import (
    CollectionLogHandler,
    CombatTaskHandler,
    DropHandler,
    ExperienceConfig,
    ExperienceHandler,
    ItemPricer,
    PetHandler,
    QuestHandler,
)
from drop_relay.core.kill_counts import CacheConfig, CountStore, KillCountCache, LootSourceType
from drop_relay.core.scheduler import Scheduler, ThreadScheduler
from drop_relay.ingestion.models import SignalKind
from drop_relay.ingestion.parser import RAID_COMPLETE_PREFIX, SignalParser, strip_tags

logger = logging.getLogger(__name__)


class _NoPricer:
    """Prices every item at zero when the host provides no lookup."""

    def price(self, item_id: int) -> int:
        return 0

    def name(self, item_id: int) -> str:
        return f"Item {item_id}"


class EventPipeline:
    """
    Orchestrates parsing, correlation and the auxiliary handlers.

    Usage:
        pipeline = EventPipeline(emit=router.handle, player_name="Zezima")
        pipeline.on_game_message("Your Vorkath kill count is: 120.")
        pipeline.on_loot("Vorkath", [(11286, 1)])
        pipeline.on_tick()
    """

    def __init__(
        self,
        emit: Callable[[DomainEvent], None],
        player_name: str,
        account_hash: Optional[str] = None,
        scheduler: Optional[Scheduler] = None,
        pricer: Optional[ItemPricer] = None,
        count_store: Optional[CountStore] = None,
        correlator_config: Optional[CorrelatorConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        experience_config: Optional[ExperienceConfig] = None,
        tokens: Optional[TokenSource] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            emit: Receives every DomainEvent
            player_name: Local player's name
            account_hash: Local player's account hash
            scheduler: Deferred flush scheduler (ThreadScheduler by default)
            pricer: Item price/name lookup
            count_store: External kill count store
            correlator_config: Kill correlation windows
            cache_config: Kill-count cache bounds
            experience_config: Level and xp tracking
            tokens: Idempotency token source
        """
        self._emit = emit
        self._scheduler = scheduler or ThreadScheduler()
        self._parser = SignalParser()
        self._events = EventFactory(player_name, account_hash=account_hash, tokens=tokens)
        self._cache = KillCountCache(
            cache_config, store=count_store, clock=self._scheduler.now
        )
        self._correlator = KillCorrelator(
            emit=self._emit_event,
            cache=self._cache,
            scheduler=self._scheduler,
            events=self._events,
            config=correlator_config,
        )

        self._drops = DropHandler(
            self._emit_event, self._events, pricer or _NoPricer(), self._cache, self._correlator
        )
        self._clogs = CollectionLogHandler(self._emit_event, self._events, self._cache)
        self._combat_tasks = CombatTaskHandler(self._emit_event, self._events)
        self._pets = PetHandler(self._emit_event, self._events, self._cache)
        self._quests = QuestHandler(self._emit_event, self._events)
        self._experience = ExperienceHandler(self._emit_event, self._events, experience_config)

        self._events_emitted = 0

    @property
    def parser(self) -> SignalParser:
        return self._parser

    @property
    def correlator(self) -> KillCorrelator:
        return self._correlator

    @property
    def cache(self) -> KillCountCache:
        return self._cache

    @property
    def events(self) -> EventFactory:
        return self._events

    @property
    def events_emitted(self) -> int:
        return self._events_emitted

    # =========================================================================
    # Game loop callbacks
    # =========================================================================

    def on_game_message(self, message: str) -> None:
        """A game message appeared in the chat box."""
        self._safely("game message", self._handle_game_message, message)

    def on_friends_chat(self, message: str) -> None:
        """Chambers of Xeric completions are announced in friends chat."""
        if strip_tags(message).startswith(RAID_COMPLETE_PREFIX):
            self.on_game_message(message)

    def on_clan_message(self, message: str) -> None:
        self._safely("clan message", self._pets.on_clan_message, strip_tags(message))

    def on_loot(
        self,
        source: str,
        items: Iterable[Tuple[int, int]],
        source_type: LootSourceType = LootSourceType.NPC,
    ) -> None:
        """Loot was received; items are (item_id, quantity) pairs."""
        self._clogs.note_source(source)
        self._safely("loot", self._drops.on_loot, source, list(items), source_type)

    def on_tick(self) -> None:
        self._safely("tick", self._correlator.on_tick)
        self._safely("pet tick", self._pets.on_tick)
        self._safely("experience tick", self._experience.on_tick)

    def on_skill_update(self, skill: str, level: int, xp: int) -> None:
        self._safely("skill update", self._experience.on_skill_update, skill, level, xp)

    def on_quest_widget(
        self,
        title: str,
        quests_completed: Optional[int] = None,
        quests_total: Optional[int] = None,
        quest_points: Optional[int] = None,
    ) -> None:
        self._safely(
            "quest widget",
            self._quests.on_quest_widget,
            title,
            quests_completed,
            quests_total,
            quest_points,
        )

    def flush(self) -> int:
        """Emit everything still pending (shutdown or end of replay)."""
        return self._correlator.flush_all()

    def reset(self) -> None:
        """Forget all in-flight state (logout, world hop)."""
        self._correlator.reset()
        self._pets.reset()
        self._experience.reset()
        self._cache.invalidate_all()

    # =========================================================================
    # Internals
    # =========================================================================

    def _handle_game_message(self, message: str) -> None:
        text = strip_tags(message)
        signals = self._parser.parse(text)

        self._correlator.on_signals(signals)

        for signal in signals:
            if signal.kind == SignalKind.NAME:
                self._pets.on_signal(signal)
                self._clogs.on_signal(signal)

        self._combat_tasks.on_message(text)
        self._pets.on_message(text)

    def _emit_event(self, event: DomainEvent) -> None:
        self._events_emitted += 1
        try:
            self._emit(event)
        except Exception as e:
            logger.error(f"Error handing off {event.category.value} event {event.token}: {e}")

    def _safely(self, what: str, func: Callable[..., Any], *args: Any) -> None:
        try:
            func(*args)
        except Exception as e:
            logger.error(f"Error handling {what}: {e}", exc_info=True)
