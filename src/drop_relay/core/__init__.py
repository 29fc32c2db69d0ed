"""
Core Layer - Correlation of partial signals into domain events.

This module provides:
    - KillCountCache: bounded, idle-expiring subject -> count cache
    - KillCorrelator: joins count, duration and loot signals per subject
    - Auxiliary handlers for drops, collection log, combat tasks, pets,
      quests and experience
    - EventPipeline: single entry point for the host game loop
    - ThreadScheduler / ManualScheduler: deferred flush timers

Concurrency:
    Game callbacks are single-threaded. Deferred flushes run on timer
    threads, so emission is guarded per correlation and the cache is
    lock-protected.
"""

from .events import DomainEvent, EventCategory, EventFactory, TokenSource
from .scheduler import ManualScheduler, Scheduler, ThreadScheduler
from .kill_counts import CacheConfig, CountStore, KillCountCache, LootSourceType, cache_key
from .correlator import (
    MULTI_PART_ENCOUNTERS,
    CorrelatorConfig,
    CorrelatorStats,
    KillCorrelator,
    PendingCorrelation,
)
from .handlers import (
    CollectionLogHandler,
    CombatTaskHandler,
    DropHandler,
    ExperienceConfig,
    ExperienceHandler,
    ItemPricer,
    PetHandler,
    QuestHandler,
)
from .pipeline import EventPipeline

__all__ = [
    # Events
    "DomainEvent",
    "EventCategory",
    "EventFactory",
    "TokenSource",
    # Scheduling
    "ManualScheduler",
    "Scheduler",
    "ThreadScheduler",
    # Kill counts
    "CacheConfig",
    "CountStore",
    "KillCountCache",
    "LootSourceType",
    "cache_key",
    # Correlation
    "MULTI_PART_ENCOUNTERS",
    "CorrelatorConfig",
    "CorrelatorStats",
    "KillCorrelator",
    "PendingCorrelation",
    # Handlers
    "CollectionLogHandler",
    "CombatTaskHandler",
    "DropHandler",
    "ExperienceConfig",
    "ExperienceHandler",
    "ItemPricer",
    "PetHandler",
    "QuestHandler",
    # Orchestration
    "EventPipeline",
]
