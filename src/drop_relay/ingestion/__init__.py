"""
Ingestion Layer - Game text to typed partial signals.

This module provides:
    - SignalParser: ordered regex families for kill counts, durations,
      personal bests, team sizes and item names
    - canonical_name: boss/activity alias table lookup
    - parse_duration / format_duration: game timer codec
    - Notification parsers for combat tasks, pets and quest titles

Usage:
    from drop_relay.ingestion import SignalParser, canonical_name

    parser = SignalParser()
    signals = parser.parse("Your Vorkath kill count is: 120.")
    canonical_name("cox cm")  # "Chambers of Xeric Challenge Mode"
"""

# Models
from .models import NameTopic, PartialSignal, SignalKind

# Names and timers
from .aliases import BOSS_ALIASES, canonical_name, is_raid
from .durations import format_duration, parse_duration

# Parsers
from .parser import CLUE_PREFIX, SignalParser, strip_tags
from .notifications import (
    CombatTask,
    CombatTaskTier,
    is_pet_name,
    parse_clan_pet,
    parse_combat_task,
    parse_pet_primer,
    parse_quest_title,
    pet_source,
)

__all__ = [
    # Models
    "NameTopic",
    "PartialSignal",
    "SignalKind",
    # Names and timers
    "BOSS_ALIASES",
    "canonical_name",
    "is_raid",
    "format_duration",
    "parse_duration",
    # Parsers
    "CLUE_PREFIX",
    "SignalParser",
    "strip_tags",
    "CombatTask",
    "CombatTaskTier",
    "is_pet_name",
    "parse_clan_pet",
    "parse_combat_task",
    "parse_pet_primer",
    "parse_quest_title",
    "pet_source",
]
