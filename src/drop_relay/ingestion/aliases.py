"""
Boss and activity name normalization.

Players, chat commands and the boss kill log refer to the same subject by
many names ("cox", "olm", "raids", "Chambers of Xeric"). Every component
that keys anything by subject name (the correlator, the kill-count cache,
the router's history) runs names through canonical_name() so the same boss
is never tracked under two keys.

The table is written canonical -> aliases for readability and inverted once
at import time into BOSS_ALIASES (alias -> canonical). Lookups are
case-insensitive; an " (echo)" suffix is resolved recursively and
re-appended as " (Echo)". Names not in the table pass through unchanged.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ECHO_SUFFIX = " (echo)"

GAUNTLET_NAME = "Gauntlet"
GAUNTLET_BOSS = "Crystalline Hunllef"
CG_NAME = "Corrupted Gauntlet"
CG_BOSS = "Corrupted Hunllef"

TOA = "Tombs of Amascut"
TOB = "Theatre of Blood"
COX = "Chambers of Xeric"


_CANONICAL_NAMES: Dict[str, Tuple[str, ...]] = {
    # =========================================================================
    # Bosses
    # =========================================================================
    "Corporeal Beast": ("corp",),
    "TzTok-Jad": ("jad", "tzhaar fight cave"),
    "Kalphite Queen": ("kq",),
    "Chaos Elemental": ("chaos ele",),
    "Grotesque Guardians": ("dusk", "dawn", "gargs", "ggs", "gg"),
    "Crazy Archaeologist": ("crazy arch",),
    "Deranged Archaeologist": ("deranged arch",),
    "Giant Mole": ("mole",),
    "Vet'ion": ("vetion",),
    "Calvar'ion": ("calvarion", "calv"),
    "Venenatis": ("vene",),
    "King Black Dragon": ("kbd",),
    "Vorkath": ("vork",),
    "Abyssal Sire": ("sire",),
    "Thermonuclear Smoke Devil": ("smoke devil", "thermy"),
    "Cerberus": ("cerb",),
    "TzKal-Zuk": ("zuk", "inferno"),
    "Alchemical Hydra": ("hydra",),
    "Commander Zilyana": ("sara", "saradomin", "zilyana", "zily"),
    "K'ril Tsutsaroth": ("zammy", "zamorak", "kril", "kril tsutsaroth"),
    "Kree'arra": ("arma", "kree", "kreearra", "armadyl"),
    "General Graardor": ("bando", "bandos", "graardor"),
    "Dagannoth Supreme": ("supreme",),
    "Dagannoth Rex": ("rex",),
    "Dagannoth Prime": ("prime",),
    "Wintertodt": ("wt",),
    "Barrows Chests": ("barrows",),
    "Herbiboar": ("herbi",),
    "Phantom Muspah": ("phantom", "muspah", "pm"),
    "Leviathan": ("the leviathan", "levi"),
    "Duke Sucellus": ("duke",),
    "Whisperer": ("the whisperer", "whisp", "wisp"),
    "Vardorvis": ("vard",),
    "Leviathan (awakened)": (
        "leviathan awakened", "the leviathan awakened", "levi awakened",
    ),
    "Duke Sucellus (awakened)": ("duke sucellus awakened", "duke awakened"),
    "Whisperer (awakened)": (
        "whisperer awakened", "the whisperer awakened", "whisp awakened", "wisp awakened",
    ),
    "Vardorvis (awakened)": ("vardorvis awakened", "vard awakened"),
    "Lunar Chest": ("lunar chests", "perilous moons", "perilous moon", "moons of peril"),
    "Sol Heredit": ("sol", "colo", "colosseum", "fortis colosseum"),
    "Amoxliatl": ("amox",),
    "Hueycoatl": ("the hueycoatl", "huey"),

    # =========================================================================
    # Chambers of Xeric
    # =========================================================================
    "Chambers of Xeric": ("cox", "xeric", "chambers", "olm", "raids"),
    "Chambers of Xeric Solo": ("cox 1", "cox solo"),
    "Chambers of Xeric 2 players": ("cox 2", "cox duo"),
    "Chambers of Xeric 3 players": ("cox 3",),
    "Chambers of Xeric 4 players": ("cox 4",),
    "Chambers of Xeric 5 players": ("cox 5",),
    "Chambers of Xeric 6 players": ("cox 6",),
    "Chambers of Xeric 7 players": ("cox 7",),
    "Chambers of Xeric 8 players": ("cox 8",),
    "Chambers of Xeric 9 players": ("cox 9",),
    "Chambers of Xeric 10 players": ("cox 10",),
    "Chambers of Xeric 11-15 players": (
        "cox 11-15", "cox 11", "cox 12", "cox 13", "cox 14", "cox 15",
    ),
    "Chambers of Xeric 16-23 players": (
        "cox 16-23", "cox 16", "cox 17", "cox 18", "cox 19",
        "cox 20", "cox 21", "cox 22", "cox 23",
    ),
    "Chambers of Xeric 24+ players": ("cox 24", "cox 24+"),
    "Chambers of Xeric Challenge Mode": (
        "chambers of xeric: challenge mode", "chambers of xeric - challenge mode",
        "cox cm", "xeric cm", "chambers cm", "olm cm", "raids cm",
    ),
    "Chambers of Xeric Challenge Mode Solo": ("cox cm 1", "cox cm solo"),
    "Chambers of Xeric Challenge Mode 2 players": ("cox cm 2", "cox cm duo"),
    "Chambers of Xeric Challenge Mode 3 players": ("cox cm 3",),
    "Chambers of Xeric Challenge Mode 4 players": ("cox cm 4",),
    "Chambers of Xeric Challenge Mode 5 players": ("cox cm 5",),
    "Chambers of Xeric Challenge Mode 6 players": ("cox cm 6",),
    "Chambers of Xeric Challenge Mode 7 players": ("cox cm 7",),
    "Chambers of Xeric Challenge Mode 8 players": ("cox cm 8",),
    "Chambers of Xeric Challenge Mode 9 players": ("cox cm 9",),
    "Chambers of Xeric Challenge Mode 10 players": ("cox cm 10",),
    "Chambers of Xeric Challenge Mode 11-15 players": (
        "cox cm 11-15", "cox cm 11", "cox cm 12", "cox cm 13", "cox cm 14", "cox cm 15",
    ),
    "Chambers of Xeric Challenge Mode 16-23 players": (
        "cox cm 16-23", "cox cm 16", "cox cm 17", "cox cm 18", "cox cm 19",
        "cox cm 20", "cox cm 21", "cox cm 22", "cox cm 23",
    ),
    "Chambers of Xeric Challenge Mode 24+ players": ("cox cm 24", "cox cm 24+"),

    # =========================================================================
    # Theatre of Blood
    # =========================================================================
    "Theatre of Blood": ("tob", "theatre", "verzik", "verzik vitur", "raids 2"),
    "Theatre of Blood Solo": ("tob 1", "tob solo"),
    "Theatre of Blood 2 players": ("tob 2", "tob duo"),
    "Theatre of Blood 3 players": ("tob 3",),
    "Theatre of Blood 4 players": ("tob 4",),
    "Theatre of Blood 5 players": ("tob 5",),
    "Theatre of Blood Entry Mode": (
        "theatre of blood: story mode", "tob sm", "tob story mode", "tob story",
        "theatre of blood: entry mode", "tob em", "tob entry mode", "tob entry",
    ),
    "Theatre of Blood Hard Mode": (
        "theatre of blood: hard mode", "tob cm", "tob hm", "tob hard mode", "tob hard", "hmt",
    ),
    "Theatre of Blood Hard Mode Solo": ("hmt 1", "hmt solo"),
    "Theatre of Blood Hard Mode 2 players": ("hmt 2", "hmt duo"),
    "Theatre of Blood Hard Mode 3 players": ("hmt 3",),
    "Theatre of Blood Hard Mode 4 players": ("hmt 4",),
    "Theatre of Blood Hard Mode 5 players": ("hmt 5",),

    # =========================================================================
    # Tombs of Amascut
    # =========================================================================
    "Tombs of Amascut": ("toa", "tombs", "amascut", "warden", "wardens", "raids 3"),
    "Tombs of Amascut Solo": ("toa 1", "toa solo"),
    "Tombs of Amascut 2 players": ("toa 2", "toa duo"),
    "Tombs of Amascut 3 players": ("toa 3",),
    "Tombs of Amascut 4 players": ("toa 4",),
    "Tombs of Amascut 5 players": ("toa 5",),
    "Tombs of Amascut 6 players": ("toa 6",),
    "Tombs of Amascut 7 players": ("toa 7",),
    "Tombs of Amascut 8 players": ("toa 8",),
    "Tombs of Amascut Entry Mode": (
        "toa entry", "tombs of amascut - entry", "toa entry mode",
        "tombs of amascut: entry mode",
    ),
    "Tombs of Amascut Entry Mode Solo": ("toa entry 1", "toa entry solo"),
    "Tombs of Amascut Entry Mode 2 players": ("toa entry 2", "toa entry duo"),
    "Tombs of Amascut Entry Mode 3 players": ("toa entry 3",),
    "Tombs of Amascut Entry Mode 4 players": ("toa entry 4",),
    "Tombs of Amascut Entry Mode 5 players": ("toa entry 5",),
    "Tombs of Amascut Entry Mode 6 players": ("toa entry 6",),
    "Tombs of Amascut Entry Mode 7 players": ("toa entry 7",),
    "Tombs of Amascut Entry Mode 8 players": ("toa entry 8",),
    "Tombs of Amascut Expert Mode": (
        "tombs of amascut: expert mode", "toa expert", "tombs of amascut - expert",
        "toa expert mode",
    ),
    "Tombs of Amascut Expert Mode Solo": ("toa expert 1", "toa expert solo"),
    "Tombs of Amascut Expert Mode 2 players": ("toa expert 2", "toa expert duo"),
    "Tombs of Amascut Expert Mode 3 players": ("toa expert 3",),
    "Tombs of Amascut Expert Mode 4 players": ("toa expert 4",),
    "Tombs of Amascut Expert Mode 5 players": ("toa expert 5",),
    "Tombs of Amascut Expert Mode 6 players": ("toa expert 6",),
    "Tombs of Amascut Expert Mode 7 players": ("toa expert 7",),
    "Tombs of Amascut Expert Mode 8 players": ("toa expert 8",),

    # =========================================================================
    # Gauntlet, Nightmare, Sepulchre
    # =========================================================================
    "Gauntlet": ("gaunt", "gauntlet", "the gauntlet"),
    "Corrupted Gauntlet": ("cgaunt", "cgauntlet", "the corrupted gauntlet", "cg"),
    "Nightmare": ("nm", "tnm", "nmare", "the nightmare"),
    "Phosani's Nightmare": (
        "pnm", "phosani", "phosanis", "phosani nm", "phosani nightmare", "phosanis nightmare",
    ),
    "Hallowed Sepulchre": ("hs", "sepulchre", "ghc"),
    "Hallowed Sepulchre Floor 1": ("hs1", "hs 1"),
    "Hallowed Sepulchre Floor 2": ("hs2", "hs 2"),
    "Hallowed Sepulchre Floor 3": ("hs3", "hs 3"),
    "Hallowed Sepulchre Floor 4": ("hs4", "hs 4"),
    "Hallowed Sepulchre Floor 5": ("hs5", "hs 5"),

    # =========================================================================
    # Agility courses
    # =========================================================================
    "Colossal Wyrm Agility Course (Basic)": (
        "wbac", "cwbac", "wyrmb", "wyrmbasic", "wyrm basic", "colossal basic",
        "colossal wyrm basic",
    ),
    "Colossal Wyrm Agility Course (Advanced)": (
        "waac", "cwaac", "wyrma", "wyrmadvanced", "wyrm advanced", "colossal advanced",
        "colossal wyrm advanced",
    ),
    "Prifddinas Agility Course": ("prif", "prifddinas"),
    "Shayzien Basic Agility Course": ("shayb", "sbac", "shayzienbasic", "shayzien basic"),
    "Shayzien Advanced Agility Course": (
        "shaya", "saac", "shayadv", "shayadvanced", "shayzien advanced",
    ),
    "Ape Atoll Agility": ("aa", "ape atoll"),
    "Draynor Village Rooftop": ("draynor", "draynor agility"),
    "Al Kharid Rooftop": (
        "al kharid", "al kharid agility", "al-kharid", "al-kharid agility",
        "alkharid", "alkharid agility",
    ),
    "Varrock Rooftop": ("varrock", "varrock agility"),
    "Canifis Rooftop": ("canifis", "canifis agility"),
    "Falador Rooftop": ("fally", "fally agility", "falador", "falador agility"),
    "Seers' Village Rooftop": (
        "seers", "seers agility", "seers village", "seers village agility",
        "seers'", "seers' agility", "seers' village", "seers' village agility",
        "seer's", "seer's agility", "seer's village", "seer's village agility",
    ),
    "Pollnivneach Rooftop": ("pollnivneach", "pollnivneach agility"),
    "Rellekka Rooftop": ("rellekka", "rellekka agility"),
    "Ardougne Rooftop": (
        "ardy", "ardy agility", "ardy rooftop", "ardougne", "ardougne agility",
    ),
    "Agility Pyramid": ("ap", "pyramid"),
    "Barbarian Outpost": ("barb", "barb outpost"),
    "Agility Arena": ("brimhaven", "brimhaven agility"),
    "Dorgesh-Kaan Agility": ("dorg", "dorgesh kaan", "dorgesh-kaan"),
    "Gnome Stronghold Agility": ("gnome stronghold",),
    "Penguin Agility": ("penguin",),
    "Werewolf Agility": ("werewolf",),
    "Werewolf Skullball": ("skullball",),
    "Wilderness Agility": ("wildy", "wildy agility"),

    # =========================================================================
    # Minigames and misc
    # =========================================================================
    "TzHaar-Ket-Rak's First Challenge": ("jad 1",),
    "TzHaar-Ket-Rak's Second Challenge": ("jad 2",),
    "TzHaar-Ket-Rak's Third Challenge": ("jad 3",),
    "TzHaar-Ket-Rak's Fourth Challenge": ("jad 4",),
    "TzHaar-Ket-Rak's Fifth Challenge": ("jad 5",),
    "TzHaar-Ket-Rak's Sixth Challenge": ("jad 6",),
    "Guardians of the Rift": ("gotr", "runetodt", "rifts closed"),
    "Tempoross": ("fishingtodt", "fishtodt"),
    "Hunter Rumours": (
        "hunterrumour", "hunter contract", "hunter contracts", "hunter tasks",
        "hunter task", "rumours", "rumour",
    ),
    "Bird's egg offerings": ("bird egg", "bird eggs", "bird's egg", "bird's eggs"),
    "crystal chest": ("crystal chest",),
    "Larran's small chest": ("larran small chest", "larran's small chest"),
    "Larran's big chest": (
        "larran chest", "larran's chest", "larran big chest", "larran's big chest",
    ),
    "Brimstone chest": ("brimstone chest",),
}


def _build_lookup(table: Dict[str, Tuple[str, ...]]) -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for canonical, aliases in table.items():
        for alias in aliases:
            if alias in lookup and lookup[alias] != canonical:
                raise ValueError(
                    f"Alias {alias!r} maps to both {lookup[alias]!r} and {canonical!r}"
                )
            lookup[alias] = canonical

    # Canonical names resolve to themselves regardless of case
    for canonical in table:
        lookup.setdefault(canonical.lower(), canonical)
    return lookup


BOSS_ALIASES: Dict[str, str] = _build_lookup(_CANONICAL_NAMES)

CANONICAL_SUBJECTS = frozenset(_CANONICAL_NAMES)


def canonical_name(name: Optional[str]) -> Optional[str]:
    """
    Resolve a colloquial or abbreviated name to its canonical subject.

    Args:
        name: Name as typed by a player or printed by the game

    Returns:
        Canonical subject name, the stripped input if unknown, or None for
        empty input
    """
    if name is None:
        return None

    stripped = name.strip()
    if not stripped:
        return None

    lowered = stripped.lower()
    if lowered.endswith(ECHO_SUFFIX):
        base = canonical_name(stripped[: -len(ECHO_SUFFIX)])
        return f"{base} (Echo)"

    return BOSS_ALIASES.get(lowered, stripped)


def is_raid(subject: Optional[str]) -> bool:
    """Whether the subject belongs to one of the three raid families."""
    if not subject:
        return False
    return subject.startswith((TOA, TOB, COX))
