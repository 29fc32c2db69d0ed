"""
Parsers for one-line game notifications that need no correlation.

Combat tasks, pet drops and quest completions each arrive as a single
message (or a widget title, for quests). These parsers only extract
values; the handlers in drop_relay.core decide what to emit.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Combat tasks
# =============================================================================

COMBAT_TASK_RE = re.compile(
    r"Congratulations, you've completed an? (?P<tier>\w+) combat task: (?P<task>.+)\."
)
TASK_POINTS_RE = re.compile(r"\s+\(\d+ points?\)$")


class CombatTaskTier(Enum):
    """Combat achievement tiers and the points each task is worth."""
    EASY = 1
    MEDIUM = 2
    HARD = 3
    ELITE = 4
    MASTER = 5
    GRANDMASTER = 6

    @property
    def points(self) -> int:
        return self.value

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["CombatTaskTier"]:
        if not name:
            return None
        try:
            return cls[name.strip().upper()]
        except KeyError:
            logger.debug(f"Unknown combat task tier: {name!r}")
            return None


@dataclass(frozen=True)
class CombatTask:
    tier: CombatTaskTier
    task: str


def parse_combat_task(message: str) -> Optional[CombatTask]:
    """
    Parse a combat task completion message.

    "Congratulations, you've completed a hard combat task: Whack-a-Mole (3 points)."
    yields CombatTask(HARD, "Whack-a-Mole").
    """
    match = COMBAT_TASK_RE.search(message)
    if not match:
        return None

    tier = CombatTaskTier.from_name(match.group("tier"))
    if tier is None:
        return None

    task = TASK_POINTS_RE.sub("", match.group("task"), count=1).strip()
    return CombatTask(tier=tier, task=task)


# =============================================================================
# Pets
# =============================================================================

PET_RE = re.compile(r"You (?:have a funny feeling like you|feel something weird sneaking).*")
CLAN_PET_RE = re.compile(
    r"\b(?P<user>[\w\s]+) (?:has a funny feeling like .+ followed|"
    r"feels something weird sneaking into .+ backpack): (?P<pet>.+) at (?P<milestone>.+)"
)

# Pet item name -> where it drops from
PET_SOURCES: Dict[str, str] = {
    "Abyssal orphan": "Abyssal Sire",
    "Baby mole": "Giant Mole",
    "Baron": "Duke Sucellus",
    "Butch": "Vardorvis",
    "Callisto cub": "Callisto",
    "Chompy chick": "Chompy bird",
    "Dom": "Doom of Mokhaiotl",
    "Hellpuppy": "Cerberus",
    "Herbi": "Herbiboar",
    "Huberte": "Hueycoatl",
    "Ikkle hydra": "Alchemical Hydra",
    "Jal-nib-rek": "TzKal-Zuk",
    "Kalphite princess": "Kalphite Queen",
    "Lil' creator": "Spoils of war",
    "Lil' zik": "Theatre of Blood",
    "Lil'viathan": "Leviathan",
    "Little nightmare": "Nightmare",
    "Moxi": "Amoxliatl",
    "Muphin": "Phantom Muspah",
    "Nexling": "Nex",
    "Nid": "Araxxor",
    "Noon": "Grotesque Guardians",
    "Olmlet": "Chambers of Xeric",
    "Pet chaos elemental": "Chaos Elemental",
    "Pet dagannoth prime": "Dagannoth Prime",
    "Pet dagannoth rex": "Dagannoth Rex",
    "Pet dagannoth supreme": "Dagannoth Supreme",
    "Pet dark core": "Corporeal Beast",
    "Pet general graardor": "General Graardor",
    "Pet k'ril tsutsaroth": "K'ril Tsutsaroth",
    "Pet kraken": "Kraken",
    "Pet smoke devil": "Thermonuclear Smoke Devil",
    "Pet snakeling": "Zulrah",
    "Pet zilyana": "Commander Zilyana",
    "Phoenix": "Wintertodt",
    "Prince black dragon": "King Black Dragon",
    "Scorpia's offspring": "Scorpia",
    "Scurry": "Scurrius",
    "Skotos": "Skotizo",
    "Smolcano": "Zalcano",
    "Sraracha": "Sarachnis",
    "Tiny tempor": "Tempoross",
    "Tumeken's guardian": "Tombs of Amascut",
    "Tzrek-jad": "TzTok-Jad",
    "Venenatis spiderling": "Venenatis",
    "Vet'ion jr.": "Vet'ion",
    "Vorki": "Vorkath",
    "Wisp": "Whisperer",
    "Yami": "Yama",
    "Youngllef": "Crystalline Hunllef",
}


def uc_first(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def is_pet_name(item_name: Optional[str]) -> bool:
    """Whether an item name is a pet ("Pet ..." or a known pet name)."""
    if not item_name:
        return False
    return item_name.startswith("Pet ") or uc_first(item_name) in PET_SOURCES


def pet_source(pet_name: Optional[str]) -> Optional[str]:
    if not pet_name:
        return None
    return PET_SOURCES.get(uc_first(pet_name))


@dataclass(frozen=True)
class PetPrimer:
    """The "funny feeling" message that announces a pet is coming."""
    duplicate: bool
    backpack: bool


@dataclass(frozen=True)
class ClanPetBroadcast:
    user: str
    pet: str
    milestone: str


def parse_pet_primer(message: str) -> Optional[PetPrimer]:
    if not PET_RE.fullmatch(message):
        return None
    return PetPrimer(
        duplicate="would have been" in message,
        backpack=" backpack" in message,
    )


def parse_clan_pet(message: str) -> Optional[ClanPetBroadcast]:
    match = CLAN_PET_RE.search(message)
    if not match:
        return None
    milestone = match.group("milestone")
    if milestone.endswith("."):
        milestone = milestone[:-1]
    return ClanPetBroadcast(
        user=match.group("user").strip(),
        pet=match.group("pet").strip(),
        milestone=milestone,
    )


# =============================================================================
# Quests
# =============================================================================

# "You have completed The Corsair Curse!"
QUEST_PATTERN_1 = re.compile(
    r".+?ve\.*? (?P<verb>been|rebuilt|.+?ed)? ?(?:the )?'?(?P<quest>.+?)'?(?: [Qq]uest)?[!.]?$"
)
# "'One Small Favour' completed!"
QUEST_PATTERN_2 = re.compile(
    r"'?(?P<quest>.+?)'?(?: [Qq]uest)? (?P<verb>[a-z]\w+?ed)?(?: f.*?)?[!.]?$"
)

RFD_TAGS = ("Another Cook", "freed", "defeated", "saved")
WORD_QUEST_IN_NAME_TAGS = (
    "Another Cook", "Doric", "Heroes", "Legends", "Observatory", "Olaf", "Waterfall",
)
QUEST_REPLACEMENTS = {
    "Lumbridge Cook... again": "Another Cook's",
    "Skrach 'Bone Crusher' Uglogwee": "Skrach Uglogwee",
}

_QUEST_PREFIXES = ("You have completed ", "Congratulations! You've completed ")


def parse_quest_title(text: Optional[str]) -> Optional[str]:
    """
    Extract the quest name from a quest completion widget title.

    Args:
        text: Widget title, e.g. "You have completed Dragon Slayer II!"

    Returns:
        The quest name, or None when the title is not a completion
    """
    if not text:
        return None

    match = QUEST_PATTERN_1.fullmatch(text) or QUEST_PATTERN_2.fullmatch(text)
    if match is None:
        return _clean_quest_name(text)

    quest = match.group("quest")
    quest = QUEST_REPLACEMENTS.get(quest, quest)
    verb = match.group("verb") or ""

    if "kind of" in verb:
        return None
    if "completely" in verb:
        quest += " II"

    # Recipe for Disaster subquests
    if any(tag in quest + verb for tag in RFD_TAGS):
        quest = f"Recipe for Disaster - {quest}"

    if any(tag in quest for tag in WORD_QUEST_IN_NAME_TAGS):
        quest += " Quest"

    return quest


def _clean_quest_name(text: str) -> Optional[str]:
    cleaned = text
    for prefix in _QUEST_PREFIXES:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
    cleaned = re.sub(r"[!.]$", "", cleaned).strip()
    if len(cleaned) < 3:
        return None
    return cleaned
