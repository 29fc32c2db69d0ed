"""
Signal parser for game chat text.

Turns one line of game-produced text into zero or more PartialSignals.
The parser is stateless: the same line always yields the same signals, and
nothing here knows what came before. Putting signals together is the
correlator's job.

Regex families, each applied independently (first match within a family
wins, so more specific phrasings are declared before generic ones):
    - kill count, primary:   "Your Vorkath kill count is: 12."
    - kill count, secondary: "Your completed Theatre of Blood count is: 3."
    - clue scroll counts:    "You have completed 41 hard Treasure Trails."
    - duration / personal best, boss-specific before generic
    - team size:             "Team size: 3 players"
    - item names:            collection log and untradeable drop lines

Malformed numbers or timers never raise; the line just yields fewer signals.
"""

from __future__ import annotations

import logging
import re
from typing import List, NamedTuple, Optional, Pattern, Tuple

from .aliases import (
    CG_BOSS,
    CG_NAME,
    COX,
    GAUNTLET_BOSS,
    GAUNTLET_NAME,
    TOA,
    TOB,
    canonical_name,
)
from .durations import parse_duration
from .models import NameTopic, PartialSignal, SignalKind

logger = logging.getLogger(__name__)


CLUE_PREFIX = "Clue Scroll"
DELVE_BOSS = "Doom of Mokhaiotl"
SOLO = "Solo"

RAID_COMPLETE_PREFIX = "Congratulations - your raid is complete!"


# =============================================================================
# Count patterns
# =============================================================================

PRIMARY_COUNT_RE = re.compile(
    r"Your (?P<key>[\w\s:'-]+) (?P<type>kill|chest|completion|success) count is:? (?P<value>[\d,]+)"
)
SECONDARY_COUNT_RE = re.compile(
    r"Your (?P<type>kill|chest|completed|subdued) (?P<key>[\w\s:]+) count is:? (?P<value>[\d,]+)"
)
CLUE_COUNT_RE = re.compile(
    r"You have completed (?P<count>[\d,]+) (?P<tier>\w+) Treasure Trails\."
)

_SECONDARY_RAIDS = frozenset({
    TOB.lower(),
    TOA.lower(),
    COX.lower(),
    f"{COX} Challenge Mode".lower(),
})


# =============================================================================
# Duration patterns
# =============================================================================

_TIME = r"(\d*:*\d+:\d+\.?\d*)"

# Subjects a raid-family duration can belong to. The chat line is the same
# for every difficulty, so the duration is offered to each variant and the
# count or loot that follows decides.
TEAM_SIZE_CANDIDATES = (
    COX,
    f"{COX} Challenge Mode",
    "Nightmare",
    "Phosani's Nightmare",
)
TOA_CANDIDATES = (
    f"{TOA} Entry Mode",
    TOA,
    f"{TOA} Expert Mode",
)
TOA_EXPERT_CANDIDATES = (f"{TOA} Expert Mode",)
TOB_CANDIDATES = (
    f"{TOB} Entry Mode",
    TOB,
    f"{TOB} Hard Mode",
)


class DurationPattern(NamedTuple):
    """One duration phrasing and the subjects it can apply to."""
    regex: Pattern[str]
    candidates: Tuple[str, ...] = ()
    delve: bool = False


def _duration_table(suffix: str) -> Tuple[DurationPattern, ...]:
    """
    Build the ordered duration table for one message ending.

    Args:
        suffix: Regex for what follows the time, either the previous best
            or the new personal best marker
    """
    return (
        # Team patterns
        DurationPattern(
            re.compile(rf"Team size: .+? Duration: {_TIME}{suffix}"),
            TEAM_SIZE_CANDIDATES,
        ),
        DurationPattern(
            re.compile(rf"Team size: .+? Fight duration: {_TIME}{suffix}"),
            TEAM_SIZE_CANDIDATES,
        ),
        # ToA
        DurationPattern(
            re.compile(rf"{TOA}: Expert Mode total completion time: {_TIME}{suffix}"),
            TOA_EXPERT_CANDIDATES,
        ),
        DurationPattern(
            re.compile(rf"{TOA} total completion time: {_TIME}{suffix}"),
            TOA_CANDIDATES,
        ),
        # ToB
        DurationPattern(
            re.compile(rf"{TOB} completion time: {_TIME}{suffix}"),
            TOB_CANDIDATES,
        ),
        # Gauntlet
        DurationPattern(
            re.compile(rf"Corrupted challenge duration: {_TIME}{suffix}"),
            (CG_BOSS,),
        ),
        DurationPattern(
            re.compile(rf"Challenge duration: {_TIME}{suffix}"),
            (GAUNTLET_BOSS,),
        ),
        # Colosseum
        DurationPattern(
            re.compile(rf"Colosseum duration: {_TIME}{suffix}"),
            ("Sol Heredit",),
        ),
        # Delve
        DurationPattern(
            re.compile(rf"Delve level: (?P<level>\S+) duration: {_TIME}{suffix}"),
            delve=True,
        ),
        # Generic
        DurationPattern(re.compile(rf"Duration: {_TIME}{suffix}")),
        DurationPattern(re.compile(rf"Fight duration: {_TIME}{suffix}")),
    )


# "1:23. Personal best: 1:10" (the trailing period lands in the time group
# for team-size lines, which have no separating period)
TIME_PATTERNS = _duration_table(rf"\.? Personal best: {_TIME}\.*")
PB_PATTERNS = _duration_table(r" \(new personal best\)\.*")

TEAM_SIZE_RE = re.compile(r"Team size: (?P<size>\S+)(?: players?)?")


# =============================================================================
# Item name patterns
# =============================================================================

COLLECTION_LOG_RE = re.compile(r"New item added to your collection log: (?P<item>.+)")
UNTRADEABLE_DROP_RE = re.compile(r"Untradeable drop: (?P<item>.+)")

_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(text: str) -> str:
    """Remove game markup such as <col=ef1020> and collapse whitespace."""
    return " ".join(_TAG_RE.sub("", text).split())


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text.replace(",", ""))
    except ValueError:
        logger.debug(f"Ignoring malformed count: {text!r}")
        return None


def normalize_team_size(size: Optional[str]) -> Optional[str]:
    """Map the game's team size wording to the form sent downstream."""
    if not size:
        return None
    size = size.strip()
    if size.lower() in ("solo", "1"):
        return SOLO
    return size


def clue_subject(tier: str) -> str:
    """Cache key for clue scroll completions of a tier."""
    return f"{CLUE_PREFIX} ({tier.strip().capitalize()})"


def delve_subject(level: str) -> str:
    return f"{DELVE_BOSS} (Level: {level})"


class SignalParser:
    """
    Stateless parser from game text lines to partial signals.

    Usage:
        parser = SignalParser()
        for signal in parser.parse("Your Vorkath kill count is: 120."):
            correlator.on_signal(signal)
    """

    def parse(self, line: str) -> List[PartialSignal]:
        """
        Extract every signal a line carries.

        Args:
            line: Raw game message, markup allowed

        Returns:
            Signals in family order (count, clue, duration, team size, name)
        """
        if not line:
            return []

        text = strip_tags(line)
        signals: List[PartialSignal] = []

        count = self.parse_count(text)
        if count is not None:
            signals.append(count)

        clue = self.parse_clue(text)
        if clue is not None:
            signals.append(clue)

        team_size = self.parse_team_size(text)

        duration = self.parse_duration_line(text, team_size)
        if duration is not None:
            signals.append(duration)

        if team_size is not None:
            signals.append(
                PartialSignal(kind=SignalKind.TEAM_SIZE, raw=text, team_size=team_size)
            )

        name = self.parse_item_name(text)
        if name is not None:
            signals.append(name)

        if signals:
            logger.debug(f"Parsed {len(signals)} signal(s) from: {text}")
        return signals

    # =========================================================================
    # Families
    # =========================================================================

    def parse_count(self, text: str) -> Optional[PartialSignal]:
        """Kill/chest/completion count, primary phrasing before secondary."""
        subject: Optional[str] = None
        value: Optional[str] = None

        primary = PRIMARY_COUNT_RE.search(text)
        if primary:
            subject = self._primary_subject(primary.group("key"), primary.group("type"))
            value = primary.group("value")
        else:
            secondary = SECONDARY_COUNT_RE.search(text)
            if secondary:
                subject = self._secondary_subject(secondary.group("key"))
                value = secondary.group("value")

        if subject is None or value is None:
            return None

        count = _parse_int(value)
        if count is None:
            return None

        return PartialSignal(
            kind=SignalKind.COUNT,
            raw=text,
            subject=canonical_name(subject),
            count=count,
        )

    def parse_clue(self, text: str) -> Optional[PartialSignal]:
        """Treasure trail completion count for one tier."""
        match = CLUE_COUNT_RE.search(text)
        if not match:
            return None

        count = _parse_int(match.group("count"))
        if count is None:
            return None

        return PartialSignal(
            kind=SignalKind.COUNT,
            raw=text,
            subject=clue_subject(match.group("tier")),
            count=count,
        )

    def parse_duration_line(
        self,
        text: str,
        team_size: Optional[str] = None,
    ) -> Optional[PartialSignal]:
        """
        Duration or personal best line.

        New personal best phrasings are tried before "previous best" ones.
        Within each table the first matching pattern wins.
        """
        for patterns, is_new_record in ((PB_PATTERNS, True), (TIME_PATTERNS, False)):
            for pattern in patterns:
                match = pattern.regex.search(text)
                if not match:
                    continue
                return self._duration_signal(text, match, pattern, is_new_record, team_size)
        return None

    def parse_team_size(self, text: str) -> Optional[str]:
        match = TEAM_SIZE_RE.search(text)
        if not match:
            return None
        return normalize_team_size(match.group("size"))

    def parse_item_name(self, text: str) -> Optional[PartialSignal]:
        """Collection log and untradeable drop item names."""
        for regex, topic in (
            (COLLECTION_LOG_RE, NameTopic.COLLECTION_LOG),
            (UNTRADEABLE_DROP_RE, NameTopic.UNTRADEABLE_DROP),
        ):
            match = regex.search(text)
            if match:
                item = match.group("item").strip()
                if item:
                    return PartialSignal(
                        kind=SignalKind.NAME, raw=text, topic=topic, item_name=item
                    )
        return None

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _primary_subject(key: str, kind: str) -> Optional[str]:
        key = key.strip()
        kind = kind.lower()

        if kind == "chest":
            if key.lower() == "barrows":
                return key
            if key == "Lunar":
                return f"{key} {kind}"
            return None

        if kind == "completion":
            if key.lower() == GAUNTLET_NAME.lower():
                return GAUNTLET_BOSS
            if key.lower() == CG_NAME.lower():
                return CG_BOSS
            return None

        # kill, success
        return key

    @staticmethod
    def _secondary_subject(key: str) -> Optional[str]:
        key = key.strip()
        if key.lower() == "wintertodt":
            return key

        separator = key.rfind(":")
        raid = key[:separator] if separator > 0 else key
        if raid.strip().lower() in _SECONDARY_RAIDS:
            return key
        return None

    @staticmethod
    def _duration_signal(
        text: str,
        match: "re.Match[str]",
        pattern: DurationPattern,
        is_new_record: bool,
        team_size: Optional[str],
    ) -> Optional[PartialSignal]:
        groups = [g for g in match.groups() if g is not None]
        if pattern.delve:
            level, times = groups[0], groups[1:]
        else:
            level, times = None, groups

        duration = parse_duration(times[0])
        best = duration if is_new_record else parse_duration(times[1])
        if duration is None or best is None:
            return None

        if pattern.delve:
            return PartialSignal(
                kind=SignalKind.DURATION,
                raw=text,
                subject=delve_subject(level),
                duration=duration,
                best_duration=best,
                is_new_record=is_new_record,
                standalone=True,
            )

        return PartialSignal(
            kind=SignalKind.DURATION,
            raw=text,
            duration=duration,
            best_duration=best,
            is_new_record=is_new_record,
            team_size=team_size,
            candidates=pattern.candidates,
        )
