"""Tests for the boss alias table."""

import pytest

from drop_relay.ingestion.aliases import (
    BOSS_ALIASES,
    CANONICAL_SUBJECTS,
    canonical_name,
    is_raid,
)


class TestAliasTable:
    """Every entry in the table resolves to a canonical subject."""

    def test_every_alias_maps_to_canonical(self):
        for alias, canonical in BOSS_ALIASES.items():
            assert canonical in CANONICAL_SUBJECTS, alias
            assert alias == alias.lower()

    def test_every_alias_resolves(self):
        for alias, canonical in BOSS_ALIASES.items():
            assert canonical_name(alias) == canonical

    def test_every_alias_resolves_with_echo(self):
        for alias, canonical in BOSS_ALIASES.items():
            assert canonical_name(f"{alias} (echo)") == f"{canonical} (Echo)"

    def test_canonical_names_are_fixed_points(self):
        for canonical in CANONICAL_SUBJECTS:
            assert canonical_name(canonical) == canonical


class TestCanonicalName:
    @pytest.mark.parametrize(
        "alias,expected",
        [
            ("cox", "Chambers of Xeric"),
            ("COX CM", "Chambers of Xeric Challenge Mode"),
            ("cox 13", "Chambers of Xeric 11-15 players"),
            ("tob hm", "Theatre of Blood Hard Mode"),
            ("Theatre of Blood: Entry Mode", "Theatre of Blood Entry Mode"),
            ("Tombs of Amascut: Expert Mode", "Tombs of Amascut Expert Mode"),
            ("toa entry 4", "Tombs of Amascut Entry Mode 4 players"),
            ("the gauntlet", "Gauntlet"),
            ("cg", "Corrupted Gauntlet"),
            ("bando", "General Graardor"),
            ("hs3", "Hallowed Sepulchre Floor 3"),
            ("jad 6", "TzHaar-Ket-Rak's Sixth Challenge"),
            ("gotr", "Guardians of the Rift"),
            ("Barrows", "Barrows Chests"),
        ],
    )
    def test_known_aliases(self, alias, expected):
        assert canonical_name(alias) == expected

    def test_unknown_name_passes_through(self):
        assert canonical_name("Scurrius") == "Scurrius"

    def test_whitespace_trimmed(self):
        assert canonical_name("  vork ") == "Vorkath"

    def test_echo_suffix(self):
        assert canonical_name("kq (echo)") == "Kalphite Queen (Echo)"

    def test_echo_suffix_unknown_base(self):
        assert canonical_name("Scurrius (echo)") == "Scurrius (Echo)"

    def test_empty(self):
        assert canonical_name(None) is None
        assert canonical_name("  ") is None


class TestIsRaid:
    def test_raid_families(self):
        assert is_raid("Tombs of Amascut Expert Mode")
        assert is_raid("Theatre of Blood")
        assert is_raid("Chambers of Xeric Challenge Mode")

    def test_non_raids(self):
        assert not is_raid("Vorkath")
        assert not is_raid(None)
