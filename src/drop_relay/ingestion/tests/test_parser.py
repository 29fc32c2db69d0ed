"""Tests for SignalParser."""

from datetime import timedelta

from drop_relay.ingestion.models import NameTopic, SignalKind
from drop_relay.ingestion.parser import (
    PB_PATTERNS,
    TIME_PATTERNS,
    TOA_CANDIDATES,
    TOB_CANDIDATES,
    strip_tags,
)


def _only(signals, kind):
    matching = [s for s in signals if s.kind == kind]
    assert len(matching) == 1, signals
    return matching[0]


class TestKillCounts:
    """Primary and secondary count phrasings."""

    def test_primary_kill_count(self, parser, kill_count_line):
        signal = _only(parser.parse(kill_count_line), SignalKind.COUNT)
        assert signal.subject == "Vorkath"
        assert signal.count == 1204

    def test_alias_applied_to_subject(self, parser):
        signal = _only(parser.parse("Your Kree'arra kill count is: 50."), SignalKind.COUNT)
        assert signal.subject == "Kree'arra"

        signal = _only(parser.parse("Your Barrows chest count is: 12."), SignalKind.COUNT)
        assert signal.subject == "Barrows Chests"

    def test_lunar_chest(self, parser):
        signal = _only(parser.parse("Your Lunar chest count is: 7."), SignalKind.COUNT)
        assert signal.subject == "Lunar Chest"

    def test_other_chest_counts_ignored(self, parser):
        assert parser.parse("Your Brimstone chest count is: 7.") == []

    def test_gauntlet_completion_maps_to_boss(self, parser):
        signal = _only(
            parser.parse("Your Gauntlet completion count is: 30."), SignalKind.COUNT
        )
        assert signal.subject == "Crystalline Hunllef"

        signal = _only(
            parser.parse("Your Corrupted Gauntlet completion count is: 31."), SignalKind.COUNT
        )
        assert signal.subject == "Corrupted Hunllef"

    def test_unrelated_completion_ignored(self, parser):
        assert parser.parse("Your Tempoross completion count is: 3.") == []

    def test_success_count(self, parser):
        signal = _only(
            parser.parse("Your Hallowed Sepulchre success count is: 4."), SignalKind.COUNT
        )
        assert signal.subject == "Hallowed Sepulchre"

    def test_secondary_raid_count(self, parser):
        signal = _only(
            parser.parse("Your completed Theatre of Blood count is: 42."), SignalKind.COUNT
        )
        assert signal.subject == "Theatre of Blood"
        assert signal.count == 42

    def test_secondary_raid_mode_suffix(self, parser):
        signal = _only(
            parser.parse("Your completed Tombs of Amascut: Expert Mode count is: 9."),
            SignalKind.COUNT,
        )
        assert signal.subject == "Tombs of Amascut Expert Mode"

        signal = _only(
            parser.parse("Your completed Theatre of Blood: Hard Mode count is: 2."),
            SignalKind.COUNT,
        )
        assert signal.subject == "Theatre of Blood Hard Mode"

    def test_secondary_wintertodt(self, parser):
        signal = _only(
            parser.parse("Your subdued Wintertodt count is: 500."), SignalKind.COUNT
        )
        assert signal.subject == "Wintertodt"
        assert signal.count == 500

    def test_secondary_rejects_unknown_activity(self, parser):
        assert parser.parse("Your completed Agility Pyramid count is: 5.") == []

    def test_count_without_colon(self, parser):
        signal = _only(parser.parse("Your Zulrah kill count is 88."), SignalKind.COUNT)
        assert signal.count == 88


class TestClueCounts:
    def test_clue_completion(self, parser):
        signal = _only(
            parser.parse("You have completed 41 hard Treasure Trails."), SignalKind.COUNT
        )
        assert signal.subject == "Clue Scroll (Hard)"
        assert signal.count == 41


class TestDurations:
    """Duration and personal best phrasings."""

    def test_new_personal_best(self, parser, pb_line):
        signal = _only(parser.parse(pb_line), SignalKind.DURATION)
        assert signal.is_new_record is True
        assert signal.duration == timedelta(minutes=1, seconds=12, milliseconds=600)
        assert signal.best_duration == signal.duration
        assert signal.subject is None
        assert signal.candidates == ()

    def test_time_with_previous_best(self, parser, time_line):
        signal = _only(parser.parse(time_line), SignalKind.DURATION)
        assert signal.is_new_record is False
        assert signal.duration == timedelta(minutes=1, seconds=20, milliseconds=400)
        assert signal.best_duration == timedelta(minutes=1, seconds=12, milliseconds=600)

    def test_toa_candidates(self, parser):
        signal = _only(
            parser.parse(
                "Tombs of Amascut total completion time: 25:03. Personal best: 21:40"
            ),
            SignalKind.DURATION,
        )
        assert signal.candidates == TOA_CANDIDATES

    def test_toa_expert_before_toa(self, parser):
        signal = _only(
            parser.parse(
                "Tombs of Amascut: Expert Mode total completion time: 30:00 (new personal best)"
            ),
            SignalKind.DURATION,
        )
        assert signal.candidates == ("Tombs of Amascut Expert Mode",)

    def test_tob_candidates(self, parser):
        signal = _only(
            parser.parse("Theatre of Blood completion time: 18:21. Personal best: 17:02"),
            SignalKind.DURATION,
        )
        assert signal.candidates == TOB_CANDIDATES

    def test_corrupted_challenge(self, parser):
        signal = _only(
            parser.parse("Corrupted challenge duration: 7:20 (new personal best)"),
            SignalKind.DURATION,
        )
        assert signal.candidates == ("Corrupted Hunllef",)

    def test_colosseum(self, parser):
        signal = _only(
            parser.parse("Colosseum duration: 24:00. Personal best: 23:59"),
            SignalKind.DURATION,
        )
        assert signal.candidates == ("Sol Heredit",)

    def test_delve_level_is_standalone(self, parser):
        signal = _only(
            parser.parse("Delve level: 8 duration: 2:10.20 (new personal best)"),
            SignalKind.DURATION,
        )
        assert signal.subject == "Doom of Mokhaiotl (Level: 8)"
        assert signal.standalone is True

    def test_team_size_line(self, parser, cox_line):
        signals = parser.parse(cox_line)
        duration = _only(signals, SignalKind.DURATION)
        team = _only(signals, SignalKind.TEAM_SIZE)

        assert duration.team_size == "3"
        assert team.team_size == "3"
        assert duration.duration == timedelta(minutes=24, seconds=33, milliseconds=600)
        assert "Chambers of Xeric" in duration.candidates

    def test_solo_team_size(self, parser):
        team = _only(
            parser.parse("Team size: Solo Duration: 30:00 (new personal best)"),
            SignalKind.TEAM_SIZE,
        )
        assert team.team_size == "Solo"

    def test_malformed_duration_yields_no_signal(self, parser):
        assert parser.parse("Duration: 1::23:45. Personal best: 1:00") == []

    def test_tables_are_parallel(self):
        assert len(PB_PATTERNS) == len(TIME_PATTERNS)
        assert [p.candidates for p in PB_PATTERNS] == [p.candidates for p in TIME_PATTERNS]


class TestItemNames:
    def test_collection_log(self, parser):
        signal = _only(
            parser.parse("New item added to your collection log: Vorki"), SignalKind.NAME
        )
        assert signal.topic == NameTopic.COLLECTION_LOG
        assert signal.item_name == "Vorki"

    def test_untradeable_drop(self, parser):
        signal = _only(parser.parse("Untradeable drop: Pet kraken"), SignalKind.NAME)
        assert signal.topic == NameTopic.UNTRADEABLE_DROP
        assert signal.item_name == "Pet kraken"


class TestParserEdgeCases:
    def test_empty_line(self, parser):
        assert parser.parse("") == []

    def test_unrelated_line(self, parser):
        assert parser.parse("Oh dear, you are dead!") == []

    def test_strip_tags(self):
        assert strip_tags("<col=ef1020>Your  Vorkath</col> kill") == "Your Vorkath kill"

    def test_parse_is_pure(self, parser, cox_line):
        assert parser.parse(cox_line) == parser.parse(cox_line)
