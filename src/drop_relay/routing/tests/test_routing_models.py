"""Tests for GroupConfig, ScreenshotPolicy and SubmissionRecord."""
import pytest

from drop_relay.core import EventCategory
from drop_relay.errors import ConfigError
from drop_relay.routing import GroupConfig, ScreenshotPolicy, SubmissionRecord, SubmissionStatus


class TestGroupConfig:
    def test_from_dict(self):
        config = GroupConfig.from_dict({
            "group_id": 7,
            "group_name": "Iron Squad",
            "only_screenshots": True,
            "send_pbs": False,
            "minimum_drop_value": 100_000,
            "send_stacked_items": False,
            "minimum_ca_tier": "Master",
        })

        assert config.group_id == "7"
        assert config.only_screenshots
        assert not config.send_pbs
        assert config.send_drops
        assert config.minimum_drop_value == 100_000
        assert not config.send_stacked_items
        assert config.minimum_ca_rank == 5

    def test_missing_keys_send_everything(self):
        config = GroupConfig.from_dict({"group_id": "1"})
        assert config.send_drops and config.send_clogs and config.send_xp
        assert config.minimum_drop_value == 0
        assert config.minimum_ca_rank == 0

    def test_missing_group_id(self):
        with pytest.raises(ConfigError):
            GroupConfig.from_dict({"group_name": "Nobody"})

    def test_invalid_threshold(self):
        with pytest.raises(ConfigError):
            GroupConfig.from_dict({"group_id": "1", "minimum_level": "high"})

    def test_unknown_tier_ranks_zero(self):
        assert GroupConfig(group_id="1", minimum_ca_tier="legendary").minimum_ca_rank == 0


class TestScreenshotPolicy:
    def test_drop_threshold_is_exclusive(self, make_drop):
        policy = ScreenshotPolicy(drop_value=250_000)
        assert not policy.requires(make_drop(value=250_000))
        assert policy.requires(make_drop(value=250_001))

    def test_only_pb_kills(self, make_kill):
        policy = ScreenshotPolicy()
        assert policy.requires(make_kill(seconds=60, pb=True))
        assert not policy.requires(make_kill(seconds=60))

    def test_level_minimum(self, events):
        policy = ScreenshotPolicy(levels=True, minimum_level=90)
        assert not policy.requires(events.create(EventCategory.LEVEL_UP, "Slayer", fields={"level": 89}))
        assert policy.requires(events.create(EventCategory.LEVEL_UP, "Slayer", fields={"level": 90}))

    def test_defaults_by_category(self, events):
        policy = ScreenshotPolicy()
        assert policy.requires(events.create(EventCategory.PET, "Vorki"))
        assert policy.requires(events.create(EventCategory.COLLECTION_LOG, "Vorki"))
        assert not policy.requires(events.create(EventCategory.QUEST, "Cook's Assistant"))
        assert not policy.requires(events.create(EventCategory.XP_UPDATE, "Slayer"))


class TestSubmissionStatus:
    def test_predicates(self):
        assert SubmissionStatus.FAILED.is_terminal
        assert SubmissionStatus.PROCESSED.is_terminal
        assert not SubmissionStatus.RETRYING.is_terminal
        assert SubmissionStatus.SENT.is_active
        assert not SubmissionStatus.FAILED.is_active
        assert SubmissionStatus.FAILED.can_retry
        assert not SubmissionStatus.PROCESSED.can_retry
        assert SubmissionStatus.PROCESSED.description == "Processed by API"


class TestSubmissionRecord:
    def make(self):
        return SubmissionRecord(
            token="t1", category=EventCategory.DROP, subject="Vorkath", group_ids=("1",)
        )

    def test_lifecycle(self):
        record = self.make()
        record.mark_sending()
        assert record.status == SubmissionStatus.SENDING

        record.mark_retrying("HTTP 503")
        assert record.status == SubmissionStatus.RETRYING
        assert record.last_error == "HTTP 503"

        record.mark_sent("Rank up!")
        assert record.status == SubmissionStatus.SENT
        assert record.responses == ["Rank up!"]

    def test_processed_is_final(self):
        record = self.make()
        record.mark_processed()
        record.mark_failed("late timeout")

        assert record.status == SubmissionStatus.PROCESSED
        assert record.processed_at is not None

    def test_to_dict(self):
        data = self.make().to_dict()
        assert data["category"] == "drop"
        assert data["status"] == "pending"
        assert data["group_ids"] == ["1"]
        assert data["processed_at"] is None
