"""Tests for the auxiliary event handlers."""

from unittest.mock import MagicMock

import pytest

from drop_relay.core.events import EventCategory
from drop_relay.core.handlers import (
    CollectionLogHandler,
    CombatTaskHandler,
    DropHandler,
    ExperienceConfig,
    ExperienceHandler,
    ItemStack,
    PetHandler,
    QuestHandler,
    stack_items,
)
from drop_relay.core.kill_counts import LootSourceType


@pytest.fixture
def drop_handler(emitted, events, pricer, cache):
    return DropHandler(emitted.append, events, pricer, cache)


class TestStackItems:
    def test_merges_by_item_id(self):
        stacks = stack_items([ItemStack(536, 1), ItemStack(995, 100), ItemStack(536, 2)])
        assert stacks == [ItemStack(536, 3), ItemStack(995, 100)]


class TestDropHandler:
    def test_drop_event(self, drop_handler, emitted):
        event = drop_handler.on_loot("Vorkath", [(11286, 1), (536, 2), (536, 1)])

        assert emitted == [event]
        assert event.category == EventCategory.DROP
        assert event.subject == "Vorkath"
        assert event.value == 5_006_000
        assert event.fields["single_value"] == 5_002_000
        assert event.fields["source_type"] == "npc"
        assert event.fields["items"] == [
            {"item": "Draconic visage", "id": 11286, "quantity": 1, "value": 5_000_000},
            {"item": "Dragon bones", "id": 536, "quantity": 3, "value": 2_000},
        ]

    def test_increments_kill_count(self, drop_handler, cache):
        cache.put("Vorkath", 10)
        event = drop_handler.on_loot("Vorkath", [(536, 1)])
        assert event.count == 11
        assert cache.get("Vorkath") == 11

    def test_unknown_count_stays_unknown(self, drop_handler):
        event = drop_handler.on_loot("Vorkath", [(536, 1)])
        assert event.count is None

    def test_gauntlet_loot_does_not_increment(self, drop_handler, cache):
        cache.put("Crystalline Hunllef", 5)
        drop_handler.on_loot("The Gauntlet", [(536, 1)])
        assert cache.get("Crystalline Hunllef") == 5

    def test_source_renamed(self, drop_handler):
        event = drop_handler.on_loot("Dusk", [(536, 1)])
        assert event.subject == "Grotesque Guardians"

    def test_player_loot_keyed_separately(self, drop_handler, cache):
        cache.put("Zezima", 2, LootSourceType.PLAYER)
        event = drop_handler.on_loot("Zezima", [(995, 5000)], LootSourceType.PLAYER)
        assert event.count == 3
        assert event.fields["source_type"] == "player"

    def test_empty_loot_counts_but_emits_nothing(self, drop_handler, cache, emitted):
        cache.put("Vorkath", 10)
        assert drop_handler.on_loot("Vorkath", []) is None
        assert emitted == []
        assert cache.get("Vorkath") == 11

    def test_negative_price_clamped(self, emitted, events, cache):
        pricer = MagicMock()
        pricer.price = MagicMock(return_value=-5)
        pricer.name = MagicMock(return_value="Junk")
        handler = DropHandler(emitted.append, events, pricer, cache)

        event = handler.on_loot("Goblin", [(1, 1)])
        assert event.value == 0

    def test_informs_correlator_for_npc_loot(self, emitted, events, pricer, cache):
        correlator = MagicMock()
        handler = DropHandler(emitted.append, events, pricer, cache, correlator)

        handler.on_loot("Vorkath", [(536, 1)])
        handler.on_loot("Man", [(995, 3)], LootSourceType.PICKPOCKET)

        correlator.on_loot.assert_called_once_with("Vorkath")


class TestCollectionLogHandler:
    def test_new_slot(self, emitted, events, cache, parser):
        handler = CollectionLogHandler(emitted.append, events, cache)
        cache.put("Vorkath", 12)
        handler.note_source("Vorkath")

        (signal,) = parser.parse("New item added to your collection log: Draconic visage")
        event = handler.on_signal(signal)

        assert event.category == EventCategory.COLLECTION_LOG
        assert event.subject == "Draconic visage"
        assert event.count == 12
        assert event.fields == {"item_name": "Draconic visage", "source": "Vorkath"}

    def test_ignores_untradeable_drop(self, emitted, events, cache, parser):
        handler = CollectionLogHandler(emitted.append, events, cache)
        (signal,) = parser.parse("Untradeable drop: Vorki")
        assert handler.on_signal(signal) is None
        assert emitted == []


class TestCombatTaskHandler:
    def test_task_event(self, emitted, events):
        handler = CombatTaskHandler(emitted.append, events)
        event = handler.on_message(
            "Congratulations, you've completed a hard combat task: Whack-a-Mole (3 points)."
        )

        assert event.category == EventCategory.COMBAT_ACHIEVEMENT
        assert event.subject == "Whack-a-Mole"
        assert event.fields["tier"] == "Hard"
        assert event.fields["points"] == 3

    def test_session_points_accumulate(self, emitted, events):
        handler = CombatTaskHandler(emitted.append, events)
        handler.on_message("Congratulations, you've completed an easy combat task: Noxious Foe.")
        handler.on_message("Congratulations, you've completed an elite combat task: Perfect Vorkath.")

        assert handler.total_points == 5
        assert emitted[-1].fields["session_points"] == 5

    def test_other_message(self, emitted, events):
        handler = CombatTaskHandler(emitted.append, events)
        assert handler.on_message("Oh dear, you are dead!") is None


class TestPetHandler:
    PRIMER = "You have a funny feeling like you're being followed."

    @pytest.fixture
    def pets(self, emitted, events, cache):
        return PetHandler(emitted.append, events, cache)

    def test_waits_then_sends(self, pets, emitted, parser, cache):
        cache.put("Vorkath", 1204)
        pets.on_message(self.PRIMER)
        (signal,) = parser.parse("Untradeable drop: Vorki")
        pets.on_signal(signal)

        for _ in range(PetHandler.MAX_TICKS_WAIT):
            assert pets.on_tick() is None
        event = pets.on_tick()

        assert emitted == [event]
        assert event.category == EventCategory.PET
        assert event.fields["pet_name"] == "Vorki"
        assert event.fields["source"] == "Vorkath"
        assert event.fields["killcount"] == 1204
        assert "previously_owned" not in event.fields
        assert not pets.is_armed

    def test_clan_broadcast_sends_early(self, pets, emitted):
        pets.on_message(self.PRIMER)
        pets.on_clan_message(
            "Zezima has a funny feeling like they're being followed: Vorki at 1,204 killcount."
        )
        event = pets.on_tick()

        assert event is not None
        assert event.fields["milestone"] == "1,204 killcount"

    def test_clan_broadcast_for_other_player_ignored(self, pets):
        pets.on_message(self.PRIMER)
        pets.on_clan_message(
            "Lynx Titan has a funny feeling like they're being followed: Vorki at 50 killcount."
        )
        assert pets.on_tick() is None

    def test_new_collection_log_slot_not_previously_owned(self, pets, parser):
        pets.on_message(self.PRIMER)
        (signal,) = parser.parse("New item added to your collection log: Vorki")
        pets.on_signal(signal)

        for _ in range(PetHandler.MAX_TICKS_WAIT):
            pets.on_tick()
        event = pets.on_tick()
        assert event.fields["previously_owned"] is False

    def test_duplicate(self, pets):
        pets.on_message("You have a funny feeling like you would have been followed...")
        for _ in range(PetHandler.MAX_TICKS_WAIT):
            pets.on_tick()
        event = pets.on_tick()

        assert event.fields["duplicate"] is True
        assert event.fields["previously_owned"] is True
        assert event.subject == "Unknown Pet"

    def test_idle_without_primer(self, pets, emitted):
        for _ in range(10):
            pets.on_tick()
        assert emitted == []


class TestQuestHandler:
    def test_quest_event(self, emitted, events):
        handler = QuestHandler(emitted.append, events)
        event = handler.on_quest_widget("You have completed Dragon Slayer II!", 150, 170, 300)

        assert event.category == EventCategory.QUEST
        assert event.subject == "Dragon Slayer II"
        assert event.fields["completion_percentage"] == "88.2%"
        assert event.fields["quest_points"] == 300

    def test_not_a_completion(self, emitted, events):
        handler = QuestHandler(emitted.append, events)
        assert handler.on_quest_widget("You have... kind of... completed Recipe for Disaster!") is None
        assert emitted == []


class TestExperienceHandler:
    @pytest.fixture
    def experience(self, emitted, events):
        return ExperienceHandler(emitted.append, events)

    def test_first_update_is_baseline(self, experience, emitted):
        experience.on_skill_update("Attack", 60, 273_742)
        for _ in range(5):
            experience.on_tick()
        assert emitted == []

    def test_level_up_batched(self, experience, emitted):
        experience.on_skill_update("Attack", 60, 273_742)
        experience.on_skill_update("Strength", 70, 737_627)
        experience.on_skill_update("Attack", 61, 302_288)
        experience.on_skill_update("Strength", 71, 814_445)

        assert experience.on_tick() == []
        assert experience.on_tick() == []
        (event,) = experience.on_tick()

        assert event.category == EventCategory.LEVEL_UP
        assert event.subject == "Attack, Strength"
        assert event.fields["attack_level"] == 61
        assert event.fields["attack_previous_level"] == 60
        assert event.fields["level"] == 71
        assert event.fields["total_level"] == 132

    def test_xp_milestone_at_max_level(self, experience, emitted):
        experience.on_skill_update("Fishing", 99, 19_990_000)
        experience.on_skill_update("Fishing", 99, 20_010_000)
        for _ in range(3):
            experience.on_tick()

        assert len(emitted) == 1
        assert emitted[0].category == EventCategory.XP_MILESTONE
        assert emitted[0].fields["fishing_xp"] == 20_000_000

    def test_periodic_xp_update(self, emitted, events):
        experience = ExperienceHandler(
            emitted.append, events, ExperienceConfig(xp_update_interval_ticks=2)
        )
        experience.on_skill_update("Mining", 50, 101_333)
        experience.on_skill_update("Mining", 50, 101_500)

        experience.on_tick()
        (event,) = experience.on_tick()
        assert event.category == EventCategory.XP_UPDATE
        assert event.fields["total_xp_gained"] == 167
