from __future__ import annotations

import random
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from sovereign import penalties
from sovereign.content import load_content_pack
from sovereign.generator import ContentGenerationError
from sovereign.models import GameState, Player, Quest, QuestType

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = "2026-03-10"


def _date_key(moment: datetime) -> str:
    return moment.date().isoformat()


def _penalty(quest_id: str, scope_date: str, **overrides) -> Quest:
    return Quest(id=quest_id, title="PENALTY: PLANK", type=QuestType.PENALTY, scope_date=scope_date, **overrides)


class ConsolidationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.state = GameState()
        self.rng = random.Random(1)
        self.pack = load_content_pack()

    def test_one_penalty_per_group_and_day(self) -> None:
        first = penalties.consolidate(self.state, penalties.MISSED_DAILY, TODAY, 5, self.rng, self.pack, NOW, TODAY)
        again = penalties.consolidate(self.state, penalties.MISSED_DAILY, TODAY, 2, self.rng, self.pack, NOW, TODAY)

        self.assertIsNotNone(first)
        self.assertIsNone(again)
        self.assertEqual(len(self.state.quests), 1)
        self.assertEqual(first.consolidation_key, f"missed_daily:{TODAY}")
        self.assertIn("Missed 5 daily quests", first.description)
        self.assertEqual((first.xp_reward, first.gold_reward), (0, 0))

    def test_groups_do_not_share_a_guard(self) -> None:
        penalties.consolidate(self.state, penalties.MISSED_OPTIONAL, "2026-03-09", 1, self.rng, self.pack, NOW, TODAY)
        penalties.consolidate(self.state, penalties.MISSED_SKILL_PROTOCOL, "2026-03-09", 3, self.rng, self.pack, NOW, TODAY)
        self.assertEqual(len(self.state.quests), 2)
        self.assertTrue(all(q.scope_date == TODAY for q in self.state.quests))

    def test_nothing_missed_means_no_penalty(self) -> None:
        self.assertIsNone(penalties.consolidate(self.state, penalties.MISSED_DAILY, TODAY, 0, self.rng, self.pack, NOW, TODAY))

    def test_template_pick_follows_the_seed(self) -> None:
        a = penalties.build_penalty_quest(random.Random(5), self.pack, NOW, TODAY, "x")
        b = penalties.build_penalty_quest(random.Random(5), self.pack, NOW, TODAY, "x")
        self.assertEqual((a.title, a.id), (b.title, b.id))
        self.assertTrue(a.title.startswith("PENALTY:"))

    def test_empty_pool_uses_fallback(self) -> None:
        quest = penalties.build_penalty_quest(self.rng, {"penalties": []}, NOW, TODAY, "Abandoned")
        self.assertEqual(quest.title, "PENALTY: PUSHUPS")


class EnrichmentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.quest = penalties.build_penalty_quest(random.Random(2), load_content_pack(), NOW, TODAY, "Abandoned")

    def test_generated_text_replaces_template(self) -> None:
        generator = MagicMock()
        generator.generate_quest_content.return_value = {"title": "ICE BATH", "description": "Five minutes.", "rewards": {}, "difficulty": None}
        self.assertTrue(penalties.enrich_penalty(self.quest, generator, "READING"))
        self.assertEqual(self.quest.title, "PENALTY: ICE BATH")
        self.assertEqual(self.quest.description, "Five minutes.")

    def test_failure_keeps_template(self) -> None:
        title = self.quest.title
        generator = MagicMock()
        generator.generate_quest_content.side_effect = ContentGenerationError("timeout")
        with self.assertLogs("sovereign.penalties", level="WARNING"):
            self.assertFalse(penalties.enrich_penalty(self.quest, generator, "READING"))
        self.assertEqual(self.quest.title, title)

    def test_incomplete_payload_keeps_template(self) -> None:
        title, description = self.quest.title, self.quest.description
        generator = MagicMock()
        generator.generate_quest_content.return_value = {"title": "ICE BATH"}
        with self.assertLogs("sovereign.penalties", level="WARNING"):
            self.assertFalse(penalties.enrich_penalty(self.quest, generator, "READING"))
        self.assertEqual((self.quest.title, self.quest.description), (title, description))


class ExpiryTests(unittest.TestCase):
    def test_stale_penalty_costs_thirty_percent_and_resets_ego(self) -> None:
        player = Player(xp=500, gold=1000, ego_death_streak=6, last_ego_death_date=NOW)
        player.stat_progress["MEN"] = 90
        state = GameState(player=player, quests=[_penalty("p1", "2026-03-09"), _penalty("p2", TODAY)])

        losses = penalties.check_penalty_expiry(state, TODAY)

        self.assertEqual((losses["xp_lost"], losses["gold_lost"]), (150, 300))
        self.assertEqual(losses["stats_lost"], {"MEN": 27})
        self.assertEqual((player.xp, player.gold, player.stat_progress["MEN"]), (350, 700, 63))
        self.assertEqual(player.ego_death_streak, 0)
        self.assertEqual([q.id for q in state.quests], ["p2"])

    def test_no_stale_penalty_is_a_no_op(self) -> None:
        player = Player(xp=500, ego_death_streak=2)
        state = GameState(player=player, quests=[_penalty("p2", TODAY)])
        self.assertIsNone(penalties.check_penalty_expiry(state, TODAY))
        self.assertEqual((player.xp, player.ego_death_streak), (500, 2))

    def test_several_stale_penalties_are_punished_once(self) -> None:
        state = GameState(player=Player(xp=1000), quests=[_penalty("a", "2026-03-01"), _penalty("b", "2026-03-08")])
        losses = penalties.check_penalty_expiry(state, TODAY)
        self.assertEqual(losses["xp_lost"], 300)
        self.assertEqual(state.quests, [])


class EgoDeathTests(unittest.TestCase):
    def test_increments_once_per_day_without_penalties(self) -> None:
        state = GameState()
        self.assertTrue(penalties.update_ego_death(state, NOW, TODAY, _date_key))
        self.assertFalse(penalties.update_ego_death(state, NOW, TODAY, _date_key))
        self.assertEqual(state.player.ego_death_streak, 1)

    def test_outstanding_penalty_blocks_increment(self) -> None:
        state = GameState(quests=[_penalty("p", TODAY)])
        self.assertFalse(penalties.update_ego_death(state, NOW, TODAY, _date_key))
        self.assertEqual(state.player.ego_death_streak, 0)


if __name__ == "__main__":
    unittest.main()
