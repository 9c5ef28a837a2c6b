from __future__ import annotations

import random
import unittest
from datetime import datetime, timezone

from sovereign.clock import FixedClock
from sovereign.content import load_content_pack
from sovereign.engine import ProgressionEngine
from sovereign.models import Quest, QuestType, TaskStatus, TaskType

DAY_ONE = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _engine(moment: datetime = DAY_ONE) -> ProgressionEngine:
    engine = ProgressionEngine(clock=FixedClock(moment), rng=random.Random(11), pack=load_content_pack())
    engine.repair()
    return engine


def _penalties(engine: ProgressionEngine) -> list:
    return [q for q in engine.state.quests if q.type == QuestType.PENALTY]


def _dailies(engine: ProgressionEngine) -> list:
    return [q for q in engine.state.quests if q.type == QuestType.DAILY]


class FirstSessionTests(unittest.TestCase):
    def test_fresh_player_gets_todays_dailies_and_a_checkin(self) -> None:
        engine = _engine()
        report = engine.run_daily_reconciliation()

        self.assertEqual(report.today, "2026-03-10")
        self.assertEqual(len(_dailies(engine)), 5)
        self.assertTrue(all(q.scope_date == "2026-03-10" for q in _dailies(engine)))
        self.assertEqual(_penalties(engine), [])
        self.assertEqual(engine.state.player.streak, 1)
        self.assertEqual(engine.state.player.ego_death_streak, 1)
        self.assertTrue(report.snapshot_taken)
        self.assertEqual(engine.state.snapshot_date, "2026-03-10")


class IdempotencyTests(unittest.TestCase):
    def test_second_run_changes_nothing(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        engine.clock.advance(days=1)
        engine.run_daily_reconciliation()
        quests_before = [q.to_dict() for q in engine.state.quests]
        player_before = engine.state.player.to_dict()
        player_before.pop("last_login_date")

        report = engine.run_daily_reconciliation()

        player_after = engine.state.player.to_dict()
        player_after.pop("last_login_date")
        self.assertTrue(report.same_day)
        self.assertEqual(report.penalties, [])
        self.assertIsNone(report.check_in)
        self.assertFalse(report.snapshot_taken)
        self.assertEqual([q.to_dict() for q in engine.state.quests], quests_before)
        self.assertEqual(player_after, player_before)

    def test_completion_survives_same_day_refresh(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        daily = _dailies(engine)[0]
        engine.complete_quest(daily.id)

        engine.run_daily_reconciliation()

        self.assertTrue(engine.state.find_quest(daily.id).is_completed)
        self.assertEqual(len(_dailies(engine)), 5)


class MissedDailyTests(unittest.TestCase):
    def test_five_missed_dailies_make_one_penalty(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        engine.clock.advance(days=1)

        report = engine.run_daily_reconciliation()

        penalties = _penalties(engine)
        self.assertEqual(len(penalties), 1)
        self.assertEqual(report.penalties, penalties)
        self.assertEqual(penalties[0].consolidation_key, "missed_daily:2026-03-11")
        self.assertIn("Missed 5 daily quests", penalties[0].description)
        self.assertTrue(all(q.scope_date == "2026-03-11" and not q.is_completed for q in _dailies(engine)))

    def test_finished_day_is_not_punished(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        for quest in _dailies(engine):
            engine.complete_quest(quest.id)
        engine.clock.advance(days=1)

        engine.run_daily_reconciliation()

        self.assertEqual(_penalties(engine), [])
        self.assertEqual(engine.state.player.streak, 2)
        self.assertEqual(engine.state.player.ego_death_streak, 2)

    def test_exempt_daily_is_not_punished(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        for quest in _dailies(engine):
            quest.penalty_exempt = True
        engine.clock.advance(days=1)
        engine.run_daily_reconciliation()
        self.assertEqual(_penalties(engine), [])

    def test_unscoped_legacy_dailies_are_dropped_without_penalty(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        for quest in _dailies(engine):
            quest.scope_date = None
        engine.clock.advance(days=1)

        report = engine.run_daily_reconciliation()

        self.assertEqual(report.penalties, [])
        self.assertEqual(_penalties(engine), [])
        self.assertEqual(len(_dailies(engine)), 5)
        self.assertTrue(all(q.scope_date == "2026-03-11" for q in _dailies(engine)))

    def test_midnight_crossing_inside_a_session(self) -> None:
        engine = _engine(datetime(2026, 3, 10, 23, 50, tzinfo=timezone.utc))
        engine.run_daily_reconciliation()
        engine.clock.advance(minutes=20)

        report = engine.run_daily_reconciliation()

        self.assertFalse(report.same_day)
        self.assertEqual(len(_penalties(engine)), 1)
        self.assertEqual(engine.state.player.streak, 2)


class GapTests(unittest.TestCase):
    def test_thirty_days_offline(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        for title, kind in (("Gym", TaskType.OPTIONAL), ("Run", TaskType.OPTIONAL), ("Drill", TaskType.SKILL_PROTOCOL), ("Dentist", TaskType.PERSONAL)):
            engine.add_scheduled_task(title, "2026-03-10", kind)
        engine.clock.advance(days=30)

        report = engine.run_daily_reconciliation()

        self.assertEqual(len(report.swept_dates), 30)
        self.assertEqual(report.swept_dates[0], "2026-03-10")
        self.assertEqual(sorted(report.missed_tasks), ["Dentist", "Drill", "Gym", "Run"])
        keys = sorted(q.consolidation_key for q in _penalties(engine))
        self.assertEqual(
            keys,
            ["missed_daily:2026-04-09", "missed_optional:2026-03-10", "missed_skill_protocol:2026-03-10"],
        )
        self.assertTrue(all(t.status == TaskStatus.MISSED and t.penalty_applied for t in engine.state.tasks))
        self.assertEqual(engine.state.player.streak, 1)

    def test_sweep_removes_linked_quests(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        drill = engine.add_quest(Quest(id="drill", title="SCALES", type=QuestType.OPTIONAL))
        engine.add_scheduled_task("Morning block", "2026-03-10", TaskType.SKILL_PROTOCOL, linked_quest_id=drill.id)
        engine.clock.advance(days=2)

        report = engine.run_daily_reconciliation()

        self.assertIsNone(engine.state.find_quest("drill"))
        self.assertEqual(report.missed_tasks, ["Morning block"])

    def test_penalty_expiry_runs_before_new_penalties(self) -> None:
        engine = _engine()
        engine.run_daily_reconciliation()
        engine.add_gold(1000)
        engine.abandon_quest(_dailies(engine)[0].id)
        engine.clock.advance(days=1)

        report = engine.run_daily_reconciliation()

        self.assertIsNotNone(report.expiry)
        self.assertEqual(report.expiry["gold_lost"], 300)
        self.assertEqual(engine.state.player.gold, 700)
        self.assertEqual(engine.state.player.ego_death_streak, 0)
        penalties = _penalties(engine)
        self.assertEqual(len(penalties), 1)
        self.assertEqual(penalties[0].consolidation_key, "missed_daily:2026-03-11")


if __name__ == "__main__":
    unittest.main()
