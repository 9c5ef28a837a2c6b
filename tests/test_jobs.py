from __future__ import annotations

import sqlite3
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import sovereign.db as db
from sovereign.config import load_settings
from sovereign.jobs import midnight_tick, reminders


class DBIsolatedTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._old_db = db.DB_PATH
        db.DB_PATH = Path(self._tmp.name) / "test.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self._old_db
        self._tmp.cleanup()


class ReminderIdempotencyTests(DBIsolatedTestCase):
    def test_reminders_send_once_per_day(self) -> None:
        today = "2026-03-10"
        self.assertTrue(reminders.send_morning(today))
        self.assertFalse(reminders.send_morning(today))

        self.assertTrue(reminders.send_midnight(today))
        self.assertFalse(reminders.send_midnight(today))

    def test_evening_nudge_waits_for_open_work(self) -> None:
        self.assertTrue(reminders.send_evening("2026-03-10"))
        self.assertFalse(reminders.send_evening("2026-03-10"))
        self.assertFalse(reminders.should_send_evening_nudge({"dailies_left": [], "penalties": []}))

    def test_quiet_evening_is_not_marked_sent(self) -> None:
        with patch("sovereign.jobs.reminders.should_send_evening_nudge", return_value=False):
            self.assertFalse(reminders.send_evening("2026-03-11"))
        self.assertFalse(db.was_reminder_sent("evening", "2026-03-11"))

    def test_summary_lists_open_dailies(self) -> None:
        summary = reminders.get_notification_summary(load_settings())
        self.assertEqual(len(summary["dailies_left"]), 5)
        self.assertEqual(summary["penalties"], [])

    def test_failed_delivery_is_retried_next_pass(self) -> None:
        with patch("sovereign.jobs.reminders.build_notifier") as build_notifier:
            build_notifier.return_value.send.return_value = False
            self.assertFalse(reminders.send_morning("2026-03-10"))
            self.assertFalse(db.was_reminder_sent("morning", "2026-03-10"))

            build_notifier.return_value.send.return_value = True
            self.assertTrue(reminders.send_morning("2026-03-10"))
        self.assertTrue(db.was_reminder_sent("morning", "2026-03-10"))
        self.assertEqual(build_notifier.return_value.send.call_count, 2)

    def test_reminders_are_tracked_per_user(self) -> None:
        ally = replace(load_settings(), user_id="ally")
        self.assertTrue(reminders.send_morning("2026-03-10"))
        self.assertTrue(reminders.send_morning("2026-03-10", settings=ally))
        self.assertFalse(reminders.send_morning("2026-03-10", settings=ally))
        self.assertTrue(db.was_reminder_sent("morning", "2026-03-10", "ally"))
        self.assertFalse(db.was_reminder_sent("evening", "2026-03-10", "ally"))


class ReminderLogMigrationTests(unittest.TestCase):
    def test_legacy_rows_move_to_the_default_user(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        old_db = db.DB_PATH
        self.addCleanup(setattr, db, "DB_PATH", old_db)
        db.DB_PATH = Path(tmp.name) / "legacy.sqlite3"
        conn = sqlite3.connect(db.DB_PATH)
        conn.executescript(
            """
            CREATE TABLE reminder_log (kind TEXT NOT NULL, date TEXT NOT NULL, sent_at TEXT NOT NULL, PRIMARY KEY (kind, date));
            INSERT INTO reminder_log VALUES ('morning', '2026-03-10', '2026-03-10T07:00:00+00:00');
            """
        )
        conn.close()

        db.init_db()

        self.assertTrue(db.was_reminder_sent("morning", "2026-03-10"))
        self.assertFalse(db.was_reminder_sent("morning", "2026-03-10", "ally"))
        db.mark_reminder_sent("morning", "2026-03-10", "ally")
        self.assertTrue(db.was_reminder_sent("morning", "2026-03-10", "ally"))


class MidnightTickTests(DBIsolatedTestCase):
    def test_tick_persists_and_is_idempotent(self) -> None:
        first = midnight_tick.run_midnight_tick()
        second = midnight_tick.run_midnight_tick()

        self.assertFalse(first["same_day"])
        self.assertTrue(first["snapshot_taken"])
        self.assertTrue(second["same_day"])
        self.assertIsNotNone(db.load_snapshot("default"))

    def test_summary_text(self) -> None:
        report = {
            "today": "2026-03-11",
            "swept_dates": ["2026-03-10"],
            "missed_tasks": ["Gym"],
            "penalties": ["PENALTY: PLANK"],
            "expiry": {"xp_lost": 30, "gold_lost": 12},
            "check_in": {"streak": 1},
        }
        text = midnight_tick.summarize(report)
        self.assertIn("Closed 1 day(s); 1 task(s) missed.", text)
        self.assertIn("Penalties assigned: PENALTY: PLANK.", text)
        self.assertIn("-30 XP, -12 gold", text)

    def test_main_notifies_on_a_new_day_only(self) -> None:
        with patch("sovereign.jobs.midnight_tick.build_notifier") as build_notifier:
            midnight_tick.main()
            midnight_tick.main()
        build_notifier.return_value.send.assert_called_once()


if __name__ == "__main__":
    unittest.main()
