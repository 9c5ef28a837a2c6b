from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

import sovereign.db as db
import sovereign.main as main


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.old_db = db.DB_PATH
        db.DB_PATH = Path(self.tmp.name) / "test.sqlite3"
        db.init_db()
        self.client = TestClient(main.app)

    def tearDown(self) -> None:
        db.DB_PATH = self.old_db
        self.tmp.cleanup()

    def _first_daily(self) -> dict:
        quests = self.client.get("/api/quests").json()
        return next(q for q in quests if q["type"] == "DAILY")

    def test_state_for_a_new_player(self) -> None:
        response = self.client.get("/api/state")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["player"]["level"], 1)
        self.assertEqual(body["player"]["streak"], 1)
        self.assertEqual(len([q for q in body["quests"] if q["type"] == "DAILY"]), 5)
        self.assertNotIn("snapshot", body)

    def test_complete_then_complete_again(self) -> None:
        quest = self._first_daily()

        first = self.client.post(f"/api/quests/{quest['id']}/complete")
        second = self.client.post(f"/api/quests/{quest['id']}/complete")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["reward"]["xp"], quest["xp_reward"])
        self.assertEqual(second.status_code, 409)
        self.assertIn("already completed", second.json()["warning"])

    def test_abandon_creates_a_penalty(self) -> None:
        quest = self._first_daily()
        response = self.client.post(f"/api/quests/{quest['id']}/abandon")
        body = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["penalty"]["type"], "PENALTY")
        self.assertFalse(body["immunity_used"])

        penalty = self.client.post(f"/api/quests/{body['penalty']['id']}/abandon")
        self.assertEqual(penalty.status_code, 409)

    def test_custom_quest_validation(self) -> None:
        bad = self.client.post("/api/quests", data={"title": "X", "quest_type": "RAID"})
        self.assertEqual(bad.status_code, 400)

        good = self.client.post(
            "/api/quests",
            data={"title": "Write essay", "quest_type": "optional", "difficulty": "c", "xp_reward": "120", "target_stats": "int, foc, luck"},
        )
        quest = good.json()["quest"]
        self.assertEqual((quest["type"], quest["difficulty"]), ("OPTIONAL", "C"))
        self.assertEqual(quest["target_stats"], ["INT", "FOC"])

    def test_locked_gate_and_empty_wallet_are_rejected(self) -> None:
        gate = self.client.post("/api/bosses/milestone_5/enter")
        shop = self.client.post("/api/shop/item_coffee/purchase")
        self.assertEqual(gate.status_code, 409)
        self.assertIsNone(gate.json()["active_boss"])
        self.assertEqual(shop.status_code, 409)
        self.assertIn("Not enough gold", shop.json()["warning"])

    def test_gold_then_purchase(self) -> None:
        self.client.post("/api/gold", data={"amount": "400"})
        response = self.client.post("/api/shop/item_coffee/purchase")
        self.assertEqual(response.json()["gold"], 250)
        consumed = self.client.post("/api/inventory/item_coffee/consume")
        self.assertEqual(consumed.json()["inventory"], [])

    def test_task_lifecycle(self) -> None:
        created = self.client.post("/api/tasks", data={"title": "Gym", "task_type": "OPTIONAL"}).json()["task"]
        missed = self.client.post(f"/api/tasks/{created['id']}/miss")
        self.assertEqual(missed.json()["task"]["status"], "MISSED")
        penalties = [q for q in self.client.get("/api/quests").json() if q["type"] == "PENALTY"]
        self.assertEqual(len(penalties), 1)

        again = self.client.post(f"/api/tasks/{created['id']}/complete", data={"quality": "FOCUSED"})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(self.client.post("/api/tasks", data={"title": "x", "task_type": "CHORE"}).status_code, 400)

    def test_rollback_to_the_daily_checkpoint(self) -> None:
        self.client.post("/api/gold", data={"amount": "500"})
        response = self.client.post("/api/rollback")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["player"]["gold"], 0)

    def test_export_and_import(self) -> None:
        self.client.post("/api/gold", data={"amount": "75"})
        exported = self.client.get("/export").json()
        self.client.post("/api/gold", data={"amount": "500"})

        restored = self.client.post("/import", data={"payload": json.dumps(exported)})

        self.assertEqual(restored.status_code, 200)
        self.assertEqual(restored.json()["player"]["gold"], 75)

    def test_import_rejects_garbage(self) -> None:
        self.assertEqual(self.client.post("/import", data={"payload": "{nope"}).status_code, 400)
        self.assertEqual(self.client.post("/import", data={"payload": '{"quests": [{"title": "no id"}]}'}).status_code, 400)
        self.assertEqual(self.client.get("/api/state").status_code, 200)

    def test_event_feed(self) -> None:
        self.client.post("/api/quests/nope/complete")
        events = self.client.get("/api/events", params={"kind": "warning"}).json()
        self.assertEqual(events[0]["text"], "Unknown quest nope")

    def test_reconcile_is_idempotent(self) -> None:
        self.client.get("/api/state")
        report = self.client.post("/api/reconcile").json()["report"]
        self.assertTrue(report["same_day"])
        self.assertEqual(report["penalties"], [])

    def test_habit_lifecycle(self) -> None:
        habit = self.client.post("/api/habits", data={"name": "Meditate", "category": "discipline"}).json()["habit"]
        self.assertEqual((habit["category"], habit["current_streak"]), ("DISCIPLINE", 0))

        for day in ("2026-03-09", "2026-03-10"):
            toggled = self.client.post(f"/api/habits/{habit['id']}/toggle", data={"for_date": day}).json()
        self.assertTrue(toggled["completed"])
        self.assertEqual(toggled["current_streak"], 2)

        self.client.post(f"/api/habits/{habit['id']}/reset")
        stored = self.client.get("/api/habits").json()[0]
        self.assertEqual((stored["current_streak"], stored["longest_streak"]), (0, 2))

        self.assertEqual(self.client.post(f"/api/habits/{habit['id']}/delete").json()["habits"], [])
        self.assertEqual(self.client.post(f"/api/habits/{habit['id']}/reset").status_code, 409)
        self.assertEqual(self.client.post("/api/habits", data={"name": "x", "category": "NAP"}).status_code, 400)

    def test_bad_habit_date_is_rejected(self) -> None:
        habit = self.client.post("/api/habits", data={"name": "Read"}).json()["habit"]
        response = self.client.post(f"/api/habits/{habit['id']}/toggle", data={"for_date": "yesterday"})
        self.assertEqual(response.status_code, 409)
        self.assertIn("Invalid habit date", response.json()["warning"])

    def test_proposal_needs_a_generator(self) -> None:
        response = self.client.post("/api/pending/propose", data={"domain": "fitness"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(self.client.get("/api/pending").json(), [])

    def test_proposed_quest_accept_and_decline(self) -> None:
        generator = MagicMock()
        generator.generate_quest_content.return_value = {
            "title": "HILL SPRINTS",
            "description": "Ten repeats.",
            "rewards": {"xp": 80, "gold": 20},
            "difficulty": "C",
        }
        with patch("sovereign.session.build_generator", return_value=generator):
            first = self.client.post("/api/pending/propose", data={"domain": "fitness"}).json()["quest"]
            second = self.client.post("/api/pending/propose").json()["quest"]

        self.assertEqual((first["type"], first["difficulty"], first["xp_reward"]), ("OPTIONAL", "C", 80))
        self.assertEqual(first["domain"], "FITNESS")
        self.assertEqual(len(self.client.get("/api/pending").json()), 2)

        accepted = self.client.post(f"/api/pending/{first['id']}/accept")
        declined = self.client.post(f"/api/pending/{second['id']}/decline")

        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(declined.json()["pending"], [])
        quest_ids = [q["id"] for q in self.client.get("/api/quests").json()]
        self.assertIn(first["id"], quest_ids)
        self.assertNotIn(second["id"], quest_ids)
        self.assertEqual(self.client.post(f"/api/pending/{second['id']}/accept").status_code, 409)


if __name__ == "__main__":
    unittest.main()
