from __future__ import annotations

import json

from fastapi import FastAPI, Form
from fastapi.responses import JSONResponse

from sovereign import db
from sovereign.config import load_settings
from sovereign.models import STATS, GameState, HabitCategory, Quest, QuestType, Rank, TaskQuality, TaskType, new_id
from sovereign.session import engine_session, open_engine

app = FastAPI(title="Sovereign System")


@app.on_event("startup")
def startup() -> None:
    with engine_session():
        pass


def _last_warning(engine) -> str | None:
    warnings = [e for e in engine.state.events if e["kind"] == "warning"]
    return warnings[-1]["text"] if warnings else None


def _rejected(engine) -> JSONResponse:
    return JSONResponse({"ok": False, "warning": _last_warning(engine)}, status_code=409)


def _ok(**payload) -> JSONResponse:
    return JSONResponse({"ok": True, **payload})


@app.get("/api/state", response_class=JSONResponse)
def state() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse(engine.state_view())


@app.get("/api/player", response_class=JSONResponse)
def player() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse(engine.player_view().to_dict())


@app.get("/api/quests", response_class=JSONResponse)
def quests() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse([q.to_dict() for q in engine.quests_view()])


@app.get("/api/buffs", response_class=JSONResponse)
def buffs() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse([b.to_dict() for b in engine.buffs_view()])


@app.get("/api/events", response_class=JSONResponse)
def events(limit: int = 50, kind: str | None = None) -> JSONResponse:
    settings = load_settings()
    db.configure(settings.db_path)
    db.init_db()
    return JSONResponse(db.get_events(settings.user_id, limit=max(1, min(500, limit)), kind=kind))


@app.post("/api/quests", response_class=JSONResponse)
def add_quest(
    title: str = Form(...),
    quest_type: str = Form("OPTIONAL"),
    difficulty: str = Form("E"),
    xp_reward: int = Form(0),
    gold_reward: int = Form(0),
    domain: str = Form("GENERAL"),
    target_stats: str = Form(""),
    description: str = Form(""),
) -> JSONResponse:
    stats = [s.strip().upper() for s in target_stats.split(",") if s.strip().upper() in STATS][:3]
    try:
        kind = QuestType(quest_type.upper())
        rank = Rank(difficulty.upper())
    except ValueError:
        return JSONResponse({"ok": False, "warning": "Unknown quest type or difficulty"}, status_code=400)
    with engine_session() as engine:
        quest = engine.add_quest(
            Quest(
                id=new_id("quest", engine.clock.now(), engine.rng),
                title=title,
                type=kind,
                difficulty=rank,
                xp_reward=max(0, xp_reward),
                gold_reward=max(0, gold_reward),
                description=description,
                domain=domain.upper(),
                target_stats=stats,
            )
        )
        if quest is None:
            return _rejected(engine)
        return _ok(quest=quest.to_dict())


@app.post("/api/quests/{quest_id}/complete", response_class=JSONResponse)
def complete_quest(quest_id: str) -> JSONResponse:
    with engine_session() as engine:
        reward = engine.complete_quest(quest_id)
        if reward is None:
            return _rejected(engine)
        return _ok(reward=reward.to_dict(), player=engine.player_view().to_dict())


@app.post("/api/quests/{quest_id}/abandon", response_class=JSONResponse)
def abandon_quest(quest_id: str) -> JSONResponse:
    with engine_session() as engine:
        result = engine.abandon_quest(quest_id)
        if result is None:
            return _rejected(engine)
        penalty = result["penalty"]
        return _ok(penalty=penalty.to_dict() if penalty else None, immunity_used=result["immunity_used"])


@app.post("/api/quests/{quest_id}/remove", response_class=JSONResponse)
def remove_quest(quest_id: str) -> JSONResponse:
    with engine_session() as engine:
        return _ok(removed=engine.remove_quest(quest_id))


@app.post("/api/xp", response_class=JSONResponse)
def add_xp(amount: int = Form(...)) -> JSONResponse:
    with engine_session() as engine:
        outcome = engine.add_xp(amount)
        return _ok(outcome=outcome.to_dict(), player=engine.player_view().to_dict())


@app.post("/api/gold", response_class=JSONResponse)
def add_gold(amount: int = Form(...)) -> JSONResponse:
    with engine_session() as engine:
        return _ok(gold=engine.add_gold(amount))


@app.post("/api/check-in", response_class=JSONResponse)
def check_in() -> JSONResponse:
    engine = open_engine()
    result = engine.check_in()
    engine.save()
    return _ok(check_in=result, streak=engine.state.player.streak)


@app.post("/api/reconcile", response_class=JSONResponse)
def reconcile() -> JSONResponse:
    engine = open_engine()
    report = engine.run_daily_reconciliation()
    engine.save()
    return _ok(report=report.to_dict())


@app.post("/api/penalties/expire", response_class=JSONResponse)
def penalty_expiry() -> JSONResponse:
    with engine_session() as engine:
        return _ok(losses=engine.check_penalty_expiry())


@app.post("/api/bosses/{boss_id}/enter", response_class=JSONResponse)
def enter_gate(boss_id: str) -> JSONResponse:
    with engine_session() as engine:
        quest = engine.enter_gate(boss_id)
        if quest is None:
            return JSONResponse(
                {"ok": False, "warning": _last_warning(engine), "active_boss": engine.state.active_boss_warning},
                status_code=409,
            )
        return _ok(quest=quest.to_dict())


@app.post("/api/shop/{item_id}/purchase", response_class=JSONResponse)
def purchase(item_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.purchase_reward(item_id):
            return _rejected(engine)
        return _ok(gold=engine.state.player.gold, inventory=[i.to_dict() for i in engine.state.inventory])


@app.post("/api/mystery-box", response_class=JSONResponse)
def mystery_box() -> JSONResponse:
    with engine_session() as engine:
        return _ok(**engine.apply_mystery_box_roll())


@app.post("/api/inventory/{item_id}/consume", response_class=JSONResponse)
def consume_item(item_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.consume_inventory_item(item_id):
            return JSONResponse({"ok": False, "warning": f"{item_id} is not in the inventory"}, status_code=409)
        return _ok(inventory=[i.to_dict() for i in engine.state.inventory])


@app.post("/api/tasks", response_class=JSONResponse)
def add_task(
    title: str = Form(...),
    for_date: str = Form(""),
    task_type: str = Form("PERSONAL"),
    start_time: str = Form(""),
    end_time: str = Form(""),
    linked_quest_id: str = Form(""),
    linked_domain: str = Form(""),
) -> JSONResponse:
    try:
        kind = TaskType(task_type.upper())
    except ValueError:
        return JSONResponse({"ok": False, "warning": f"Unknown task type {task_type}"}, status_code=400)
    with engine_session() as engine:
        task = engine.add_scheduled_task(
            title,
            for_date or engine.clock.today_key(),
            kind,
            start_time=start_time,
            end_time=end_time,
            linked_quest_id=linked_quest_id or None,
            linked_domain=linked_domain or None,
        )
        return _ok(task=task.to_dict())


@app.post("/api/tasks/{task_id}/start", response_class=JSONResponse)
def start_task(task_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.start_task(task_id):
            return _rejected(engine)
        return _ok(task=engine.state.find_task(task_id).to_dict())


@app.post("/api/tasks/{task_id}/complete", response_class=JSONResponse)
def complete_task(task_id: str, quality: str = Form("FOCUSED")) -> JSONResponse:
    try:
        grade = TaskQuality(quality.upper())
    except ValueError:
        return JSONResponse({"ok": False, "warning": f"Unknown quality {quality}"}, status_code=400)
    with engine_session() as engine:
        if not engine.complete_task(task_id, grade):
            return _rejected(engine)
        return _ok(task=engine.state.find_task(task_id).to_dict())


@app.post("/api/tasks/{task_id}/miss", response_class=JSONResponse)
def miss_task(task_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.miss_task(task_id):
            return _rejected(engine)
        return _ok(task=engine.state.find_task(task_id).to_dict())


@app.post("/api/tasks/end-of-day", response_class=JSONResponse)
def end_of_day(for_date: str = Form(...)) -> JSONResponse:
    with engine_session() as engine:
        created = engine.process_end_of_day_tasks(for_date)
        return _ok(penalties=[q.to_dict() for q in created])


@app.get("/api/habits", response_class=JSONResponse)
def habits() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse([h.to_dict() for h in engine.habits_view()])


@app.post("/api/habits", response_class=JSONResponse)
def add_habit(name: str = Form(...), category: str = Form("CUSTOM"), color: str = Form("")) -> JSONResponse:
    try:
        kind = HabitCategory(category.upper())
    except ValueError:
        return JSONResponse({"ok": False, "warning": f"Unknown habit category {category}"}, status_code=400)
    with engine_session() as engine:
        habit = engine.add_habit(name, kind, color)
        if habit is None:
            return _rejected(engine)
        return _ok(habit=habit.to_dict())


@app.post("/api/habits/{habit_id}/toggle", response_class=JSONResponse)
def toggle_habit(habit_id: str, for_date: str = Form("")) -> JSONResponse:
    with engine_session() as engine:
        result = engine.toggle_habit_date(habit_id, for_date or None)
        if result is None:
            return _rejected(engine)
        return _ok(**result, player=engine.player_view().to_dict())


@app.post("/api/habits/{habit_id}/reset", response_class=JSONResponse)
def reset_habit(habit_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.reset_habit_streak(habit_id):
            return _rejected(engine)
        return _ok(habit=engine.state.find_habit(habit_id).to_dict())


@app.post("/api/habits/{habit_id}/delete", response_class=JSONResponse)
def delete_habit(habit_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.delete_habit(habit_id):
            return _rejected(engine)
        return _ok(habits=[h.to_dict() for h in engine.state.habits])


@app.get("/api/pending", response_class=JSONResponse)
def pending_quests() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse([q.to_dict() for q in engine.pending_view()])


@app.post("/api/pending/propose", response_class=JSONResponse)
def propose_quest(domain: str = Form("GENERAL")) -> JSONResponse:
    with engine_session() as engine:
        quest = engine.propose_quest(domain.upper())
        if quest is None:
            return JSONResponse({"ok": False, "warning": "No quest proposal available"}, status_code=503)
        return _ok(quest=quest.to_dict())


@app.post("/api/pending/{quest_id}/accept", response_class=JSONResponse)
def accept_pending(quest_id: str) -> JSONResponse:
    with engine_session() as engine:
        quest = engine.accept_pending_quest(quest_id)
        if quest is None:
            return _rejected(engine)
        return _ok(quest=quest.to_dict())


@app.post("/api/pending/{quest_id}/decline", response_class=JSONResponse)
def decline_pending(quest_id: str) -> JSONResponse:
    with engine_session() as engine:
        if not engine.decline_pending_quest(quest_id):
            return _rejected(engine)
        return _ok(pending=[q.to_dict() for q in engine.state.pending_quests])


@app.post("/api/snapshot", response_class=JSONResponse)
def snapshot() -> JSONResponse:
    with engine_session() as engine:
        return _ok(snapshot_date=engine.create_snapshot())


@app.post("/api/rollback", response_class=JSONResponse)
def rollback() -> JSONResponse:
    with engine_session() as engine:
        if not engine.rollback_to_snapshot():
            return _rejected(engine)
        return _ok(player=engine.player_view().to_dict())


@app.get("/export")
def export_save() -> JSONResponse:
    with engine_session() as engine:
        return JSONResponse(engine.state.to_dict())


@app.post("/import", response_class=JSONResponse)
def import_save(payload: str = Form(...)) -> JSONResponse:
    try:
        imported = GameState.from_dict(json.loads(payload))
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        return JSONResponse({"ok": False, "warning": f"Import rejected: {exc}"}, status_code=400)
    engine = open_engine()
    engine.state = imported
    engine.repair()
    engine.run_daily_reconciliation()
    engine.save()
    return _ok(player=engine.player_view().to_dict())
