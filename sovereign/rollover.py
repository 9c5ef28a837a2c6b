from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime

from sovereign import penalties
from sovereign.clock import date_keys_between
from sovereign.models import GameState, Quest, QuestType, Rank


@dataclass
class ReconcileReport:
    today: str
    same_day: bool = False
    swept_dates: list[str] = field(default_factory=list)
    missed_tasks: list[str] = field(default_factory=list)
    penalties: list[Quest] = field(default_factory=list)
    expiry: dict | None = None
    activated_buffs: list[str] = field(default_factory=list)
    check_in: dict | None = None
    snapshot_taken: bool = False

    def to_dict(self) -> dict:
        return {
            "today": self.today,
            "same_day": self.same_day,
            "swept_dates": list(self.swept_dates),
            "missed_tasks": list(self.missed_tasks),
            "penalties": [q.title for q in self.penalties],
            "expiry": self.expiry,
            "activated_buffs": list(self.activated_buffs),
            "check_in": self.check_in,
            "snapshot_taken": self.snapshot_taken,
        }


def days_to_sweep(last_login_key: str | None, today_key: str) -> list[str]:
    # From the last-login day itself up to yesterday; empty for a fresh player.
    if not last_login_key or last_login_key >= today_key:
        return []
    return date_keys_between(last_login_key, today_key)


def sweep_day(
    state: GameState,
    day_key: str,
    rng: random.Random,
    pack: dict,
    now: datetime,
    today_key: str,
) -> tuple[list[str], list[Quest]]:
    """Close out one calendar day of scheduled tasks.

    Stale tasks become MISSED, their linked quests are dropped, and each
    penalized task type gets a single consolidated penalty.
    """
    stale = [t for t in state.tasks if t.date == day_key and not t.status.terminal and not t.penalty_applied]
    if not stale:
        return [], []

    linked = {t.linked_quest_id for t in stale if t.linked_quest_id}
    state.quests = [q for q in state.quests if q.id not in linked]

    counts: dict[str, int] = {}
    for task in stale:
        task.mark_missed()
        group = penalties.TASK_PENALTY_GROUPS[task.type]
        if group:
            counts[group] = counts.get(group, 0) + 1

    created = []
    for group, missed in counts.items():
        quest = penalties.consolidate(state, group, day_key, missed, rng, pack, now, today_key)
        if quest is not None:
            created.append(quest)
    return [t.title for t in stale], created


def _instantiate_daily(template: dict, today_key: str, now: datetime) -> Quest:
    return Quest(
        id=f"{template['id']}_{today_key}",
        title=template["title"],
        type=QuestType.DAILY,
        difficulty=Rank(template.get("difficulty", "E")),
        xp_reward=int(template.get("xp_reward", 0)),
        gold_reward=int(template.get("gold_reward", 0)),
        description=template.get("description", ""),
        domain=template.get("domain", "GENERAL"),
        target_stats=list(template.get("target_stats") or []),
        created_at=now,
        scope_date=today_key,
        template_id=template["id"],
    )


def refresh_daily_quests(
    state: GameState,
    rng: random.Random,
    pack: dict,
    now: datetime,
    today_key: str,
) -> Quest | None:
    """Make today's daily set current.

    Dailies scoped to an earlier day are dropped; any of those left
    incomplete (and not exempt) cost one consolidated penalty. Quests
    already scoped to today are kept as they are, so completion status
    survives repeated refreshes.
    """
    dailies = [q for q in state.quests if q.type == QuestType.DAILY]
    stale = [q for q in dailies if q.scope_date != today_key]
    # dailies stored without a day predate scoping and are dropped unpunished
    missed = [q for q in stale if q.scope_date is not None and not q.is_completed and not q.penalty_exempt]
    present = {q.template_id for q in dailies if q.scope_date == today_key}

    stale_ids = {q.id for q in stale}
    state.quests = [q for q in state.quests if q.id not in stale_ids]
    for template in pack.get("daily_quests") or []:
        if template["id"] not in present:
            state.quests.append(_instantiate_daily(template, today_key, now))

    return penalties.consolidate(state, penalties.MISSED_DAILY, today_key, len(missed), rng, pack, now, today_key)
