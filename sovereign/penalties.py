from __future__ import annotations

import logging
import random
from datetime import datetime

from sovereign import content
from sovereign.generator import ContentGenerator, generate_content
from sovereign.models import GameState, Player, Quest, QuestType, Rank, TaskType, new_id
from sovereign.progression import apply_penalty_loss

logger = logging.getLogger(__name__)

MISSED_DAILY = "missed_daily"
MISSED_OPTIONAL = "missed_optional"
MISSED_SKILL_PROTOCOL = "missed_skill_protocol"

# PERSONAL tasks are tracked but never punished.
TASK_PENALTY_GROUPS = {
    TaskType.OPTIONAL: MISSED_OPTIONAL,
    TaskType.SKILL_PROTOCOL: MISSED_SKILL_PROTOCOL,
    TaskType.PERSONAL: None,
}

GROUP_LABELS = {
    MISSED_DAILY: "daily quest",
    MISSED_OPTIONAL: "scheduled optional task",
    MISSED_SKILL_PROTOCOL: "scheduled skill protocol task",
}


def consolidation_key(group: str, day_key: str) -> str:
    return f"{group}:{day_key}"


def _plural(count: int, label: str) -> str:
    return f"{count} {label}{'s' if count != 1 else ''}"


def build_penalty_quest(
    rng: random.Random,
    pack: dict,
    now: datetime,
    scope_date: str,
    reason: str,
    *,
    prefix: str = "penalty",
    key: str | None = None,
) -> Quest:
    template = content.pick_penalty_template(rng, pack)
    return Quest(
        id=new_id(prefix, now, rng),
        title=template["title"],
        type=QuestType.PENALTY,
        difficulty=Rank.E,
        description=f"{template['description']} ({reason})",
        domain="SYSTEM",
        created_at=now,
        scope_date=scope_date,
        consolidation_key=key,
    )


def enrich_penalty(quest: Quest, generator: ContentGenerator, failed_title: str) -> bool:
    """Swap template text for generated text; the template stays on any failure."""
    payload = generate_content(
        generator, {"kind": "penalty", "failed_quest": failed_title, "template_title": quest.title}
    )
    if payload is None:
        logger.warning("Penalty enrichment failed for %r, keeping template", failed_title)
        return False
    title = payload["title"]
    quest.title = title if title.upper().startswith("PENALTY:") else f"PENALTY: {title}"
    quest.description = payload["description"] or quest.description
    return True


def find_consolidated(state: GameState, key: str) -> Quest | None:
    return next((q for q in state.quests if q.type == QuestType.PENALTY and q.consolidation_key == key), None)


def consolidate(
    state: GameState,
    group: str,
    day_key: str,
    missed: int,
    rng: random.Random,
    pack: dict,
    now: datetime,
    today_key: str,
) -> Quest | None:
    """Add one penalty for ``missed`` items of ``group`` on ``day_key``.

    Returns None when nothing was missed or the group already has its
    penalty for that day.
    """
    if missed <= 0:
        return None
    key = consolidation_key(group, day_key)
    if find_consolidated(state, key) is not None:
        return None
    quest = build_penalty_quest(
        rng,
        pack,
        now,
        today_key,
        f"Missed {_plural(missed, GROUP_LABELS[group])}",
        prefix=f"penalty_{group}",
        key=key,
    )
    state.quests.append(quest)
    return quest


def outstanding(state: GameState) -> list[Quest]:
    return [q for q in state.quests if q.type == QuestType.PENALTY and not q.is_completed]


def expired(state: GameState, today_key: str) -> list[Quest]:
    return [q for q in outstanding(state) if q.scope_date and q.scope_date < today_key]


def check_penalty_expiry(state: GameState, today_key: str) -> dict | None:
    """Punish and drop penalties left undone past their day.

    Returns the loss summary, or None when nothing had expired.
    """
    stale = expired(state, today_key)
    if not stale:
        return None
    player = state.player
    losses = apply_penalty_loss(player)
    stale_ids = {q.id for q in stale}
    state.quests = [q for q in state.quests if q.id not in stale_ids]
    player.ego_death_streak = 0
    player.last_ego_death_date = None
    losses["expired"] = [q.title for q in stale]
    return losses


def update_ego_death(state: GameState, now: datetime, today_key: str, date_key) -> bool:
    player: Player = state.player
    if outstanding(state):
        return False
    if player.last_ego_death_date is not None and date_key(player.last_ego_death_date) == today_key:
        return False
    player.ego_death_streak += 1
    player.last_ego_death_date = now
    return True
