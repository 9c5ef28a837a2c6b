from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime

from sovereign import buffs as buff_ledger
from sovereign.models import STATS, BuffCategory, Player, Quest, QuestType, Rank

# (minimum streak, xp multiplier), highest tier first
STREAK_TIERS = [(60, 3.0), (45, 2.5), (30, 2.0), (10, 1.5)]

STAT_PROGRESS_BY_DIFFICULTY = {
    Rank.E: 20,
    Rank.D: 30,
    Rank.C: 40,
    Rank.B: 60,
    Rank.A: 80,
    Rank.S: 100,
}

BOSS_STAT_PROGRESS = 60

# Boss rewards are calibrated when the gate opens, so the streak never touches them.
STREAK_APPLIES = {
    QuestType.DAILY: True,
    QuestType.BOSS: False,
    QuestType.PENALTY: True,
    QuestType.SKILL_CHALLENGE: True,
    QuestType.OPTIONAL: True,
}


@dataclass(frozen=True)
class Reward:
    xp: int
    gold: int
    stat_deltas: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"xp": self.xp, "gold": self.gold, "stats": dict(self.stat_deltas)}


def streak_multiplier(streak: int) -> float:
    for minimum, mult in STREAK_TIERS:
        if streak >= minimum:
            return mult
    return 1.0


STREAK_MILESTONES = [10, 30, 45, 60, 90]


def streak_milestone_reward(streak: int) -> Reward | None:
    """Check-in bonus for hitting a streak milestone, or None.

    Unlike quest rewards, ``stat_deltas`` here are whole attribute points.
    """
    if streak in STREAK_MILESTONES:
        index = STREAK_MILESTONES.index(streak)
    elif streak > 90 and (streak - 90) % 30 == 0:
        index = (streak - 90) // 30 + 4
    else:
        return None
    return Reward(xp=300 + 300 * index, gold=200 * (index + 1), stat_deltas={"DIS": 1})


def _stat_deltas(quest: Quest, stat_percent: int) -> dict[str, int]:
    deltas: dict[str, int] = {}
    if quest.type == QuestType.BOSS:
        for stat in STATS:
            deltas[stat] = BOSS_STAT_PROGRESS * stat_percent // 100
        return deltas
    base = STAT_PROGRESS_BY_DIFFICULTY[quest.difficulty]
    for stat in quest.target_stats:
        deltas[stat] = deltas.get(stat, 0) + base * stat_percent // 100
    return deltas


def compute_reward(quest: Quest, player: Player, now: datetime) -> Reward:
    xp_mult = streak_multiplier(player.streak) if STREAK_APPLIES[quest.type] else 1.0
    stat_percent = buff_ledger.multiplier_percent(player.active_buffs, BuffCategory.STAT, now)
    gold_percent = buff_ledger.multiplier_percent(player.active_buffs, BuffCategory.GOLD, now)
    return Reward(
        xp=math.floor(quest.xp_reward * xp_mult),
        gold=quest.gold_reward * gold_percent // 100,
        stat_deltas=_stat_deltas(quest, stat_percent),
    )
