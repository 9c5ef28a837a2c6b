from __future__ import annotations

import random
from dataclasses import dataclass, field

from sovereign.models import STATS, XP_PER_LEVEL, Player, Rank

# (minimum level, rank), highest first
RANK_THRESHOLDS = [(85, Rank.S), (65, Rank.A), (45, Rank.B), (25, Rank.C), (10, Rank.D)]

LEVEL_UP_STAT_PICKS = 3
PENALTY_LOSS_PERCENT = 30


def rank_for_level(level: int) -> Rank:
    for minimum, rank in RANK_THRESHOLDS:
        if level >= minimum:
            return rank
    return Rank.E


def xp_required(level: int) -> int:
    return level * XP_PER_LEVEL


@dataclass
class XpOutcome:
    old_level: int
    new_level: int
    stat_increases: dict[str, int] = field(default_factory=dict)
    rank_up: tuple[Rank, Rank] | None = None
    titles: list[dict] = field(default_factory=list)

    @property
    def levels_gained(self) -> int:
        return self.new_level - self.old_level

    def to_dict(self) -> dict:
        return {
            "old_level": self.old_level,
            "new_level": self.new_level,
            "stat_increases": dict(self.stat_increases),
            "rank_up": [r.value for r in self.rank_up] if self.rank_up else None,
            "titles": list(self.titles),
        }


def apply_xp(player: Player, amount: int, rng: random.Random, titles: dict | None = None) -> XpOutcome:
    outcome = XpOutcome(old_level=player.level, new_level=player.level)
    player.xp = max(0, player.xp + amount)
    while player.xp >= player.xp_to_next_level:
        player.xp -= player.xp_to_next_level
        player.level += 1
        player.xp_to_next_level = xp_required(player.level)
        for stat in rng.sample(STATS, LEVEL_UP_STAT_PICKS):
            player.stats[stat] += 1
            outcome.stat_increases[stat] = outcome.stat_increases.get(stat, 0) + 1
        unlocked = (titles or {}).get(str(player.level))
        if unlocked:
            player.title = unlocked["name"]
            outcome.titles.append({"level": player.level, **unlocked})
    outcome.new_level = player.level

    new_rank = rank_for_level(player.level)
    if new_rank.order > player.rank.order:
        outcome.rank_up = (player.rank, new_rank)
        player.rank = new_rank
    return outcome


def apply_stat_deltas(player: Player, deltas: dict[str, int]) -> dict[str, int]:
    gained: dict[str, int] = {}
    for stat, delta in deltas.items():
        progress = max(0, player.stat_progress.get(stat, 0) + delta)
        while progress >= 100:
            progress -= 100
            player.stats[stat] = player.stats.get(stat, 0) + 1
            gained[stat] = gained.get(stat, 0) + 1
        player.stat_progress[stat] = progress
    return gained


def apply_penalty_loss(player: Player, percent: int = PENALTY_LOSS_PERCENT) -> dict:
    xp_lost = player.xp * percent // 100
    gold_lost = player.gold * percent // 100
    stats_lost = {}
    for stat in STATS:
        loss = player.stat_progress.get(stat, 0) * percent // 100
        if loss > 0:
            stats_lost[stat] = loss
        player.stat_progress[stat] = max(0, player.stat_progress.get(stat, 0) - loss)
    player.xp = max(0, player.xp - xp_lost)
    player.gold = max(0, player.gold - gold_lost)
    return {"xp_lost": xp_lost, "gold_lost": gold_lost, "stats_lost": stats_lost}
