from __future__ import annotations

from datetime import datetime

from sovereign.models import EXCLUSIVE_CATEGORIES, Buff, BuffCategory, BuffType


def is_active(buff: Buff, now: datetime) -> bool:
    return not buff.paused and buff.expires_at > now


def is_spent(buff: Buff, now: datetime) -> bool:
    if buff.expires_at <= now:
        return True
    return buff.uses_remaining is not None and buff.uses_remaining <= 0


def active_in_category(buffs: list[Buff], category: BuffCategory, now: datetime) -> Buff | None:
    return next((b for b in buffs if b.category == category and is_active(b, now)), None)


def multiplier_percent(buffs: list[Buff], category: BuffCategory, now: datetime) -> int:
    # 100 + sum of active values; kept integral so floors are exact
    return 100 + sum(b.value for b in buffs if b.category == category and is_active(b, now))


def stat_multiplier(buffs: list[Buff], now: datetime) -> float:
    return multiplier_percent(buffs, BuffCategory.STAT, now) / 100


def gold_multiplier(buffs: list[Buff], now: datetime) -> float:
    return multiplier_percent(buffs, BuffCategory.GOLD, now) / 100


def admit(buffs: list[Buff], buff: Buff, now: datetime) -> bool:
    """Append ``buff``; returns True when it had to be queued behind an active one.

    Queued buffs wait until every buff already holding or waiting for the
    slot has run out, and their window moves back so they keep their full
    duration.
    """
    if buff.category in EXCLUSIVE_CATEGORIES:
        holder = active_in_category(buffs, buff.category, now)
        if holder is not None:
            duration = buff.expires_at - now
            waiting = [b.expires_at for b in buffs if b.category == buff.category and b.paused and not is_spent(b, now)]
            buff.paused = True
            buff.activates_at = max([holder.expires_at, *waiting])
            buff.expires_at = buff.activates_at + duration
    buffs.append(buff)
    return buff.paused


def cleanup(buffs: list[Buff], now: datetime) -> tuple[list[Buff], list[Buff]]:
    """Prune spent buffs and wake queued ones whose time has come.

    Returns ``(kept, activated)``.
    """
    kept = [b for b in buffs if not is_spent(b, now)]
    activated = []
    for buff in kept:
        if not buff.paused or buff.activates_at is None or buff.activates_at > now:
            continue
        if buff.category in EXCLUSIVE_CATEGORIES and active_in_category(kept, buff.category, now) is not None:
            continue
        buff.paused = False
        buff.activates_at = None
        activated.append(buff)
    return kept, activated


def consume_immunity(buffs: list[Buff], now: datetime) -> Buff | None:
    for buff in buffs:
        if buff.type != BuffType.PENALTY_IMMUNITY or not is_active(buff, now):
            continue
        if buff.uses_remaining is not None and buff.uses_remaining > 0:
            buff.uses_remaining -= 1
            return buff
    return None
