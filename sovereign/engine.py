from __future__ import annotations

import copy
import logging
import random
from datetime import timedelta

from sovereign import buffs as buff_ledger
from sovereign import habits as habit_ledger
from sovereign import content, penalties, rollover
from sovereign.clock import Clock, shift_key
from sovereign.generator import ContentGenerator, NullContentGenerator, generate_content
from sovereign.models import (
    STATS,
    Boss,
    BossStatus,
    Buff,
    BuffType,
    GameState,
    Habit,
    HabitCategory,
    Quest,
    QuestType,
    Rank,
    ScheduledTask,
    TaskQuality,
    TaskStatus,
    TaskType,
    dt_to_iso,
    new_id,
)
from sovereign.progression import XpOutcome, apply_stat_deltas, apply_xp
from sovereign.rewards import Reward, compute_reward, streak_milestone_reward

logger = logging.getLogger(__name__)

EVENT_LOG_LIMIT = 50

MASTERY_GAIN = {
    Rank.E: 0.1,
    Rank.D: 0.2,
    Rank.C: 0.3,
    Rank.B: 0.4,
    Rank.A: 0.6,
    Rank.S: 1.0,
}

# Counter-based immunity without an explicit window lasts a year.
IMMUNITY_DEFAULT_DAYS = 365


class ProgressionEngine:
    """Owns one player's game state and every transition applied to it.

    Collaborators (clock, rng, content generator, snapshot store) are
    injected. Rejected actions return False/None and leave a ``warning``
    event instead of raising.
    """

    def __init__(
        self,
        state: GameState | None = None,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        generator: ContentGenerator | None = None,
        pack: dict | None = None,
        store=None,
        user_id: str = "default",
    ) -> None:
        self.state = state or GameState()
        self.clock = clock or Clock()
        self.rng = rng or random.Random()
        self.generator = generator or NullContentGenerator()
        self.pack = pack if pack is not None else content.load_content_pack()
        self.store = store
        self.user_id = user_id

    @classmethod
    def load(cls, store, user_id: str = "default", **kwargs) -> ProgressionEngine:
        raw = store.load_snapshot(user_id)
        state = None
        if raw is not None:
            try:
                state = GameState.from_dict(raw)
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning("Stored state for %s is unreadable, starting fresh: %s", user_id, exc)
        engine = cls(state, store=store, user_id=user_id, **kwargs)
        if raw is not None and state is None:
            engine._record("repair", "Stored state was unreadable; started a fresh profile.")
        engine.repair()
        return engine

    def save(self) -> None:
        if self.store is not None:
            self.store.save_snapshot(self.user_id, self.state.to_dict())

    # events

    def _record(self, kind: str, text: str, **meta) -> dict:
        now = self.clock.now()
        event = {"at": dt_to_iso(now), "kind": kind, "text": text, "meta": meta}
        self.state.events.append(event)
        del self.state.events[:-EVENT_LOG_LIMIT]
        if self.store is not None:
            self.store.record_event(self.user_id, self.clock.date_key(now), kind, text, meta)
        return event

    def _warn(self, text: str, **meta) -> None:
        logger.info("Rejected action: %s", text)
        self._record("warning", text, **meta)

    # repair on load

    def repair(self) -> list[str]:
        repaired = []
        state = self.state
        if not state.bosses:
            state.bosses = content.default_bosses(self.pack)
            repaired.append("bosses")
        if not state.skill_nodes:
            state.skill_nodes = content.default_skill_nodes(self.pack)
            repaired.append("skill_nodes")
        if not state.shop_items:
            state.shop_items = content.default_shop_items(self.pack)
            repaired.append("shop_items")
        if not state.quests:
            today = self.clock.today_key()
            rollover.refresh_daily_quests(state, self.rng, self.pack, self.clock.now(), today)
            repaired.append("quests")
        if repaired:
            logger.info("Restored default content for %s: %s", self.user_id, ", ".join(repaired))
            self._record("repair", f"Restored defaults: {', '.join(repaired)}", sections=repaired)
        return repaired

    # buffs

    def _sync_buffs(self) -> list[Buff]:
        kept, activated = buff_ledger.cleanup(self.state.player.active_buffs, self.clock.now())
        self.state.player.active_buffs = kept
        for buff in activated:
            self._record("buff_activated", f"Queued buff now active: {buff.description or buff.type.value}")
        return activated

    def cleanup_buffs(self) -> list[Buff]:
        return self._sync_buffs()

    def _grant_buff(self, buff: Buff) -> None:
        queued = buff_ledger.admit(self.state.player.active_buffs, buff, self.clock.now())
        if queued:
            self._record(
                "buff_queued",
                f"{buff.category.value} buff queued until the current one expires",
                activates_at=dt_to_iso(buff.activates_at),
            )

    # progression

    def _apply_xp(self, amount: int) -> XpOutcome:
        outcome = apply_xp(self.state.player, amount, self.rng, self.pack.get("titles"))
        player = self.state.player
        if outcome.levels_gained:
            self._record(
                "level_up",
                f"Level up: {outcome.old_level} -> {outcome.new_level}",
                stats=outcome.stat_increases,
            )
        if outcome.rank_up:
            old, new = outcome.rank_up
            self._record("rank_up", f"Rank up: {old.value} -> {new.value}", old=old.value, new=new.value)
        for unlocked in outcome.titles:
            self._record("title", f"Title unlocked: {unlocked['name']}", level=unlocked["level"])
        if outcome.levels_gained:
            self.check_boss_availability()
        logger.debug("XP %+d -> level %s xp %s", amount, player.level, player.xp)
        return outcome

    def add_xp(self, amount: int) -> XpOutcome:
        return self._apply_xp(amount)

    def add_gold(self, amount: int) -> int:
        player = self.state.player
        player.gold = max(0, player.gold + amount)
        return player.gold

    def check_boss_availability(self) -> list[Boss]:
        player = self.state.player
        unlocked = []
        for boss in self.state.bosses:
            if boss.status == BossStatus.LOCKED and boss.requirements_met(player.level, player.rank):
                boss.status = BossStatus.AVAILABLE
                unlocked.append(boss)
        if unlocked:
            self._record("boss_available", f"Gate detected: {unlocked[0].name}", bosses=[b.id for b in unlocked])
        return unlocked

    # quest lifecycle

    def add_quest(self, quest: Quest) -> Quest | None:
        if self.state.find_quest(quest.id) is not None:
            self._warn(f"Quest {quest.id} already exists", quest_id=quest.id)
            return None
        now = self.clock.now()
        quest.created_at = quest.created_at or now
        quest.scope_date = quest.scope_date or self.clock.date_key(now)
        self.state.quests.append(quest)
        return quest

    def remove_quest(self, quest_id: str) -> bool:
        quest = self.state.find_quest(quest_id)
        if quest is None:
            return False
        self.state.quests.remove(quest)
        return True

    def complete_quest(self, quest_id: str) -> Reward | None:
        quest = self.state.find_quest(quest_id)
        if quest is None:
            self._warn(f"Unknown quest {quest_id}", quest_id=quest_id)
            return None
        if quest.is_completed:
            self._warn(f"Quest already completed: {quest.title}", quest_id=quest_id)
            return None

        self._sync_buffs()
        now = self.clock.now()
        player = self.state.player
        reward = compute_reward(quest, player, now)
        apply_stat_deltas(player, reward.stat_deltas)
        self._apply_xp(reward.xp)
        self.add_gold(reward.gold)

        if quest.type == QuestType.PENALTY:
            self.state.quests.remove(quest)
        else:
            quest.is_completed = True
            quest.completed_at = now

        if quest.type == QuestType.SKILL_CHALLENGE:
            self._raise_mastery(quest)
        if quest.type == QuestType.BOSS:
            boss = self.state.find_boss(quest.boss_id) if quest.boss_id else self.state.active_boss()
            if boss is not None:
                boss.status = BossStatus.DEFEATED
                self._record("boss_defeated", f"Boss defeated: {boss.name}", boss_id=boss.id)

        for task in self.state.tasks:
            if task.linked_quest_id == quest_id and not task.status.terminal:
                task.status = TaskStatus.COMPLETED
                task.quality = task.quality or TaskQuality.FOCUSED

        self._record("quest_completed", f"Quest complete: {quest.title}", quest_id=quest_id, reward=reward.to_dict())
        return reward

    def _raise_mastery(self, quest: Quest) -> None:
        node = next((n for n in self.state.skill_nodes if n.domain == quest.domain and n.mastery < 1.0), None)
        if node is None:
            return
        node.mastery = round(min(1.0, node.mastery + MASTERY_GAIN[quest.difficulty]), 4)

    def abandon_quest(self, quest_id: str) -> dict | None:
        """Drop a quest, paying with a penalty unless an immunity charge covers it.

        Returns ``{"penalty": Quest | None, "immunity_used": bool}``, or None
        when the quest cannot be abandoned.
        """
        quest = self.state.find_quest(quest_id)
        if quest is None:
            self._warn(f"Unknown quest {quest_id}", quest_id=quest_id)
            return None
        if quest.type == QuestType.PENALTY:
            self._warn(f"Penalty quests cannot be abandoned: {quest.title}", quest_id=quest_id)
            return None

        now = self.clock.now()
        for task in self.state.tasks:
            if task.linked_quest_id == quest_id:
                task.mark_missed()

        self.state.quests.remove(quest)
        if quest.type == QuestType.BOSS:
            for boss in self.state.bosses:
                if boss.status == BossStatus.ACTIVE:
                    boss.status = BossStatus.AVAILABLE

        if buff_ledger.consume_immunity(self.state.player.active_buffs, now) is not None:
            self._record("penalty_skipped", f"Penalty skipped by immunity: {quest.title}", quest_id=quest_id)
            return {"penalty": None, "immunity_used": True}

        penalty = penalties.build_penalty_quest(
            self.rng,
            self.pack,
            now,
            self.clock.date_key(now),
            f'Abandoned "{quest.title}"',
            prefix="penalty_abandon",
        )
        self.state.quests.append(penalty)
        self._enrich_penalty(penalty, quest.title)
        self._record("penalty_assigned", f"Penalty assigned: {penalty.title}", quest_id=penalty.id, source=quest.title)
        return {"penalty": penalty, "immunity_used": False}

    def _enrich_penalty(self, penalty: Quest, failed_title: str) -> None:
        if not penalties.enrich_penalty(penalty, self.generator, failed_title):
            self._record("generator_fallback", f"Using preset penalty: {penalty.title}", quest_id=penalty.id)

    # check-in

    def check_in(self) -> dict | None:
        """Daily check-in: streak, milestone bonus and ego death streak.

        Returns None when the player already checked in today.
        """
        now = self.clock.now()
        today = self.clock.date_key(now)
        player = self.state.player
        last = self.clock.date_key(player.last_check_in_date) if player.last_check_in_date else None
        if last == today:
            return None

        player.streak = player.streak + 1 if last == shift_key(today, -1) else 1
        player.last_check_in_date = now
        ego = penalties.update_ego_death(self.state, now, today, self.clock.date_key)

        bonus = streak_milestone_reward(player.streak)
        if bonus is not None:
            self._pay_milestone(bonus)
            self._record("streak_milestone", f"{player.streak} day streak", reward=bonus.to_dict())
        return {
            "streak": player.streak,
            "milestone": bonus.to_dict() if bonus else None,
            "ego_death_streak": player.ego_death_streak,
            "ego_death_incremented": ego,
        }

    def _pay_milestone(self, bonus: Reward) -> None:
        # milestone stat deltas are whole attribute points, not progress
        player = self.state.player
        for stat, points in bonus.stat_deltas.items():
            player.stats[stat] += points
        self._apply_xp(bonus.xp)
        self.add_gold(bonus.gold)

    # habits

    def add_habit(self, name: str, category: HabitCategory = HabitCategory.CUSTOM, color: str = "") -> Habit | None:
        name = name.strip()
        if not name:
            self._warn("Habit name is empty")
            return None
        habit = Habit(id=new_id("habit", self.clock.now(), self.rng), name=name, category=category, color=color)
        self.state.habits.append(habit)
        return habit

    def delete_habit(self, habit_id: str) -> bool:
        habit = self.state.find_habit(habit_id)
        if habit is None:
            self._warn(f"Unknown habit {habit_id}", habit_id=habit_id)
            return False
        self.state.habits.remove(habit)
        return True

    def toggle_habit_date(self, habit_id: str, day_key: str | None = None) -> dict | None:
        """Mark or unmark one day of a habit.

        Only marking a day can pay a streak milestone; unmarking just
        recounts. Returns None for an unknown habit or a malformed date.
        """
        habit = self.state.find_habit(habit_id)
        if habit is None:
            self._warn(f"Unknown habit {habit_id}", habit_id=habit_id)
            return None
        day_key = day_key or self.clock.today_key()
        try:
            added = habit_ledger.toggle_date(habit, day_key)
        except ValueError:
            self._warn(f"Invalid habit date {day_key!r}", habit_id=habit_id)
            return None

        bonus = streak_milestone_reward(habit.current_streak) if added else None
        if bonus is not None:
            self._pay_milestone(bonus)
            self._record(
                "habit_milestone",
                f"{habit.current_streak} day streak: {habit.name}",
                habit_id=habit.id,
                reward=bonus.to_dict(),
            )
        return {
            "completed": added,
            "current_streak": habit.current_streak,
            "longest_streak": habit.longest_streak,
            "milestone": bonus.to_dict() if bonus else None,
        }

    def reset_habit_streak(self, habit_id: str) -> bool:
        habit = self.state.find_habit(habit_id)
        if habit is None:
            self._warn(f"Unknown habit {habit_id}", habit_id=habit_id)
            return False
        habit.current_streak = 0
        return True

    # pending quests

    def add_pending_quest(self, quest: Quest) -> Quest | None:
        if self.state.find_pending(quest.id) is not None or self.state.find_quest(quest.id) is not None:
            self._warn(f"Quest {quest.id} already exists", quest_id=quest.id)
            return None
        quest.created_at = quest.created_at or self.clock.now()
        self.state.pending_quests.append(quest)
        return quest

    def propose_quest(self, domain: str = "GENERAL") -> Quest | None:
        """Ask the content generator for an optional quest and hold it for acceptance."""
        player = self.state.player
        context = {"kind": "proposal", "domain": domain, "level": player.level, "rank": player.rank.value}
        payload = generate_content(self.generator, context)
        if payload is None:
            self._record("generator_fallback", f"No quest proposal available for {domain}", domain=domain)
            return None
        rewards = payload["rewards"]
        now = self.clock.now()
        quest = Quest(
            id=new_id("proposal", now, self.rng),
            title=payload["title"],
            type=QuestType.OPTIONAL,
            difficulty=Rank(payload["difficulty"]) if payload["difficulty"] else Rank.E,
            xp_reward=max(0, rewards.get("xp", 0)),
            gold_reward=max(0, rewards.get("gold", 0)),
            description=payload["description"],
            domain=domain,
            created_at=now,
        )
        self.add_pending_quest(quest)
        self._record("quest_proposed", f"Quest proposed: {quest.title}", quest_id=quest.id)
        return quest

    def accept_pending_quest(self, quest_id: str) -> Quest | None:
        quest = self.state.find_pending(quest_id)
        if quest is None:
            self._warn(f"Unknown pending quest {quest_id}", quest_id=quest_id)
            return None
        if self.state.find_quest(quest_id) is not None:
            self._warn(f"Quest {quest_id} already exists", quest_id=quest_id)
            return None
        self.state.pending_quests.remove(quest)
        quest.is_completed = False
        quest.completed_at = None
        # an accepted quest belongs to the day it was taken on
        quest.scope_date = None
        self.add_quest(quest)
        self._record("quest_accepted", f"Quest accepted: {quest.title}", quest_id=quest_id)
        return quest

    def decline_pending_quest(self, quest_id: str) -> bool:
        quest = self.state.find_pending(quest_id)
        if quest is None:
            self._warn(f"Unknown pending quest {quest_id}", quest_id=quest_id)
            return False
        self.state.pending_quests.remove(quest)
        logger.info("Quest declined: %s", quest.title)
        self._record("quest_declined", f"Quest declined: {quest.title}", quest_id=quest_id)
        return True

    # gates

    def enter_gate(self, boss_id: str) -> Quest | None:
        boss = self.state.find_boss(boss_id)
        if boss is None:
            self._warn(f"Unknown boss {boss_id}", boss_id=boss_id)
            return None
        active = self.state.active_boss()
        if active is not None:
            if active.id == boss_id:
                return next((q for q in self.state.quests if q.boss_id == boss_id and not q.is_completed), None)
            self.state.active_boss_warning = active.name
            self._warn(f"Another gate is already open: {active.name}", boss_id=boss_id, active=active.id)
            return None
        if boss.status != BossStatus.AVAILABLE:
            self._warn(f"Gate {boss.name} is {boss.status.value}", boss_id=boss_id)
            return None

        boss.status = BossStatus.ACTIVE
        self.state.active_boss_warning = None
        quest = Quest(
            id=f"quest_{boss.id}",
            title=f"DEFEAT: {boss.name}",
            type=QuestType.BOSS,
            difficulty=boss.quest_difficulty,
            xp_reward=boss.xp_reward,
            gold_reward=boss.gold_reward,
            description=boss.quest_description,
            created_at=self.clock.now(),
            scope_date=self.clock.today_key(),
            boss_id=boss.id,
        )
        self.state.quests = [q for q in self.state.quests if q.id != quest.id]
        self.state.quests.insert(0, quest)
        if not boss.calibrated:
            self._calibrate(boss, quest)
        self._record("gate_entered", f"Gate opened: {boss.name}", boss_id=boss.id)
        return quest

    def _calibrate(self, boss: Boss, quest: Quest) -> None:
        context = {
            "kind": "boss",
            "boss": boss.name,
            "title": boss.title,
            "difficulty": boss.quest_difficulty.value,
            "level": self.state.player.level,
            "domains": sorted({n.domain for n in self.state.skill_nodes}),
        }
        payload = generate_content(self.generator, context)
        if payload is None:
            logger.warning("Boss calibration failed for %s, using preset quest", boss.id)
            self._record("generator_fallback", f"Using preset directives for {boss.name}", boss_id=boss.id)
            return
        boss.quest_description = payload["description"]
        boss.calibrated = True
        quest.description = payload["description"]

    # rewards shop

    def apply_mystery_box_roll(self) -> dict:
        box = self.pack.get("mystery_box") or {}
        tier = content.weighted_choice(self.rng, box.get("tiers") or []).get("tier", "COMMON")
        reward = content.weighted_choice(self.rng, (box.get("rewards") or {}).get(tier) or [])
        effect = reward.get("effect") or {"kind": "leisure"}
        self._apply_box_effect(reward, effect)
        self._record("mystery_box", f"Mystery box ({tier}): {reward.get('name', 'nothing')}", tier=tier, reward=reward.get("id"))
        return {"tier": tier, "reward": reward}

    def _apply_box_effect(self, reward: dict, effect: dict) -> None:
        now = self.clock.now()
        kind = effect.get("kind")
        name = reward.get("name", "")
        if kind == "stat_buff":
            count = int(effect.get("stats", len(STATS)))
            whole = count >= len(STATS)
            self._grant_buff(
                Buff(
                    id=new_id("buff", now, self.rng),
                    type=BuffType.STAT_ALL if whole else BuffType.STAT_SINGLE,
                    value=int(effect["value"]),
                    expires_at=now + timedelta(hours=int(effect.get("hours", 24))),
                    target_stats=list(STATS) if whole else self.rng.sample(STATS, count),
                    description=name,
                )
            )
        elif kind == "gold_buff":
            self._grant_buff(
                Buff(
                    id=new_id("gold", now, self.rng),
                    type=BuffType.GOLD_MULTIPLIER,
                    value=int(effect.get("value", 100)),
                    expires_at=now + timedelta(hours=int(effect.get("hours", 24))),
                    description=name,
                )
            )
        elif kind == "immunity":
            uses = int(effect.get("uses", 1))
            hours = effect.get("hours")
            window = timedelta(hours=int(hours)) if hours else timedelta(days=IMMUNITY_DEFAULT_DAYS)
            self._grant_buff(
                Buff(
                    id=new_id("nopenalty", now, self.rng),
                    type=BuffType.PENALTY_IMMUNITY,
                    value=uses,
                    expires_at=now + window,
                    uses_remaining=uses,
                    description=name,
                )
            )
        elif kind == "key":
            item = next((i for i in self.state.shop_items if i.id == effect.get("item_id")), None)
            if item is not None:
                self.state.inventory.append(copy.deepcopy(item))
        else:
            self._record("reward", f"Reward claimed: {name}")

    def purchase_reward(self, item_id: str) -> bool:
        item = next((i for i in self.state.shop_items if i.id == item_id), None)
        if item is None:
            self._warn(f"Unknown shop item {item_id}", item_id=item_id)
            return False
        player = self.state.player
        if player.gold < item.cost:
            self._warn(f"Not enough gold for {item.name}", item_id=item_id, cost=item.cost, gold=player.gold)
            return False
        player.gold -= item.cost
        if item.id == "mystery_box":
            self.apply_mystery_box_roll()
        else:
            self.state.inventory.append(copy.deepcopy(item))
            self._record("purchase", f"Purchased {item.name}", item_id=item.id, cost=item.cost)
        return True

    def consume_inventory_item(self, item_id: str) -> bool:
        item = next((i for i in self.state.inventory if i.id == item_id), None)
        if item is None:
            return False
        self.state.inventory.remove(item)
        self._record("item_used", f"Used {item.name}", item_id=item_id)
        return True

    # scheduled tasks

    def add_scheduled_task(
        self,
        title: str,
        date: str,
        task_type: TaskType = TaskType.PERSONAL,
        start_time: str = "",
        end_time: str = "",
        linked_quest_id: str | None = None,
        linked_domain: str | None = None,
    ) -> ScheduledTask:
        task = ScheduledTask(
            id=new_id("task", self.clock.now(), self.rng),
            title=title,
            date=date,
            type=task_type,
            start_time=start_time,
            end_time=end_time,
            linked_quest_id=linked_quest_id,
            linked_domain=linked_domain,
        )
        self.state.tasks.append(task)
        return task

    def _open_task(self, task_id: str) -> ScheduledTask | None:
        task = self.state.find_task(task_id)
        if task is None:
            self._warn(f"Unknown task {task_id}", task_id=task_id)
            return None
        if task.status.terminal:
            self._warn(f"Task already {task.status.value}: {task.title}", task_id=task_id)
            return None
        return task

    def start_task(self, task_id: str) -> bool:
        task = self._open_task(task_id)
        if task is None or task.status != TaskStatus.SCHEDULED:
            return False
        task.status = TaskStatus.IN_PROGRESS
        return True

    def complete_task(self, task_id: str, quality: TaskQuality = TaskQuality.FOCUSED) -> bool:
        task = self._open_task(task_id)
        if task is None:
            return False
        task.quality = quality
        linked = self.state.find_quest(task.linked_quest_id) if task.linked_quest_id else None
        if linked is not None:
            if quality == TaskQuality.FAILED:
                self.state.quests.remove(linked)
            elif not linked.is_completed:
                self.complete_quest(linked.id)
        task.status = TaskStatus.COMPLETED
        if task.linked_domain:
            self._record("activity", f'Completed scheduled task: "{task.title}" ({quality.value})', domain=task.linked_domain)
        return True

    def miss_task(self, task_id: str) -> bool:
        task = self._open_task(task_id)
        if task is None:
            return False
        if penalties.TASK_PENALTY_GROUPS[task.type] and not task.penalty_applied:
            self.trigger_task_penalty(task_id)
        if task.linked_quest_id:
            self.remove_quest(task.linked_quest_id)
        task.mark_missed()
        return True

    def trigger_task_penalty(self, task_id: str) -> Quest | None:
        task = self.state.find_task(task_id)
        if task is None or task.penalty_applied:
            return None
        now = self.clock.now()
        penalty = penalties.build_penalty_quest(
            self.rng,
            self.pack,
            now,
            self.clock.date_key(now),
            f"Failed task: {task.title}",
            prefix="penalty_task",
        )
        if task.linked_quest_id:
            self.remove_quest(task.linked_quest_id)
        self.state.quests.append(penalty)
        task.penalty_applied = True
        self._enrich_penalty(penalty, task.title)
        self._record("penalty_assigned", f"Task failed: {task.title}", quest_id=penalty.id)
        return penalty

    def _sweep(self, day_key: str) -> tuple[list[str], list[Quest]]:
        now = self.clock.now()
        missed, created = rollover.sweep_day(self.state, day_key, self.rng, self.pack, now, self.clock.date_key(now))
        for title in missed:
            self._record("task_missed", f"Task not completed: {title} ({day_key})", date=day_key)
        for quest in created:
            self._enrich_penalty(quest, quest.description)
            self._record("penalty_assigned", f"Penalty assigned: {quest.description}", quest_id=quest.id)
        return missed, created

    def process_end_of_day_tasks(self, day_key: str) -> list[Quest]:
        return self._sweep(day_key)[1]

    # snapshots

    def create_snapshot(self) -> str:
        self.state.snapshot = self.state.to_dict(include_snapshot=False)
        self.state.snapshot_date = self.clock.today_key()
        return self.state.snapshot_date

    def rollback_to_snapshot(self) -> bool:
        snapshot, taken = self.state.snapshot, self.state.snapshot_date
        if not snapshot or taken != self.clock.today_key():
            self._warn("Rollback failed: no snapshot for today")
            return False
        self.state = GameState.from_dict(snapshot)
        self.state.snapshot, self.state.snapshot_date = snapshot, taken
        self.state.active_boss_warning = None
        self._record("rollback", "State restored to the daily checkpoint")
        return True

    # reconciliation

    def check_penalty_expiry(self) -> dict | None:
        losses = penalties.check_penalty_expiry(self.state, self.clock.today_key())
        if losses is not None:
            self._record(
                "penalty_failure",
                f"Penalty failure: -{losses['xp_lost']} XP, -{losses['gold_lost']} gold, ego death streak reset",
                **losses,
            )
        return losses

    def run_daily_reconciliation(self) -> rollover.ReconcileReport:
        now = self.clock.now()
        today = self.clock.date_key(now)
        player = self.state.player
        report = rollover.ReconcileReport(today=today)
        report.activated_buffs = [b.id for b in self._sync_buffs()]

        last_login = self.clock.date_key(player.last_login_date) if player.last_login_date else None
        report.same_day = last_login == today
        if not report.same_day:
            for day_key in rollover.days_to_sweep(last_login, today):
                report.swept_dates.append(day_key)
                missed, created = self._sweep(day_key)
                report.missed_tasks.extend(missed)
                report.penalties.extend(created)
            report.expiry = self.check_penalty_expiry()
            daily_penalty = rollover.refresh_daily_quests(self.state, self.rng, self.pack, now, today)
            if daily_penalty is not None:
                self._enrich_penalty(daily_penalty, daily_penalty.description)
                self._record("penalty_assigned", f"Penalty assigned: {daily_penalty.description}", quest_id=daily_penalty.id)
                report.penalties.append(daily_penalty)

        report.check_in = self.check_in()
        player.last_login_date = now
        if self.state.snapshot_date != today:
            self.create_snapshot()
            report.snapshot_taken = True
        if report.penalties or report.expiry:
            logger.info("Reconciled %s for %s: %d new penalties", today, self.user_id, len(report.penalties))
        return report

    # read-only views

    def player_view(self):
        return copy.deepcopy(self.state.player)

    def quests_view(self) -> list[Quest]:
        return copy.deepcopy(self.state.quests)

    def buffs_view(self) -> list[Buff]:
        return copy.deepcopy(self.state.player.active_buffs)

    def habits_view(self) -> list[Habit]:
        return copy.deepcopy(self.state.habits)

    def pending_view(self) -> list[Quest]:
        return copy.deepcopy(self.state.pending_quests)

    def state_view(self) -> dict:
        return self.state.to_dict(include_snapshot=False)
