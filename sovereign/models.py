from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

STATS = ("STR", "INT", "MEN", "DIS", "FOC")

BASE_STAT_VALUE = 10
XP_PER_LEVEL = 1000


class Rank(str, Enum):
    E = "E"
    D = "D"
    C = "C"
    B = "B"
    A = "A"
    S = "S"

    @property
    def order(self) -> int:
        return RANK_ORDER.index(self)


RANK_ORDER = [Rank.E, Rank.D, Rank.C, Rank.B, Rank.A, Rank.S]


class QuestType(str, Enum):
    DAILY = "DAILY"
    BOSS = "BOSS"
    PENALTY = "PENALTY"
    SKILL_CHALLENGE = "SKILL_CHALLENGE"
    OPTIONAL = "OPTIONAL"


class BuffType(str, Enum):
    STAT_ALL = "STAT_ALL"
    STAT_SINGLE = "STAT_SINGLE"
    GOLD_MULTIPLIER = "GOLD_MULTIPLIER"
    PENALTY_IMMUNITY = "PENALTY_IMMUNITY"


class BuffCategory(str, Enum):
    STAT = "STAT"
    GOLD = "GOLD"
    IMMUNITY = "IMMUNITY"


# Every BuffType must appear here; STAT and GOLD are mutually exclusive slots.
BUFF_CATEGORIES = {
    BuffType.STAT_ALL: BuffCategory.STAT,
    BuffType.STAT_SINGLE: BuffCategory.STAT,
    BuffType.GOLD_MULTIPLIER: BuffCategory.GOLD,
    BuffType.PENALTY_IMMUNITY: BuffCategory.IMMUNITY,
}
EXCLUSIVE_CATEGORIES = {BuffCategory.STAT, BuffCategory.GOLD}


class BossStatus(str, Enum):
    LOCKED = "LOCKED"
    AVAILABLE = "AVAILABLE"
    ACTIVE = "ACTIVE"
    DEFEATED = "DEFEATED"


class TaskStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    MISSED = "MISSED"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.MISSED)


class TaskType(str, Enum):
    OPTIONAL = "OPTIONAL"
    SKILL_PROTOCOL = "SKILL_PROTOCOL"
    PERSONAL = "PERSONAL"


class TaskQuality(str, Enum):
    FOCUSED = "FOCUSED"
    DISTRACTED = "DISTRACTED"
    FAILED = "FAILED"


class HabitCategory(str, Enum):
    DISCIPLINE = "DISCIPLINE"
    HEALTH = "HEALTH"
    SKILL = "SKILL"
    CUSTOM = "CUSTOM"


def dt_to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def dt_from_iso(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


def new_id(prefix: str, moment: datetime, rng) -> str:
    return f"{prefix}_{int(moment.timestamp() * 1000)}_{rng.getrandbits(32):08x}"


def _enum_or_none(enum_cls, raw):
    return enum_cls(raw) if raw else None


@dataclass
class Buff:
    id: str
    type: BuffType
    value: int
    expires_at: datetime
    target_stats: list[str] = field(default_factory=list)
    uses_remaining: int | None = None
    paused: bool = False
    activates_at: datetime | None = None
    description: str = ""

    @property
    def category(self) -> BuffCategory:
        return BUFF_CATEGORIES[self.type]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "value": self.value,
            "expires_at": dt_to_iso(self.expires_at),
            "target_stats": list(self.target_stats),
            "uses_remaining": self.uses_remaining,
            "paused": self.paused,
            "activates_at": dt_to_iso(self.activates_at),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Buff:
        return cls(
            id=data["id"],
            type=BuffType(data["type"]),
            value=int(data.get("value", 0)),
            expires_at=dt_from_iso(data["expires_at"]),
            target_stats=list(data.get("target_stats") or []),
            uses_remaining=data.get("uses_remaining"),
            paused=bool(data.get("paused", False)),
            activates_at=dt_from_iso(data.get("activates_at")),
            description=data.get("description", ""),
        )


@dataclass
class Player:
    level: int = 1
    xp: int = 0
    xp_to_next_level: int = XP_PER_LEVEL
    rank: Rank = Rank.E
    title: str = "The Awakened"
    gold: int = 0
    stats: dict[str, int] = field(default_factory=lambda: {s: BASE_STAT_VALUE for s in STATS})
    stat_progress: dict[str, int] = field(default_factory=lambda: {s: 0 for s in STATS})
    streak: int = 0
    ego_death_streak: int = 0
    last_login_date: datetime | None = None
    last_check_in_date: datetime | None = None
    last_ego_death_date: datetime | None = None
    active_buffs: list[Buff] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "xp": self.xp,
            "xp_to_next_level": self.xp_to_next_level,
            "rank": self.rank.value,
            "title": self.title,
            "gold": self.gold,
            "stats": dict(self.stats),
            "stat_progress": dict(self.stat_progress),
            "streak": self.streak,
            "ego_death_streak": self.ego_death_streak,
            "last_login_date": dt_to_iso(self.last_login_date),
            "last_check_in_date": dt_to_iso(self.last_check_in_date),
            "last_ego_death_date": dt_to_iso(self.last_ego_death_date),
            "active_buffs": [b.to_dict() for b in self.active_buffs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Player:
        stats = {s: BASE_STAT_VALUE for s in STATS}
        stats.update({k: int(v) for k, v in (data.get("stats") or {}).items() if k in stats})
        progress = {s: 0 for s in STATS}
        progress.update({k: int(v) for k, v in (data.get("stat_progress") or {}).items() if k in progress})
        return cls(
            level=int(data.get("level", 1)),
            xp=int(data.get("xp", 0)),
            xp_to_next_level=int(data.get("xp_to_next_level", XP_PER_LEVEL)),
            rank=Rank(data.get("rank", "E")),
            title=data.get("title", "The Awakened"),
            gold=int(data.get("gold", 0)),
            stats=stats,
            stat_progress=progress,
            streak=int(data.get("streak", 0)),
            ego_death_streak=int(data.get("ego_death_streak", 0)),
            last_login_date=dt_from_iso(data.get("last_login_date")),
            last_check_in_date=dt_from_iso(data.get("last_check_in_date")),
            last_ego_death_date=dt_from_iso(data.get("last_ego_death_date")),
            active_buffs=[Buff.from_dict(b) for b in data.get("active_buffs") or []],
        )


@dataclass
class Quest:
    id: str
    title: str
    type: QuestType
    difficulty: Rank = Rank.E
    xp_reward: int = 0
    gold_reward: int = 0
    description: str = ""
    domain: str = "GENERAL"
    target_stats: list[str] = field(default_factory=list)
    is_completed: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None
    # Calendar day the quest belongs to; daily refresh and penalty expiry key off this.
    scope_date: str | None = None
    template_id: str | None = None
    penalty_exempt: bool = False
    consolidation_key: str | None = None
    boss_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "difficulty": self.difficulty.value,
            "xp_reward": self.xp_reward,
            "gold_reward": self.gold_reward,
            "description": self.description,
            "domain": self.domain,
            "target_stats": list(self.target_stats),
            "is_completed": self.is_completed,
            "created_at": dt_to_iso(self.created_at),
            "completed_at": dt_to_iso(self.completed_at),
            "scope_date": self.scope_date,
            "template_id": self.template_id,
            "penalty_exempt": self.penalty_exempt,
            "consolidation_key": self.consolidation_key,
            "boss_id": self.boss_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Quest:
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            type=QuestType(data["type"]),
            difficulty=Rank(data.get("difficulty", "E")),
            xp_reward=max(0, int(data.get("xp_reward", 0))),
            gold_reward=max(0, int(data.get("gold_reward", 0))),
            description=data.get("description", ""),
            domain=data.get("domain", "GENERAL"),
            target_stats=[s for s in data.get("target_stats") or [] if s in STATS][:3],
            is_completed=bool(data.get("is_completed", False)),
            created_at=dt_from_iso(data.get("created_at")),
            completed_at=dt_from_iso(data.get("completed_at")),
            scope_date=data.get("scope_date"),
            template_id=data.get("template_id"),
            penalty_exempt=bool(data.get("penalty_exempt", False)),
            consolidation_key=data.get("consolidation_key"),
            boss_id=data.get("boss_id"),
        )


@dataclass
class ScheduledTask:
    id: str
    title: str
    date: str
    type: TaskType
    status: TaskStatus = TaskStatus.SCHEDULED
    start_time: str = ""
    end_time: str = ""
    linked_quest_id: str | None = None
    linked_domain: str | None = None
    quality: TaskQuality | None = None
    penalty_applied: bool = False

    def mark_missed(self) -> None:
        # penalty_applied stops any later sweep from punishing it again
        self.status = TaskStatus.MISSED
        self.penalty_applied = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "type": self.type.value,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "linked_quest_id": self.linked_quest_id,
            "linked_domain": self.linked_domain,
            "quality": self.quality.value if self.quality else None,
            "penalty_applied": self.penalty_applied,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ScheduledTask:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            date=data["date"],
            type=TaskType(data.get("type", "PERSONAL")),
            status=TaskStatus(data.get("status", "SCHEDULED")),
            start_time=data.get("start_time", ""),
            end_time=data.get("end_time", ""),
            linked_quest_id=data.get("linked_quest_id"),
            linked_domain=data.get("linked_domain"),
            quality=_enum_or_none(TaskQuality, data.get("quality")),
            penalty_applied=bool(data.get("penalty_applied", False)),
        )


@dataclass
class Boss:
    id: str
    name: str
    title: str
    min_level: int
    xp_reward: int
    gold_reward: int
    quest_title: str
    quest_description: str
    quest_difficulty: Rank = Rank.E
    status: BossStatus = BossStatus.LOCKED
    min_rank: Rank | None = None
    description: str = ""
    calibrated: bool = False

    def requirements_met(self, level: int, rank: Rank) -> bool:
        if level < self.min_level:
            return False
        return self.min_rank is None or rank.order >= self.min_rank.order

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "min_level": self.min_level,
            "xp_reward": self.xp_reward,
            "gold_reward": self.gold_reward,
            "quest_title": self.quest_title,
            "quest_description": self.quest_description,
            "quest_difficulty": self.quest_difficulty.value,
            "status": self.status.value,
            "min_rank": self.min_rank.value if self.min_rank else None,
            "description": self.description,
            "calibrated": self.calibrated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Boss:
        return cls(
            id=data["id"],
            name=data["name"],
            title=data.get("title", ""),
            min_level=int(data.get("min_level", 1)),
            xp_reward=int(data.get("xp_reward", 0)),
            gold_reward=int(data.get("gold_reward", 0)),
            quest_title=data.get("quest_title", ""),
            quest_description=data.get("quest_description", ""),
            quest_difficulty=Rank(data.get("quest_difficulty", "E")),
            status=BossStatus(data.get("status", "LOCKED")),
            min_rank=_enum_or_none(Rank, data.get("min_rank")),
            description=data.get("description", ""),
            calibrated=bool(data.get("calibrated", False)),
        )


@dataclass
class SkillNode:
    id: str
    name: str
    domain: str
    mastery: float = 0.0
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "domain": self.domain, "mastery": self.mastery, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> SkillNode:
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            domain=data.get("domain", "GENERAL"),
            mastery=min(1.0, max(0.0, float(data.get("mastery", 0.0)))),
            description=data.get("description", ""),
        )


@dataclass
class ShopItem:
    id: str
    name: str
    cost: int
    category: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "cost": self.cost, "category": self.category, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> ShopItem:
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            cost=max(0, int(data.get("cost", 0))),
            category=data.get("category", "MISC"),
            description=data.get("description", ""),
        )


@dataclass
class Habit:
    id: str
    name: str
    category: HabitCategory = HabitCategory.CUSTOM
    color: str = ""
    current_streak: int = 0
    longest_streak: int = 0
    # ISO day keys, kept sorted ascending.
    completed_dates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "color": self.color,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "completed_dates": list(self.completed_dates),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Habit:
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            category=_enum_or_none(HabitCategory, data.get("category")) or HabitCategory.CUSTOM,
            color=data.get("color", ""),
            current_streak=max(0, int(data.get("current_streak", 0))),
            longest_streak=max(0, int(data.get("longest_streak", 0))),
            completed_dates=sorted(set(data.get("completed_dates") or [])),
        )


@dataclass
class GameState:
    player: Player = field(default_factory=Player)
    quests: list[Quest] = field(default_factory=list)
    tasks: list[ScheduledTask] = field(default_factory=list)
    bosses: list[Boss] = field(default_factory=list)
    skill_nodes: list[SkillNode] = field(default_factory=list)
    shop_items: list[ShopItem] = field(default_factory=list)
    inventory: list[ShopItem] = field(default_factory=list)
    events: list[dict] = field(default_factory=list)
    habits: list[Habit] = field(default_factory=list)
    pending_quests: list[Quest] = field(default_factory=list)
    snapshot: dict | None = None
    snapshot_date: str | None = None
    active_boss_warning: str | None = None

    def find_quest(self, quest_id: str) -> Quest | None:
        return next((q for q in self.quests if q.id == quest_id), None)

    def find_pending(self, quest_id: str) -> Quest | None:
        return next((q for q in self.pending_quests if q.id == quest_id), None)

    def find_habit(self, habit_id: str) -> Habit | None:
        return next((h for h in self.habits if h.id == habit_id), None)

    def find_task(self, task_id: str) -> ScheduledTask | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_boss(self, boss_id: str) -> Boss | None:
        return next((b for b in self.bosses if b.id == boss_id), None)

    def active_boss(self) -> Boss | None:
        return next((b for b in self.bosses if b.status == BossStatus.ACTIVE), None)

    def to_dict(self, include_snapshot: bool = True) -> dict:
        out = {
            "player": self.player.to_dict(),
            "quests": [q.to_dict() for q in self.quests],
            "tasks": [t.to_dict() for t in self.tasks],
            "bosses": [b.to_dict() for b in self.bosses],
            "skill_nodes": [n.to_dict() for n in self.skill_nodes],
            "shop_items": [i.to_dict() for i in self.shop_items],
            "inventory": [i.to_dict() for i in self.inventory],
            "events": [dict(e) for e in self.events],
            "habits": [h.to_dict() for h in self.habits],
            "pending_quests": [q.to_dict() for q in self.pending_quests],
            "active_boss_warning": self.active_boss_warning,
        }
        if include_snapshot:
            out["snapshot"] = self.snapshot
            out["snapshot_date"] = self.snapshot_date
        return out

    @classmethod
    def from_dict(cls, data: dict) -> GameState:
        return cls(
            player=Player.from_dict(data.get("player") or {}),
            quests=[Quest.from_dict(q) for q in data.get("quests") or []],
            tasks=[ScheduledTask.from_dict(t) for t in data.get("tasks") or []],
            bosses=[Boss.from_dict(b) for b in data.get("bosses") or []],
            skill_nodes=[SkillNode.from_dict(n) for n in data.get("skill_nodes") or []],
            shop_items=[ShopItem.from_dict(i) for i in data.get("shop_items") or []],
            inventory=[ShopItem.from_dict(i) for i in data.get("inventory") or []],
            events=[dict(e) for e in data.get("events") or []],
            habits=[Habit.from_dict(h) for h in data.get("habits") or []],
            pending_quests=[Quest.from_dict(q) for q in data.get("pending_quests") or []],
            snapshot=data.get("snapshot"),
            snapshot_date=data.get("snapshot_date"),
            active_boss_warning=data.get("active_boss_warning"),
        )
