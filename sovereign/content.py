from __future__ import annotations

import json
import logging
import random
from pathlib import Path

from sovereign.models import Boss, ShopItem, SkillNode

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent / "content_packs"

FALLBACK_PENALTY = {"title": "PENALTY: PUSHUPS", "description": "Perform 30 pushups immediately."}


def _load_json(path: Path, fallback):
    if not path.exists():
        return fallback
    return json.loads(path.read_text(encoding="utf-8-sig"))


def load_content_pack(pack_key: str | None = None) -> dict:
    """Built-in content with an optional named pack layered on top.

    A pack only needs the top-level sections it overrides (``penalties``,
    ``daily_quests``, ``bosses``...); anything missing comes from
    ``default.json``.
    """
    pack = _load_json(BASE_DIR / "default.json", {})
    key = pack_key or "default"
    if key != "default":
        override = _load_json(BASE_DIR / f"{key}.json", None)
        if override is None:
            logger.warning("Content pack %s not found, using defaults", key)
        else:
            pack.update(override)
    return pack


def weighted_choice(rng: random.Random, entries: list[dict]) -> dict:
    if not entries:
        return {}
    total = sum(max(1, int(entry.get("weight", 1))) for entry in entries)
    pick = rng.randint(1, total)
    running = 0
    for entry in entries:
        running += max(1, int(entry.get("weight", 1)))
        if pick <= running:
            return entry
    return entries[-1]


def pick_penalty_template(rng: random.Random, pack: dict) -> dict:
    pool = pack.get("penalties") or []
    if not pool:
        return dict(FALLBACK_PENALTY)
    return dict(rng.choice(pool))


def title_for_level(pack: dict, level: int) -> dict | None:
    return (pack.get("titles") or {}).get(str(level))


def default_bosses(pack: dict) -> list[Boss]:
    return [Boss.from_dict(b) for b in pack.get("bosses") or []]


def default_skill_nodes(pack: dict) -> list[SkillNode]:
    return [SkillNode.from_dict(n) for n in pack.get("skill_nodes") or []]


def default_shop_items(pack: dict) -> list[ShopItem]:
    return [ShopItem.from_dict(i) for i in pack.get("shop_items") or []]
