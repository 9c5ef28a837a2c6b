from __future__ import annotations

import argparse
import logging

from sovereign import db
from sovereign.config import load_settings
from sovereign.models import QuestType
from sovereign.notifier import build_notifier
from sovereign.session import open_engine

logger = logging.getLogger(__name__)


def get_notification_summary(settings) -> dict:
    engine = open_engine(settings)
    quests = engine.quests_view()
    today = engine.clock.today_key()
    dailies = [q for q in quests if q.type == QuestType.DAILY and q.scope_date == today]
    return {
        "today": today,
        "dailies_left": [q.title for q in dailies if not q.is_completed],
        "penalties": [q.title for q in quests if q.type == QuestType.PENALTY and not q.is_completed],
        "streak": engine.state.player.streak,
        "level": engine.state.player.level,
    }


def should_send_evening_nudge(summary: dict) -> bool:
    return bool(summary["dailies_left"] or summary["penalties"])


def _once(kind: str, for_date: str, send, user_id: str = "default") -> bool:
    if db.was_reminder_sent(kind, for_date, user_id):
        return False
    if not send():
        return False
    db.mark_reminder_sent(kind, for_date, user_id)
    logger.info("Sent %s reminder for %s (%s)", kind, for_date, user_id)
    return True


def send_morning(for_date: str | None = None, settings=None) -> bool:
    settings = settings or load_settings()
    summary = get_notification_summary(settings)
    for_date = for_date or summary["today"]

    def send() -> bool:
        body = f"{len(summary['dailies_left'])} daily quest(s) await. Streak: {summary['streak']}."
        if summary["penalties"]:
            body += f" Outstanding penalty: {summary['penalties'][0]}."
        return build_notifier(settings).send("Morning Briefing", body)

    return _once("morning", for_date, send, settings.user_id)


def send_evening(for_date: str | None = None, settings=None) -> bool:
    settings = settings or load_settings()
    summary = get_notification_summary(settings)
    for_date = for_date or summary["today"]

    def send() -> bool:
        if not should_send_evening_nudge(summary):
            return False
        left = summary["dailies_left"] + summary["penalties"]
        return build_notifier(settings).send(
            "Evening Warning",
            f"Incomplete before midnight: {', '.join(left)}. Failure means a penalty.",
            priority="high",
        )

    return _once("evening", for_date, send, settings.user_id)


def send_midnight(for_date: str | None = None, settings=None) -> bool:
    settings = settings or load_settings()
    summary = get_notification_summary(settings)
    for_date = for_date or summary["today"]

    def send() -> bool:
        body = f"Level {summary['level']}, streak {summary['streak']}."
        if summary["penalties"]:
            body += f" Penalties to clear today: {len(summary['penalties'])}."
        return build_notifier(settings).send("Midnight Summary", body)

    return _once("midnight", for_date, send, settings.user_id)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("mode", choices=["morning", "evening", "midnight"])
    args = parser.parse_args()

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    if args.mode == "morning":
        send_morning(settings=settings)
    elif args.mode == "evening":
        send_evening(settings=settings)
    else:
        send_midnight(settings=settings)


if __name__ == "__main__":
    main()
