from __future__ import annotations

import logging

from sovereign.config import load_settings
from sovereign.notifier import build_notifier
from sovereign.session import open_engine

logger = logging.getLogger(__name__)


def run_midnight_tick(settings=None) -> dict:
    """Reconcile the stored state against the current local day and persist it."""
    settings = settings or load_settings()
    engine = open_engine(settings)
    report = engine.run_daily_reconciliation()
    engine.save()
    logger.info("Midnight tick for %s: %s", report.today, report.to_dict())
    return report.to_dict()


def summarize(report: dict) -> str:
    parts = [f"Prepared {report['today']}."]
    if report["swept_dates"]:
        parts.append(f"Closed {len(report['swept_dates'])} day(s); {len(report['missed_tasks'])} task(s) missed.")
    if report["penalties"]:
        parts.append(f"Penalties assigned: {', '.join(report['penalties'])}.")
    if report["expiry"]:
        parts.append(f"Penalty failure: -{report['expiry']['xp_lost']} XP, -{report['expiry']['gold_lost']} gold.")
    if report["check_in"]:
        parts.append(f"Streak: {report['check_in']['streak']}.")
    return " ".join(parts)


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    report = run_midnight_tick(settings)
    if report["same_day"]:
        return
    build_notifier(settings).send("Sovereign System: Daily Reset", summarize(report))


if __name__ == "__main__":
    main()
