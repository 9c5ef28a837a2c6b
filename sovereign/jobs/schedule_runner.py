from __future__ import annotations

import logging

from sovereign.clock import resolve_timezone
from sovereign.config import load_settings
from sovereign.db import get_schedule_context
from sovereign.jobs.midnight_tick import run_midnight_tick
from sovereign.jobs.reminders import send_evening, send_midnight, send_morning


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    ctx = get_schedule_context(resolve_timezone(settings.timezone))
    today = ctx["local_date"]
    hour = ctx["local_hour"]
    minute = ctx["local_minute"]

    # Run this command every 5-10 minutes via cron/systemd timer.
    # Reconciliation is idempotent, so every run catches a midnight crossing.
    run_midnight_tick(settings)

    if hour == 0 and minute < 15:
        send_midnight(today, settings=settings)

    if hour == 8 and minute < 15:
        send_morning(today, settings=settings)

    if hour == 19 and minute < 15:
        send_evening(today, settings=settings)


if __name__ == "__main__":
    main()
