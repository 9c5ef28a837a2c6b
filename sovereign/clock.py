from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning("Timezone %s unavailable, falling back to UTC: %s", name, exc)
        return timezone.utc


class Clock:
    """Wall clock resolving "now" and local calendar date keys."""

    def __init__(self, tz: tzinfo | str | None = None) -> None:
        self.tz = tz if isinstance(tz, tzinfo) else resolve_timezone(tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def date_key(self, moment: datetime) -> str:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz).date().isoformat()

    def today_key(self) -> str:
        return self.date_key(self.now())


class FixedClock(Clock):
    """Clock pinned to a given instant; used by tests and the testing endpoints."""

    def __init__(self, moment: datetime, tz: tzinfo | str | None = None) -> None:
        super().__init__(tz or moment.tzinfo or timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **delta) -> datetime:
        self.moment = self.moment + timedelta(**delta)
        return self.moment


def shift_key(day_key: str, days: int) -> str:
    return (date.fromisoformat(day_key) + timedelta(days=days)).isoformat()


def date_keys_between(start_key: str, end_key: str) -> list[str]:
    # [start, end) in chronological order
    out = []
    d = date.fromisoformat(start_key)
    end = date.fromisoformat(end_key)
    while d < end:
        out.append(d.isoformat())
        d += timedelta(days=1)
    return out
