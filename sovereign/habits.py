from __future__ import annotations

from datetime import date

from sovereign.models import Habit


def current_streak(day_keys: list[str]) -> int:
    """Consecutive days ending at the most recent completion.

    The run is anchored on the latest date, not on today, so a habit
    stops counting only when a gap appears inside its history.
    """
    days = sorted({date.fromisoformat(key) for key in day_keys}, reverse=True)
    if not days:
        return 0
    streak = 1
    for newer, older in zip(days, days[1:]):
        if (newer - older).days != 1:
            break
        streak += 1
    return streak


def toggle_date(habit: Habit, day_key: str) -> bool:
    """Flip ``day_key`` in the habit's history and recount its streaks.

    Returns True when the day was added, False when it was removed.
    Raises ValueError for a key that is not an ISO date.
    """
    date.fromisoformat(day_key)
    added = day_key not in habit.completed_dates
    if added:
        habit.completed_dates = sorted([*habit.completed_dates, day_key])
    else:
        habit.completed_dates = [d for d in habit.completed_dates if d != day_key]
    habit.current_streak = current_streak(habit.completed_dates)
    habit.longest_streak = max(habit.longest_streak, habit.current_streak)
    return added
