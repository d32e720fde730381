"""
spotter.engine.streaks — Streak Calculator
============================================

Pure function of a member's workout days and a reference "today".
No stored counter is ever incremented: the streak is recomputed from the
full history every time, so recomputing after appending one day can never
contradict an incremental result.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

__all__ = ["StreakState", "compute_streak", "days_since", "live_streak", "streak_as_of"]

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True, slots=True)
class StreakState:
    """Derived streak state.  ``current_streak <= longest_streak`` always."""

    user_id: int | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_workout_date: date | None = None


def compute_streak(
    days: Iterable[date],
    today: date,
    *,
    user_id: int | None = None,
) -> StreakState:
    """Compute current and longest streak from workout *days*.

    Scans the days in ascending order: a one-day gap extends the running
    streak, a zero gap (same day twice) is ignored, anything larger resets
    the run to 1.  The running streak only counts as *current* if the last
    workout was *today* or the day before.

    Example::

        days 1, 2, 3 with today = 3  →  current 3, longest 3
        days 1, 2, 5 with today = 5  →  current 1, longest 2
        days 1, 2, 3 with today = 6  →  current 0, longest 3
    """
    ordered = sorted(set(days))
    if not ordered:
        return StreakState(user_id=user_id)

    running = 0
    longest = 0
    previous: date | None = None
    for day in ordered:
        if previous is not None and day - previous == _ONE_DAY:
            running += 1
        else:
            running = 1
        longest = max(longest, running)
        previous = day

    last = ordered[-1]
    current = running if last in (today, today - _ONE_DAY) else 0
    return StreakState(
        user_id=user_id,
        current_streak=current,
        longest_streak=longest,
        last_workout_date=last,
    )


def streak_as_of(
    days: Iterable[date],
    day: date,
    *,
    user_id: int | None = None,
) -> StreakState:
    """Streak state as it stood at the end of *day*.

    Only days up to and including *day* are considered.  Used to score an
    event with the streak it actually extended, independent of what
    happened afterwards.
    """
    return compute_streak((d for d in days if d <= day), day, user_id=user_id)


def days_since(last_workout: date | None, today: date) -> int | None:
    """Whole days between the last workout and *today*; ``None`` if never."""
    if last_workout is None:
        return None
    return max((today - last_workout).days, 0)


def live_streak(current: int, last_workout: date | None, today: date) -> int:
    """A stored *current* streak as it stands on *today*.

    Stored streaks are only rewritten when the member trains, so a streak
    whose last day is older than yesterday has already broken.
    """
    gap = days_since(last_workout, today)
    if gap is None or gap > 1:
        return 0
    return current
