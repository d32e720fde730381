"""
spotter.engine.scoring — Points Calculation Pipeline
======================================================

Pure calculation — no DB I/O.

Pipeline stages for one workout:
  WorkoutEvent + StreakState(as of the event's day)
    → Base points (+ partner bonus) → Consistency multiplier → LedgerEntry

Aggregation:
  [LedgerEntry] + StreakState(today) → GameStats (totals, level, multiplier)

Idempotence is NOT handled here: the ledger's unique ``event_id`` at the
persistence boundary turns a second scoring of the same event into a no-op.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from spotter.constants import level_for_points
from spotter.database.models import LedgerReason
from spotter.engine.events import WorkoutEvent
from spotter.engine.streaks import StreakState

if TYPE_CHECKING:
    from spotter.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_MULTIPLIER_TIERS",
    "GameStats",
    "LedgerEntry",
    "consistency_multiplier",
    "derive_game_stats",
    "multiplier_tiers",
    "score_event",
]

# ---------------------------------------------------------------------------
# Defaults (overridable through the settings table)
# ---------------------------------------------------------------------------
_BASE_POINTS = 10
_PARTNER_BONUS = 15
_WEEKLY_WINDOW_DAYS = 7
_MONTHLY_WINDOW_DAYS = 30

# (minimum current streak, multiplier); anything below the first tier is 1.0×
DEFAULT_MULTIPLIER_TIERS: list[tuple[int, float]] = [
    (3, 1.25),
    (7, 1.5),
    (14, 2.0),
]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """Points awarded for exactly one workout event."""

    event_id: str
    user_id: int
    amount: int
    multiplier: float
    reason: LedgerReason
    workout_day: date
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GameStats:
    """Derived points state for one member."""

    user_id: int
    total_points: int = 0
    weekly_points: int = 0
    monthly_points: int = 0
    level: int = 1
    consistency_multiplier: float = 1.0
    rank: int | None = None


# ---------------------------------------------------------------------------
# Stage 1: Consistency multiplier
# ---------------------------------------------------------------------------
def multiplier_tiers(cache: ConfigCache | None = None) -> list[tuple[int, float]]:
    """Return the multiplier tiers sorted by minimum streak.

    Reads ``scoring.multiplier_tiers`` (``[[min_streak, multiplier], ...]``)
    when a cache is given; malformed values fall back to the defaults.
    """
    if cache is None:
        return DEFAULT_MULTIPLIER_TIERS
    raw = cache.get_setting("scoring.multiplier_tiers")
    if raw is None:
        return DEFAULT_MULTIPLIER_TIERS
    try:
        tiers = sorted((int(lo), float(mult)) for lo, mult in raw)
    except (TypeError, ValueError):
        logger.warning("Malformed scoring.multiplier_tiers %r — using defaults", raw)
        return DEFAULT_MULTIPLIER_TIERS
    return tiers


def consistency_multiplier(current_streak: int, cache: ConfigCache | None = None) -> float:
    """Step function of the current streak.

    With the default tiers::

        0–2   → 1.0×
        3–6   → 1.25×
        7–13  → 1.5×
        14+   → 2.0×
    """
    multiplier = 1.0
    for min_streak, tier_multiplier in multiplier_tiers(cache):
        if current_streak >= min_streak:
            multiplier = tier_multiplier
    return multiplier


# ---------------------------------------------------------------------------
# Stage 2: Score one event
# ---------------------------------------------------------------------------
def score_event(
    event: WorkoutEvent,
    streak: StreakState,
    cache: ConfigCache | None = None,
) -> LedgerEntry:
    """Build the ledger entry for *event*.

    *streak* must be the streak as of the event's own day (see
    :func:`~spotter.engine.streaks.streak_as_of`), so replaying history
    produces the same amounts as live scoring did.
    """
    base = cache.get_int("scoring.base_points", _BASE_POINTS) if cache else _BASE_POINTS
    breakdown: dict[str, float] = {"base": base}

    reason = LedgerReason.WORKOUT
    if event.with_partner:
        bonus = cache.get_int("scoring.partner_bonus", _PARTNER_BONUS) if cache else _PARTNER_BONUS
        base += bonus
        breakdown["partner_bonus"] = bonus
        reason = LedgerReason.PARTNER_WORKOUT

    multiplier = consistency_multiplier(streak.current_streak, cache)
    # Half-up: 12.5 → 13, not banker's rounding.
    amount = math.floor(base * multiplier + 0.5)
    if multiplier != 1.0:
        breakdown["consistency_bonus"] = amount - base
    breakdown["multiplier"] = multiplier
    breakdown["streak"] = streak.current_streak

    return LedgerEntry(
        event_id=event.id,
        user_id=event.user_id,
        amount=amount,
        multiplier=multiplier,
        reason=reason,
        workout_day=event.completed_on,
        breakdown=breakdown,
    )


# ---------------------------------------------------------------------------
# Stage 3: Aggregate the ledger
# ---------------------------------------------------------------------------
def derive_game_stats(
    user_id: int,
    entries: Iterable[LedgerEntry],
    streak: StreakState,
    today: date,
    cache: ConfigCache | None = None,
) -> GameStats:
    """Fold ledger entries into totals, trailing-window points and level.

    Weekly and monthly points are the sums of entries whose workout day
    falls inside the trailing window ending *today*, so the result depends
    only on the ledger and the reference day.
    """
    weekly_days = cache.get_int("stats.weekly_window_days", _WEEKLY_WINDOW_DAYS) if cache else _WEEKLY_WINDOW_DAYS
    monthly_days = cache.get_int("stats.monthly_window_days", _MONTHLY_WINDOW_DAYS) if cache else _MONTHLY_WINDOW_DAYS
    week_start = today - timedelta(days=weekly_days - 1)
    month_start = today - timedelta(days=monthly_days - 1)

    total = weekly = monthly = 0
    for entry in entries:
        total += entry.amount
        if week_start <= entry.workout_day <= today:
            weekly += entry.amount
        if month_start <= entry.workout_day <= today:
            monthly += entry.amount

    return GameStats(
        user_id=user_id,
        total_points=total,
        weekly_points=weekly,
        monthly_points=monthly,
        level=level_for_points(total, cache),
        consistency_multiplier=consistency_multiplier(streak.current_streak, cache),
    )
