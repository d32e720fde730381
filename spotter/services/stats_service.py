"""
spotter.services.stats_service — Snapshots, leaderboard & head-to-head
========================================================================

Read-side queries.  Behavior stats are recomputed from the workout log on
every call (the log is the source of truth); the leaderboard reads the
derived ``user_game_stats`` cache for totals, sums the ledger for the
trailing windows and ages stored streaks to the reference instant, so
boards never go stale between events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from spotter.database.models import (
    Pairing,
    PairingStatus,
    PointsLedger,
    Streak,
    User,
    UserBadge,
    UserGameStats,
    Workout,
)
from spotter.engine.badges import Badge, StatSnapshot, badge_progress
from spotter.engine.classifier import BehaviorStats
from spotter.engine.comparison import (
    HeadToHead,
    LeaderboardEntry,
    LeaderboardPeriod,
    RankedEntry,
    head_to_head,
    rank,
)
from spotter.engine.events import (
    NormalizationResult,
    WorkoutEvent,
    local_today,
    normalize_workouts,
    resolve_timezone,
    workout_days,
)
from spotter.engine.streaks import compute_streak, days_since, live_streak

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from spotter.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

_WEEKLY_WINDOW_DAYS = 7
_MONTHLY_WINDOW_DAYS = 30


def _windows(cache: ConfigCache | None) -> tuple[int, int]:
    if cache is None:
        return _WEEKLY_WINDOW_DAYS, _MONTHLY_WINDOW_DAYS
    return (
        cache.get_int("stats.weekly_window_days", _WEEKLY_WINDOW_DAYS),
        cache.get_int("stats.monthly_window_days", _MONTHLY_WINDOW_DAYS),
    )


# ---------------------------------------------------------------------------
# Log loading (shared with scoring_service)
# ---------------------------------------------------------------------------
def user_zone(user: User, default_timezone: str = "UTC") -> ZoneInfo:
    """The member's own timezone, falling back to *default_timezone*."""
    return resolve_timezone(user.timezone, default_timezone)


def load_user_log(
    session: Session,
    user: User,
    *,
    now: datetime,
    default_timezone: str = "UTC",
) -> NormalizationResult:
    """Normalize the member's entire workout log as of *now*."""
    rows = session.scalars(
        select(Workout).where(Workout.user_id == user.id).order_by(Workout.completed_at, Workout.id)
    ).all()
    return normalize_workouts(rows, tz=user_zone(user, default_timezone), now=now)


def _count_in_window(events: list[WorkoutEvent], today: date, window_days: int) -> int:
    start = today - timedelta(days=window_days - 1)
    return sum(1 for e in events if start <= e.completed_on <= today)


def behavior_stats_from_log(
    user: User,
    events: list[WorkoutEvent],
    today: date,
    cache: ConfigCache | None = None,
) -> BehaviorStats:
    weekly_days, monthly_days = _windows(cache)
    streak = compute_streak(workout_days(events), today, user_id=user.id)
    return BehaviorStats(
        user_id=user.id,
        user_name=user.display_name,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        weekly_workouts=_count_in_window(events, today, weekly_days),
        monthly_workouts=_count_in_window(events, today, monthly_days),
        total_workouts=len(events),
        days_since_last_workout=days_since(streak.last_workout_date, today),
        as_of=today,
    )


def read_behavior_stats(
    session: Session,
    user_id: int,
    *,
    now: datetime,
    cache: ConfigCache | None,
    default_timezone: str,
) -> BehaviorStats | None:
    user = session.get(User, user_id)
    if user is None:
        return None
    log = load_user_log(session, user, now=now, default_timezone=default_timezone)
    today = local_today(now, user_zone(user, default_timezone))
    return behavior_stats_from_log(user, log.events, today, cache)


def load_behavior_stats(
    engine: Engine,
    user_id: int,
    *,
    now: datetime | None = None,
    cache: ConfigCache | None = None,
    default_timezone: str = "UTC",
) -> BehaviorStats | None:
    """Snapshot of one member's behavior, or ``None`` for an unknown member."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        return read_behavior_stats(
            session, user_id, now=now, cache=cache, default_timezone=default_timezone,
        )


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------
def find_partner_id(session: Session, user_id: int) -> int | None:
    pairing = session.scalar(
        select(Pairing)
        .where(
            Pairing.status == PairingStatus.ACTIVE.value,
            or_(Pairing.user1_id == user_id, Pairing.user2_id == user_id),
        )
        .order_by(Pairing.started_at.desc(), Pairing.id.desc())
        .limit(1)
    )
    if pairing is None:
        return None
    return pairing.user2_id if pairing.user1_id == user_id else pairing.user1_id


def get_partner_id(engine: Engine, user_id: int) -> int | None:
    """The member's active gym partner, if any."""
    with Session(engine) as session:
        return find_partner_id(session, user_id)


def get_head_to_head(
    engine: Engine,
    user_id: int,
    now: datetime | None = None,
    *,
    cache: ConfigCache | None = None,
    default_timezone: str = "UTC",
) -> HeadToHead | None:
    """Compare a member with their active partner; ``None`` without one."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        partner_id = find_partner_id(session, user_id)
        if partner_id is None:
            return None
        mine = read_behavior_stats(
            session, user_id, now=now, cache=cache, default_timezone=default_timezone,
        )
        theirs = read_behavior_stats(
            session, partner_id, now=now, cache=cache, default_timezone=default_timezone,
        )
    if mine is None or theirs is None:
        return None
    return head_to_head(mine, theirs)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
def _ledger_since(session: Session, since: date) -> dict[int, list[tuple[date, int]]]:
    rows = session.execute(
        select(PointsLedger.user_id, PointsLedger.workout_day, PointsLedger.amount)
        .where(PointsLedger.workout_day >= since)
    ).all()
    by_user: dict[int, list[tuple[date, int]]] = {}
    for user_id, day, amount in rows:
        by_user.setdefault(user_id, []).append((day, amount))
    return by_user


def _window_sum(entries: list[tuple[date, int]], today: date, window_days: int) -> int:
    start = today - timedelta(days=window_days - 1)
    return sum(amount for day, amount in entries if start <= day <= today)


def _as_utc(ts: datetime | None) -> datetime:
    # SQLite hands back naive timestamps.
    if ts is None:
        return datetime.min.replace(tzinfo=UTC)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def get_leaderboard(
    engine: Engine,
    period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
    limit: int = 10,
    *,
    now: datetime | None = None,
    cache: ConfigCache | None = None,
    default_timezone: str = "UTC",
) -> list[RankedEntry]:
    """Top *limit* members for *period*, ranked deterministically.

    Every figure is taken as of each member's own local today: trailing
    windows end on that day (the same windows ``user_game_stats`` stores)
    and a streak whose last workout is older than yesterday counts as 0.
    """
    now = now or datetime.now(UTC)
    weekly_days, monthly_days = _windows(cache)
    # Local days run at most a day either side of the UTC day.
    since = now.astimezone(UTC).date() - timedelta(days=max(weekly_days, monthly_days))

    with Session(engine) as session:
        rows = session.execute(
            select(User, UserGameStats, Streak)
            .outerjoin(UserGameStats, UserGameStats.user_id == User.id)
            .outerjoin(Streak, Streak.user_id == User.id)
        ).all()
        ledger = _ledger_since(session, since)

    entries = []
    for user, stats, streak in rows:
        today = local_today(now, user_zone(user, default_timezone))
        recent = ledger.get(user.id, [])
        entries.append(LeaderboardEntry(
            user_id=user.id,
            display_name=user.display_name,
            total_points=stats.total_points if stats else 0,
            weekly_points=_window_sum(recent, today, weekly_days),
            monthly_points=_window_sum(recent, today, monthly_days),
            current_streak=live_streak(
                streak.current_streak, streak.last_workout_date, today,
            ) if streak else 0,
            level=stats.level if stats else 1,
            created_at=_as_utc(user.created_at),
        ))
    return rank(entries, period)[:limit]


# ---------------------------------------------------------------------------
# Badge progress
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeProgress:
    badge: Badge
    earned: bool
    percent: int


def snapshot_from_row(stats: UserGameStats | None) -> StatSnapshot:
    """The badge-relevant scalars of a stored ``user_game_stats`` row."""
    if stats is None:
        return StatSnapshot()
    return StatSnapshot(
        current_streak=stats.current_streak or 0,
        longest_streak=stats.longest_streak or 0,
        total_workouts=stats.total_workouts or 0,
        total_points=stats.total_points or 0,
        level=stats.level or 1,
    )


def get_badge_progress(
    engine: Engine,
    cache: ConfigCache,
    user_id: int,
    *,
    now: datetime | None = None,
    default_timezone: str = "UTC",
) -> list[BadgeProgress]:
    """Progress towards every active badge, earned ones at 100%."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        snapshot = snapshot_from_row(session.get(UserGameStats, user_id))
        user = session.get(User, user_id)
        streak = session.get(Streak, user_id)
        if user is not None:
            today = local_today(now, user_zone(user, default_timezone))
            last_workout = streak.last_workout_date if streak else None
            snapshot = replace(
                snapshot,
                current_streak=live_streak(snapshot.current_streak, last_workout, today),
            )
        earned = set(session.scalars(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        ).all())

    result: list[BadgeProgress] = []
    for badge in cache.get_badges():
        is_earned = badge.id in earned
        result.append(BadgeProgress(
            badge=badge,
            earned=is_earned,
            percent=100 if is_earned else badge_progress(badge, snapshot),
        ))
    return result
