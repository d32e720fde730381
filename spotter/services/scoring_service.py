"""
spotter.services.scoring_service — Workout processing & replay
================================================================

Applies one workout completion to a member's derived state:

    1. Validate (unknown member, future-dated, not yet logged → rejected,
       never raised)
    2. Serialize on the member (in-process lock + ``SELECT … FOR UPDATE``)
    3. Snapshot the *previous* badge-relevant stats
    4. Score the event into the ledger (SAVEPOINT; unique event id → duplicate)
    5. Recompute streak and stats from the full log
    6. Evaluate badges prev → next and award (SAVEPOINT; duplicate → no-op)
    7. Commit

Everything derived here is a pure function of the workout log, so
:func:`replay_user` can always rebuild it from scratch.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotter.database.models import (
    LedgerReason,
    PointsLedger,
    Streak,
    User,
    UserBadge,
    UserGameStats,
    Workout,
)
from spotter.engine.badges import Badge, StatSnapshot, evaluate_badges
from spotter.engine.events import (
    RawWorkout,
    RejectReason,
    WorkoutEvent,
    local_day,
    local_today,
    workout_days,
)
from spotter.engine.scoring import GameStats, LedgerEntry, derive_game_stats, score_event
from spotter.engine.streaks import StreakState, compute_streak, streak_as_of
from spotter.services.stats_service import load_user_log, snapshot_from_row, user_zone

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from spotter.engine.cache import ConfigCache
    from spotter.services.locks import UserLocks

logger = logging.getLogger(__name__)


class ProcessStatus(enum.StrEnum):
    SCORED = "scored"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    status: ProcessStatus
    event_id: str
    reason: RejectReason | None = None
    entry: LedgerEntry | None = None
    streak: StreakState | None = None
    stats: GameStats | None = None
    new_badges: list[Badge] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReplayResult:
    user_id: int
    scored: int
    awarded: list[Badge]
    streak: StreakState
    stats: GameStats


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------
def _entry_from_row(row: PointsLedger) -> LedgerEntry:
    return LedgerEntry(
        event_id=row.event_id,
        user_id=row.user_id,
        amount=row.amount,
        multiplier=row.multiplier,
        reason=LedgerReason(row.reason),
        workout_day=row.workout_day,
        breakdown=dict(row.breakdown or {}),
    )


def _ledger_entries(session: Session, user_id: int) -> list[LedgerEntry]:
    rows = session.scalars(
        select(PointsLedger)
        .where(PointsLedger.user_id == user_id)
        .order_by(PointsLedger.workout_day, PointsLedger.event_id)
    ).all()
    return [_entry_from_row(r) for r in rows]


def _lock_game_stats(session: Session, user_id: int) -> UserGameStats:
    """Fetch the member's stats row ``FOR UPDATE``, creating it if missing.

    ``FOR UPDATE`` locks nothing while the row does not exist, so two
    processes may both try to create it; the loser's INSERT fails under its
    SAVEPOINT and it re-reads (and waits on) the winner's row instead.
    """
    query = select(UserGameStats).where(UserGameStats.user_id == user_id).with_for_update()
    stats = session.scalar(query)
    if stats is not None:
        return stats
    try:
        with session.begin_nested():
            stats = UserGameStats(
                user_id=user_id,
                total_points=0,
                weekly_points=0,
                monthly_points=0,
                level=1,
                consistency_multiplier=1.0,
                total_workouts=0,
                current_streak=0,
                longest_streak=0,
            )
            session.add(stats)
            session.flush()
    except IntegrityError:
        logger.debug("Stats row for user %d created concurrently", user_id)
        return session.scalar(query)
    return stats


def _insert_ledger_entry(session: Session, entry: LedgerEntry) -> bool:
    """Insert *entry* under a SAVEPOINT.  Returns False if it already existed."""
    row = PointsLedger(
        user_id=entry.user_id,
        event_id=entry.event_id,
        amount=entry.amount,
        multiplier=entry.multiplier,
        reason=entry.reason.value,
        workout_day=entry.workout_day,
        breakdown=entry.breakdown,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(row)
            session.flush()
    except IntegrityError:
        # uq_points_ledger_event caught it; the outer txn is still alive.
        return False
    return True


def _award(session: Session, user_id: int, badges: list[Badge]) -> list[Badge]:
    awarded: list[Badge] = []
    for badge in badges:
        if badge.id is None:
            continue
        try:
            with session.begin_nested():
                session.add(UserBadge(user_id=user_id, badge_id=badge.id))
                session.flush()
        except IntegrityError:
            logger.debug("Badge %s already held by user %d", badge.key, user_id)
            continue
        awarded.append(badge)
        logger.info("Badge awarded: user %d earned %s", user_id, badge.key)
    return awarded


def _earned_badge_ids(session: Session, user_id: int) -> set[int]:
    return set(session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all())


def _write_derived(
    session: Session,
    row: UserGameStats,
    streak: StreakState,
    stats: GameStats,
    total_workouts: int,
) -> None:
    row.total_points = stats.total_points
    row.weekly_points = stats.weekly_points
    row.monthly_points = stats.monthly_points
    row.level = stats.level
    row.consistency_multiplier = stats.consistency_multiplier
    row.total_workouts = total_workouts
    row.current_streak = streak.current_streak
    row.longest_streak = streak.longest_streak

    streak_row = session.get(Streak, row.user_id)
    if streak_row is None:
        streak_row = Streak(user_id=row.user_id)
        session.add(streak_row)
    streak_row.current_streak = streak.current_streak
    streak_row.longest_streak = streak.longest_streak
    streak_row.last_workout_date = streak.last_workout_date


def _snapshot(streak: StreakState, stats: GameStats, total_workouts: int) -> StatSnapshot:
    return StatSnapshot(
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        total_workouts=total_workouts,
        total_points=stats.total_points,
        level=stats.level,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def process_workout(
    engine: Engine,
    cache: ConfigCache | None,
    record: RawWorkout,
    *,
    now: datetime | None = None,
    locks: UserLocks | None = None,
    default_timezone: str = "UTC",
) -> ProcessResult:
    """Score one workout completion and update the member's derived state.

    Safe under at-least-once delivery: a second call with the same workout
    id returns ``DUPLICATE`` and changes nothing.

    *record* must already be in the workout log; the log is written by the
    ingest collaborator, never here.
    """
    now = now or datetime.now(UTC)
    if locks is None:
        return _process(engine, cache, record, now, default_timezone)
    with locks.hold(record.user_id):
        return _process(engine, cache, record, now, default_timezone)


def _process(
    engine: Engine,
    cache: ConfigCache | None,
    record: RawWorkout,
    now: datetime,
    default_timezone: str,
) -> ProcessResult:
    with Session(engine) as session:
        user = session.get(User, record.user_id)
        if user is None:
            logger.warning("Rejected workout %s: unknown user %d", record.id, record.user_id)
            return ProcessResult(ProcessStatus.REJECTED, record.id, reason=RejectReason.UNKNOWN_USER)

        completed_at = record.completed_at
        if completed_at.tzinfo is None:
            completed_at = completed_at.replace(tzinfo=UTC)
        if completed_at > now:
            logger.warning("Rejected workout %s: dated in the future", record.id)
            return ProcessResult(ProcessStatus.REJECTED, record.id, reason=RejectReason.FUTURE_DATED)
        if record.duration_minutes is not None and record.duration_minutes < 0:
            logger.warning("Rejected workout %s: negative duration", record.id)
            return ProcessResult(
                ProcessStatus.REJECTED, record.id, reason=RejectReason.INVALID_DURATION,
            )
        logged = session.get(Workout, record.id)
        if logged is None or logged.user_id != user.id:
            logger.warning("Rejected workout %s: not in the workout log", record.id)
            return ProcessResult(ProcessStatus.REJECTED, record.id, reason=RejectReason.NOT_IN_LOG)

        tz = user_zone(user, default_timezone)
        row = _lock_game_stats(session, user.id)
        prev = snapshot_from_row(row)

        log = load_user_log(session, user, now=now, default_timezone=default_timezone)
        days = workout_days(log.events)

        event = WorkoutEvent(
            id=record.id,
            user_id=user.id,
            completed_on=local_day(record.completed_at, tz),
            duration_minutes=record.duration_minutes,
            with_partner=record.pairing_id is not None,
        )
        entry = score_event(event, streak_as_of(days, event.completed_on, user_id=user.id), cache)
        if not _insert_ledger_entry(session, entry):
            session.rollback()
            logger.debug("Duplicate workout %s for user %d — no-op", record.id, user.id)
            return ProcessResult(ProcessStatus.DUPLICATE, record.id)

        today = local_today(now, tz)
        streak = compute_streak(days, today, user_id=user.id)
        stats = derive_game_stats(user.id, _ledger_entries(session, user.id), streak, today, cache)
        total_workouts = len(log.events)
        _write_derived(session, row, streak, stats, total_workouts)

        catalogue = cache.get_badges() if cache else []
        fired = evaluate_badges(
            prev,
            _snapshot(streak, stats, total_workouts),
            catalogue,
            already_earned=_earned_badge_ids(session, user.id),
        )
        new_badges = _award(session, user.id, fired)

        session.commit()

    logger.info(
        "Scored workout %s for user %d: +%d pts (x%.2f), streak %d, %d new badge(s)",
        entry.event_id, entry.user_id, entry.amount, entry.multiplier,
        streak.current_streak, len(new_badges),
    )
    return ProcessResult(
        ProcessStatus.SCORED,
        record.id,
        entry=entry,
        streak=streak,
        stats=stats,
        new_badges=new_badges,
    )


def replay_user(
    engine: Engine,
    cache: ConfigCache | None,
    user_id: int,
    *,
    now: datetime | None = None,
    locks: UserLocks | None = None,
    default_timezone: str = "UTC",
) -> ReplayResult:
    """Rebuild a member's derived state from the workout log.

    Scores any workouts missing from the ledger (oldest first), walks the
    history day by day to award badges crossed along the way, and
    overwrites the cached streak and stats.  Running it twice changes
    nothing the second time.

    Raises
    ------
    LookupError
        If *user_id* does not exist.
    """
    now = now or datetime.now(UTC)
    if locks is None:
        return _replay(engine, cache, user_id, now, default_timezone)
    with locks.hold(user_id):
        return _replay(engine, cache, user_id, now, default_timezone)


def _replay(
    engine: Engine,
    cache: ConfigCache | None,
    user_id: int,
    now: datetime,
    default_timezone: str,
) -> ReplayResult:
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise LookupError(f"unknown user {user_id}")

        row = _lock_game_stats(session, user_id)
        log = load_user_log(session, user, now=now, default_timezone=default_timezone)
        days = workout_days(log.events)

        scored = 0
        scored_ids = {e.event_id for e in _ledger_entries(session, user_id)}
        for event in log.events:
            if event.id in scored_ids:
                continue
            entry = score_event(event, streak_as_of(days, event.completed_on, user_id=user_id), cache)
            if _insert_ledger_entry(session, entry):
                scored += 1
        entries = _ledger_entries(session, user_id)

        # Walk the history so badges for streaks that later broke still count.
        catalogue = cache.get_badges() if cache else []
        earned = _earned_badge_ids(session, user_id)
        fired: list[Badge] = []
        prev = StatSnapshot()
        for day in days:
            snap = _snapshot_as_of(user_id, log.events, entries, days, day, cache)
            for badge in evaluate_badges(prev, snap, catalogue, already_earned=earned):
                earned.add(badge.id)
                fired.append(badge)
            prev = snap
        awarded = _award(session, user_id, fired)

        today = local_today(now, user_zone(user, default_timezone))
        streak = compute_streak(days, today, user_id=user_id)
        stats = derive_game_stats(user_id, entries, streak, today, cache)
        _write_derived(session, row, streak, stats, len(log.events))
        session.commit()

    logger.info(
        "Replayed user %d: %d workout(s) scored, %d badge(s) awarded, %d pts total",
        user_id, scored, len(awarded), stats.total_points,
    )
    return ReplayResult(
        user_id=user_id, scored=scored, awarded=awarded, streak=streak, stats=stats,
    )


def _snapshot_as_of(
    user_id: int,
    events: list[WorkoutEvent],
    entries: list[LedgerEntry],
    days: list[date],
    day: date,
    cache: ConfigCache | None,
) -> StatSnapshot:
    streak = streak_as_of(days, day, user_id=user_id)
    stats = derive_game_stats(
        user_id, [e for e in entries if e.workout_day <= day], streak, day, cache,
    )
    return _snapshot(streak, stats, sum(1 for e in events if e.completed_on <= day))
