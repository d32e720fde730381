"""
tests/test_scoring_service.py — Scoring Service Integration Tests
===================================================================
Service-level tests for scoring_service.process_workout() and replay_user(),
including idempotency, badge awarding, rejections, concurrency and replay.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spotter.database.engine import init_db
from spotter.database.models import (
    LedgerReason,
    Pairing,
    PairingStatus,
    PointsLedger,
    Streak,
    UserBadge,
    UserGameStats,
    Workout,
)
from spotter.engine.cache import ConfigCache
from spotter.engine.events import RejectReason
from spotter.services.locks import UserLocks
from spotter.services.scoring_service import (
    ProcessStatus,
    _lock_game_stats,
    process_workout,
    replay_user,
)

DAY_1 = date(2024, 3, 1)


@dataclass
class _Record:
    id: str
    user_id: int
    completed_at: datetime
    duration_minutes: int | None = 45
    pairing_id: int | None = None


def _at(day: date, hour: int = 7) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=UTC)


def _evening(day: date) -> datetime:
    return _at(day, 20)


@pytest.fixture
def engine(db_engine, make_user):
    """Shared SQLite engine with seeded settings/badges and one member."""
    init_db(db_engine)
    make_user(1, "Sam")
    return db_engine


@pytest.fixture
def cache(engine):
    c = ConfigCache(engine)
    c.load_all()
    return c


def _log(engine, *records: _Record) -> None:
    """Append records to the workout log, as the ingest path would."""
    with Session(engine) as session:
        for r in records:
            session.add(Workout(
                id=r.id,
                user_id=r.user_id,
                completed_at=r.completed_at,
                duration_minutes=r.duration_minutes,
                pairing_id=r.pairing_id,
            ))
        session.commit()


def _submit(engine, cache, record: _Record, now: datetime, **kw):
    _log(engine, record)
    return process_workout(engine, cache, record, now=now, **kw)


def _process_day(engine, cache, n: int, user_id: int = 1, **kw):
    day = DAY_1 + timedelta(days=n - 1)
    record = _Record(f"w{user_id}-{n}", user_id, _at(day), **kw)
    return _submit(engine, cache, record, _evening(day))


def _ledger_count(engine, user_id: int = 1) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(PointsLedger).where(PointsLedger.user_id == user_id)
        )


def _badge_keys(result) -> list[str]:
    return [b.key for b in result.new_badges]


# ---------------------------------------------------------------------------
# process_workout
# ---------------------------------------------------------------------------
class TestProcessWorkout:
    def test_first_workout(self, engine, cache):
        result = _process_day(engine, cache, 1)
        assert result.status == ProcessStatus.SCORED
        assert result.entry.amount == 10
        assert result.streak.current_streak == 1
        assert result.stats.total_points == 10
        assert result.stats.level == 1
        assert _badge_keys(result) == ["first_rep"]

    def test_same_event_twice_is_one_ledger_entry(self, engine, cache):
        first = _process_day(engine, cache, 1)
        second = process_workout(engine, cache, _Record("w1-1", 1, _at(DAY_1)), now=_evening(DAY_1))
        assert first.status == ProcessStatus.SCORED
        assert second.status == ProcessStatus.DUPLICATE
        assert second.new_badges == []
        assert _ledger_count(engine) == 1
        with Session(engine) as session:
            assert session.get(UserGameStats, 1).total_points == 10
            assert session.scalar(select(func.count()).select_from(UserBadge)) == 1

    def test_streak_badges_fire_once_on_crossing(self, engine, cache):
        fired = {n: _badge_keys(_process_day(engine, cache, n)) for n in range(1, 9)}
        assert fired[3] == ["streak_3"]
        assert fired[6] == []
        assert fired[7] == ["streak_7"]
        assert fired[8] == []

    def test_points_follow_streak_multiplier(self, engine, cache):
        amounts = [_process_day(engine, cache, n).entry.amount for n in range(1, 9)]
        assert amounts == [10, 10, 13, 13, 13, 13, 15, 15]
        with Session(engine) as session:
            stats = session.get(UserGameStats, 1)
            assert stats.total_points == 102
            assert stats.level == 2
            assert stats.current_streak == 8
            streak = session.get(Streak, 1)
            assert streak.longest_streak == 8
            assert streak.last_workout_date == DAY_1 + timedelta(days=7)

    def test_late_event_rebuilds_streak(self, engine, cache):
        for n in (1, 2, 4):
            _process_day(engine, cache, n)
        late = _submit(
            engine, cache, _Record("w1-3", 1, _at(DAY_1 + timedelta(days=2))),
            _evening(DAY_1 + timedelta(days=3)),
        )
        assert late.streak.current_streak == 4
        assert "streak_3" in _badge_keys(late)

    def test_two_workouts_same_day(self, engine, cache):
        _process_day(engine, cache, 1)
        second = _submit(engine, cache, _Record("w1-1b", 1, _at(DAY_1, 18)), _evening(DAY_1))
        assert second.status == ProcessStatus.SCORED
        assert second.streak.current_streak == 1
        assert second.stats.total_points == 20

    def test_partner_workout(self, engine, cache, make_user):
        make_user(2, "Alex")
        with Session(engine) as session:
            session.add(Pairing(id=1, user1_id=1, user2_id=2, status=PairingStatus.ACTIVE.value))
            session.commit()
        result = _process_day(engine, cache, 1, pairing_id=1)
        assert result.entry.amount == 25
        assert result.entry.reason == LedgerReason.PARTNER_WORKOUT

    def test_member_timezone_decides_the_day(self, engine, cache, make_user):
        make_user(3, "Nia", timezone="America/New_York")
        # 02:00 UTC on the 11th is the evening of the 10th in New York
        record = _Record("ny-1", 3, datetime(2024, 3, 11, 2, tzinfo=UTC))
        result = _submit(engine, cache, record, datetime(2024, 3, 11, 3, tzinfo=UTC))
        assert result.entry.workout_day == date(2024, 3, 10)

    def test_with_locks(self, engine, cache):
        locks = UserLocks()
        result = _submit(engine, cache, _Record("w1-1", 1, _at(DAY_1)), _evening(DAY_1), locks=locks)
        assert result.status == ProcessStatus.SCORED
        assert len(locks) == 0

    def test_without_cache_uses_defaults(self, engine):
        result = _process_day(engine, None, 1)
        assert result.entry.amount == 10
        assert result.new_badges == []

    def test_log_is_never_written(self, engine, cache):
        _process_day(engine, cache, 1)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Workout)) == 1


class TestConcurrency:
    def test_same_member_events_in_parallel(self, engine, cache):
        records = [_Record(f"w1-{n}", 1, _at(DAY_1 + timedelta(days=n - 1))) for n in range(1, 7)]
        _log(engine, *records)
        locks = UserLocks()
        start = threading.Barrier(len(records))
        now = _evening(DAY_1 + timedelta(days=5))

        def submit(record):
            start.wait()
            return process_workout(engine, cache, record, now=now, locks=locks)

        with ThreadPoolExecutor(max_workers=len(records)) as pool:
            results = list(pool.map(submit, records))

        assert all(r.status == ProcessStatus.SCORED for r in results)
        awarded = Counter(key for r in results for key in _badge_keys(r))
        assert awarded == Counter({"first_rep": 1, "streak_3": 1})
        assert _ledger_count(engine) == 6
        with Session(engine) as session:
            ledger_sum = session.scalar(
                select(func.sum(PointsLedger.amount)).where(PointsLedger.user_id == 1)
            )
            stats = session.get(UserGameStats, 1)
            assert stats.total_points == ledger_sum == 72
            assert stats.total_workouts == 6
            assert session.scalar(select(func.count()).select_from(UserBadge)) == 2
        assert len(locks) == 0

    def test_stats_row_created_concurrently(self, engine, monkeypatch):
        with Session(engine) as session:
            session.add(UserGameStats(user_id=1, total_points=40, level=1))
            session.commit()

        with Session(engine) as session:
            real_scalar = session.scalar
            calls = []

            def miss_first(stmt, *args, **kwargs):
                # The other writer's row is not visible yet on the first read.
                calls.append(stmt)
                return None if len(calls) == 1 else real_scalar(stmt, *args, **kwargs)

            monkeypatch.setattr(session, "scalar", miss_first)
            row = _lock_game_stats(session, 1)
            assert row.total_points == 40
            assert len(calls) == 2


class TestRejections:
    def test_unknown_user(self, engine, cache):
        record = _Record("w999-1", 999, _at(DAY_1))
        result = process_workout(engine, cache, record, now=_evening(DAY_1))
        assert result.status == ProcessStatus.REJECTED
        assert result.reason == RejectReason.UNKNOWN_USER
        assert _ledger_count(engine, 999) == 0

    def test_future_dated(self, engine, cache):
        record = _Record("future", 1, _at(DAY_1 + timedelta(days=2)))
        result = process_workout(engine, cache, record, now=_evening(DAY_1))
        assert result.status == ProcessStatus.REJECTED
        assert result.reason == RejectReason.FUTURE_DATED
        assert _ledger_count(engine) == 0

    def test_negative_duration(self, engine, cache):
        record = _Record("neg", 1, _at(DAY_1), duration_minutes=-1)
        result = process_workout(engine, cache, record, now=_evening(DAY_1))
        assert result.reason == RejectReason.INVALID_DURATION

    def test_not_in_log(self, engine, cache):
        record = _Record("unlogged", 1, _at(DAY_1))
        result = process_workout(engine, cache, record, now=_evening(DAY_1))
        assert result.status == ProcessStatus.REJECTED
        assert result.reason == RejectReason.NOT_IN_LOG
        assert _ledger_count(engine) == 0
        with Session(engine) as session:
            assert session.get(Workout, "unlogged") is None
            assert session.get(UserGameStats, 1) is None

    def test_logged_for_another_member(self, engine, cache, make_user):
        make_user(2, "Alex")
        _log(engine, _Record("w2-1", 2, _at(DAY_1)))
        result = process_workout(engine, cache, _Record("w2-1", 1, _at(DAY_1)), now=_evening(DAY_1))
        assert result.reason == RejectReason.NOT_IN_LOG
        assert _ledger_count(engine, 1) == 0


# ---------------------------------------------------------------------------
# replay_user
# ---------------------------------------------------------------------------
def _log_days(engine, days: int, user_id: int = 1) -> None:
    with Session(engine) as session:
        for n in range(1, days + 1):
            day = DAY_1 + timedelta(days=n - 1)
            session.add(Workout(id=f"w{user_id}-{n}", user_id=user_id, completed_at=_at(day)))
        session.commit()


class TestReplay:
    def test_rebuilds_from_log(self, engine, cache):
        _log_days(engine, 7)
        result = replay_user(engine, cache, 1, now=_evening(DAY_1 + timedelta(days=6)))
        assert result.scored == 7
        assert result.stats.total_points == 87
        assert result.streak.current_streak == 7
        assert {b.key for b in result.awarded} == {"first_rep", "streak_3", "streak_7"}

    def test_idempotent(self, engine, cache):
        _log_days(engine, 7)
        now = _evening(DAY_1 + timedelta(days=6))
        first = replay_user(engine, cache, 1, now=now)
        second = replay_user(engine, cache, 1, now=now)
        assert second.scored == 0
        assert second.awarded == []
        assert second.stats == first.stats
        assert _ledger_count(engine) == 7

    def test_awards_streak_badges_even_after_break(self, engine, cache):
        _log_days(engine, 7)
        result = replay_user(engine, cache, 1, now=_evening(DAY_1 + timedelta(days=20)))
        assert result.streak.current_streak == 0
        assert result.streak.longest_streak == 7
        assert "streak_7" in {b.key for b in result.awarded}

    def test_matches_live_processing(self, engine, cache):
        live = [_process_day(engine, cache, n) for n in range(1, 9)]
        result = replay_user(engine, cache, 1, now=_evening(DAY_1 + timedelta(days=7)))
        assert result.scored == 0
        assert result.awarded == []
        assert result.stats.total_points == live[-1].stats.total_points
        assert result.streak == live[-1].streak

    def test_unknown_user(self, engine, cache):
        with pytest.raises(LookupError):
            replay_user(engine, cache, 404)
