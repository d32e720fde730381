"""
tests/test_comparison.py — Leaderboard & Head-to-Head Unit Tests
==================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

from spotter.engine.classifier import BehaviorStats
from spotter.engine.comparison import (
    LeaderboardEntry,
    LeaderboardPeriod,
    comparison_delta,
    head_to_head,
    rank,
)


def _entry(user_id: int, points: int, streak: int, *, created_day: int = 1, weekly: int = 0) -> LeaderboardEntry:
    return LeaderboardEntry(
        user_id=user_id,
        display_name=f"user{user_id}",
        total_points=points,
        weekly_points=weekly,
        monthly_points=0,
        current_streak=streak,
        level=1,
        created_at=datetime(2024, 1, created_day, tzinfo=UTC),
    )


def _stats(user_id: int, streak: int, weekly: int, monthly: int, total: int) -> BehaviorStats:
    return BehaviorStats(
        user_id=user_id,
        user_name=f"user{user_id}",
        current_streak=streak,
        weekly_workouts=weekly,
        monthly_workouts=monthly,
        total_workouts=total,
    )


class TestRank:
    def test_points_then_streak(self):
        entries = [_entry(1, 300, 5), _entry(2, 300, 7), _entry(3, 200, 10)]
        ranked = rank(entries)
        assert [r.entry.user_id for r in ranked] == [2, 1, 3]
        assert [r.rank for r in ranked] == [1, 2, 3]

    def test_older_account_wins_full_tie(self):
        entries = [_entry(1, 100, 3, created_day=5), _entry(2, 100, 3, created_day=2)]
        assert [r.entry.user_id for r in rank(entries)] == [2, 1]

    def test_user_id_is_last_resort(self):
        entries = [_entry(9, 100, 3), _entry(4, 100, 3)]
        assert [r.entry.user_id for r in rank(entries)] == [4, 9]

    def test_input_order_irrelevant(self):
        entries = [_entry(1, 50, 1), _entry(2, 80, 0), _entry(3, 80, 2), _entry(4, 10, 9)]
        assert rank(entries) == rank(list(reversed(entries)))

    def test_weekly_period(self):
        entries = [_entry(1, 1000, 0, weekly=10), _entry(2, 100, 0, weekly=60)]
        ranked = rank(entries, LeaderboardPeriod.WEEKLY)
        assert ranked[0].entry.user_id == 2
        assert ranked[0].points == 60

    def test_empty(self):
        assert rank([]) == []


class TestHeadToHead:
    def test_majority_wins(self):
        a = _stats(1, streak=5, weekly=3, monthly=10, total=40)
        b = _stats(2, streak=2, weekly=4, monthly=8, total=30)
        h2h = head_to_head(a, b)
        assert (h2h.wins_a, h2h.wins_b) == (3, 1)
        assert h2h.overall_winner == 1
        assert not h2h.is_tie

    def test_equal_metric_is_tie_for_that_metric(self):
        a = _stats(1, streak=3, weekly=3, monthly=3, total=3)
        b = _stats(2, streak=3, weekly=3, monthly=3, total=3)
        h2h = head_to_head(a, b)
        assert all(m.winner is None for m in h2h.metrics)
        assert h2h.is_tie

    def test_split_wins_is_overall_tie(self):
        a = _stats(1, streak=5, weekly=5, monthly=1, total=1)
        b = _stats(2, streak=1, weekly=1, monthly=5, total=5)
        h2h = head_to_head(a, b)
        assert (h2h.wins_a, h2h.wins_b) == (2, 2)
        assert h2h.overall_winner is None

    def test_symmetric(self):
        a = _stats(1, streak=5, weekly=3, monthly=10, total=40)
        b = _stats(2, streak=2, weekly=4, monthly=8, total=30)
        assert head_to_head(a, b).overall_winner == head_to_head(b, a).overall_winner


class TestComparisonDelta:
    def test_partner_minus_member(self):
        me = _stats(1, streak=2, weekly=1, monthly=4, total=10)
        partner = _stats(2, streak=5, weekly=3, monthly=4, total=8)
        delta = comparison_delta(me, partner)
        assert delta.as_dict() == {"streak": 3, "weekly": 2, "monthly": 0, "total": -2}
