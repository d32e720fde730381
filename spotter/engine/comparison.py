"""
spotter.engine.comparison — Comparison / Leaderboard Aggregator
=================================================================

Ranks members for a leaderboard and builds head-to-head comparisons
between two partners.  Ordering is total: ties on points fall through to
streak, then to account age, then to user id, so two calls over the same
input always return the same order.

Pure calculation — no DB I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from spotter.engine.classifier import BehaviorStats, ComparisonDelta

__all__ = [
    "H2H_METRICS",
    "HeadToHead",
    "LeaderboardEntry",
    "LeaderboardPeriod",
    "MetricResult",
    "RankedEntry",
    "comparison_delta",
    "head_to_head",
    "rank",
]


class LeaderboardPeriod(enum.StrEnum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: int
    display_name: str
    total_points: int
    weekly_points: int
    monthly_points: int
    current_streak: int
    level: int
    created_at: datetime

    def points_for(self, period: LeaderboardPeriod) -> int:
        if period is LeaderboardPeriod.WEEKLY:
            return self.weekly_points
        if period is LeaderboardPeriod.MONTHLY:
            return self.monthly_points
        return self.total_points


@dataclass(frozen=True, slots=True)
class RankedEntry:
    rank: int
    points: int
    entry: LeaderboardEntry


def rank(
    entries: Iterable[LeaderboardEntry],
    period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
) -> list[RankedEntry]:
    """Order *entries* for *period* and assign unique 1-based ranks.

    Sort key: points for the period (desc), current streak (desc),
    ``created_at`` (asc, earlier accounts first), ``user_id`` (asc).
    """
    ordered = sorted(
        entries,
        key=lambda e: (-e.points_for(period), -e.current_streak, e.created_at, e.user_id),
    )
    return [
        RankedEntry(rank=i, points=e.points_for(period), entry=e)
        for i, e in enumerate(ordered, start=1)
    ]


# ---------------------------------------------------------------------------
# Head-to-head
# ---------------------------------------------------------------------------
H2H_METRICS: tuple[str, ...] = (
    "current_streak",
    "weekly_workouts",
    "monthly_workouts",
    "total_workouts",
)


@dataclass(frozen=True, slots=True)
class MetricResult:
    metric: str
    value_a: int
    value_b: int
    winner: int | None  # user id, or None on a tie


@dataclass(frozen=True, slots=True)
class HeadToHead:
    user_a: int
    user_b: int
    metrics: tuple[MetricResult, ...]
    wins_a: int
    wins_b: int
    overall_winner: int | None

    @property
    def is_tie(self) -> bool:
        return self.overall_winner is None


def head_to_head(a: BehaviorStats, b: BehaviorStats) -> HeadToHead:
    """Compare two members metric by metric.

    Each metric is won on a strict greater-than; equal values are a tie
    for that metric.  The overall winner is whoever won more metrics;
    equal win counts make the whole comparison a tie.
    """
    results: list[MetricResult] = []
    wins_a = wins_b = 0
    for metric in H2H_METRICS:
        va, vb = getattr(a, metric), getattr(b, metric)
        winner: int | None = None
        if va > vb:
            winner = a.user_id
            wins_a += 1
        elif vb > va:
            winner = b.user_id
            wins_b += 1
        results.append(MetricResult(metric=metric, value_a=va, value_b=vb, winner=winner))

    overall: int | None = None
    if wins_a > wins_b:
        overall = a.user_id
    elif wins_b > wins_a:
        overall = b.user_id

    return HeadToHead(
        user_a=a.user_id,
        user_b=b.user_id,
        metrics=tuple(results),
        wins_a=wins_a,
        wins_b=wins_b,
        overall_winner=overall,
    )


def comparison_delta(user: BehaviorStats, partner: BehaviorStats) -> ComparisonDelta:
    """Signed gaps, *partner* minus *user*, fed to the classifier."""
    return ComparisonDelta(
        streak=partner.current_streak - user.current_streak,
        weekly=partner.weekly_workouts - user.weekly_workouts,
        monthly=partner.monthly_workouts - user.monthly_workouts,
        total=partner.total_workouts - user.total_workouts,
    )
