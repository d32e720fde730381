"""
spotter.engine.classifier — Behavioral Classifier
===================================================

Maps a member's derived stats (plus an optional partner comparison) onto a
finite taxonomy of behavior events, each carrying a severity tier.  The
output is a :class:`MessageRequest` descriptor for the external text
generator — this module never produces user-facing text.

Exactly one event is emitted per evaluation.  When several apply, the
fixed priority order decides::

    milestone > streak_broken > buddy_ahead > slacking > crushing_it > daily_check

Pure calculation — no DB or network I/O.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spotter.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

__all__ = [
    "PRIORITY",
    "BehaviorClassification",
    "BehaviorEvent",
    "BehaviorStats",
    "ComparisonDelta",
    "MessageRequest",
    "MessageTone",
    "Severity",
    "classify",
    "classify_behavior",
    "severity_for_days",
    "tone_for",
]


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------
class BehaviorEvent(enum.StrEnum):
    STREAK_BROKEN = "streak_broken"
    BUDDY_AHEAD = "buddy_ahead"
    MILESTONE = "milestone"
    SLACKING = "slacking"
    CRUSHING_IT = "crushing_it"
    DAILY_CHECK = "daily_check"


class Severity(enum.StrEnum):
    """Intensity tier driving message tone.

    ``NONE`` is the "worked out today" bucket; it is never attached to a
    negative event.
    """
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    NUCLEAR = "nuclear"


class MessageTone(enum.StrEnum):
    SHAME = "shame"
    TRASH_TALK = "trash_talk"
    MOTIVATIONAL = "motivational"
    ENCOURAGEMENT = "encouragement"
    CELEBRATION = "celebration"


PRIORITY: tuple[BehaviorEvent, ...] = (
    BehaviorEvent.MILESTONE,
    BehaviorEvent.STREAK_BROKEN,
    BehaviorEvent.BUDDY_AHEAD,
    BehaviorEvent.SLACKING,
    BehaviorEvent.CRUSHING_IT,
    BehaviorEvent.DAILY_CHECK,
)

_TONES: dict[BehaviorEvent, MessageTone] = {
    BehaviorEvent.STREAK_BROKEN: MessageTone.SHAME,
    BehaviorEvent.BUDDY_AHEAD: MessageTone.TRASH_TALK,
    BehaviorEvent.MILESTONE: MessageTone.CELEBRATION,
    BehaviorEvent.SLACKING: MessageTone.SHAME,
    BehaviorEvent.CRUSHING_IT: MessageTone.CELEBRATION,
    BehaviorEvent.DAILY_CHECK: MessageTone.MOTIVATIONAL,
}

_NEGATIVE_EVENTS = frozenset({
    BehaviorEvent.STREAK_BROKEN,
    BehaviorEvent.BUDDY_AHEAD,
    BehaviorEvent.SLACKING,
})


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BehaviorStats:
    """Everything the classifier and head-to-head need about one member.

    ``days_since_last_workout`` is ``None`` when the member has never
    worked out.  ``as_of`` is the member-local day the stats describe.
    """

    user_id: int
    user_name: str
    current_streak: int = 0
    longest_streak: int = 0
    weekly_workouts: int = 0
    monthly_workouts: int = 0
    total_workouts: int = 0
    days_since_last_workout: int | None = None
    as_of: date | None = None


@dataclass(frozen=True, slots=True)
class ComparisonDelta:
    """Signed gaps, partner minus member.  Positive means the partner leads."""

    streak: int = 0
    weekly: int = 0
    monthly: int = 0
    total: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "streak": self.streak,
            "weekly": self.weekly,
            "monthly": self.monthly,
            "total": self.total,
        }


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BehaviorClassification:
    user_id: int
    event: BehaviorEvent
    severity: Severity
    computed_at: datetime


@dataclass(frozen=True, slots=True)
class MessageRequest:
    """Descriptor handed to the text generator.  Never persisted."""

    request_id: str
    user_id: int
    user_name: str
    event: BehaviorEvent
    severity: Severity
    tone: MessageTone
    stats: BehaviorStats
    comparison: ComparisonDelta | None = None
    partner_name: str | None = None
    new_badges: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------
def severity_for_days(days_since: int | None) -> Severity:
    """Total mapping from days-since-last-workout to a severity tier.

    ``0 → none``, ``1 → mild``, ``2–3 → moderate``, ``4–29 → severe``,
    ``30+`` or never → ``nuclear``.
    """
    if days_since is None or days_since >= 30:
        return Severity.NUCLEAR
    if days_since <= 0:
        return Severity.NONE
    if days_since == 1:
        return Severity.MILD
    if days_since <= 3:
        return Severity.MODERATE
    return Severity.SEVERE


def _severity_for_gap_multiple(multiple: int) -> Severity:
    if multiple >= 5:
        return Severity.NUCLEAR
    if multiple >= 3:
        return Severity.SEVERE
    if multiple == 2:
        return Severity.MODERATE
    return Severity.MILD


def tone_for(event: BehaviorEvent, severity: Severity) -> MessageTone:
    if event is BehaviorEvent.DAILY_CHECK and severity is Severity.NONE:
        return MessageTone.ENCOURAGEMENT
    return _TONES[event]


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class _Thresholds:
    milestone_interval: int = 7
    streak_broken_min_longest: int = 3
    slacking_days: int = 3
    slacking_weekly_min: int = 2
    crushing_weekly: int = 5
    crushing_streak: int = 7
    gap_streak: int = 2
    gap_weekly: int = 2
    gap_monthly: int = 3
    gap_total: int = 5

    @classmethod
    def from_cache(cls, cache: ConfigCache | None) -> _Thresholds:
        if cache is None:
            return cls()
        d = cls()
        return cls(
            milestone_interval=cache.get_int("classifier.milestone_interval", d.milestone_interval),
            streak_broken_min_longest=cache.get_int(
                "classifier.streak_broken_min_longest", d.streak_broken_min_longest,
            ),
            slacking_days=cache.get_int("classifier.slacking_days", d.slacking_days),
            slacking_weekly_min=cache.get_int("classifier.slacking_weekly_min", d.slacking_weekly_min),
            crushing_weekly=cache.get_int("classifier.crushing_weekly", d.crushing_weekly),
            crushing_streak=cache.get_int("classifier.crushing_streak", d.crushing_streak),
            gap_streak=cache.get_int("classifier.buddy_gap.streak", d.gap_streak),
            gap_weekly=cache.get_int("classifier.buddy_gap.weekly", d.gap_weekly),
            gap_monthly=cache.get_int("classifier.buddy_gap.monthly", d.gap_monthly),
            gap_total=cache.get_int("classifier.buddy_gap.total", d.gap_total),
        )


@dataclass(frozen=True, slots=True)
class _Context:
    stats: BehaviorStats
    comparison: ComparisonDelta | None
    new_badges: Sequence[str]
    limits: _Thresholds


# ---------------------------------------------------------------------------
# Eligibility rules — pure functions (ctx) → Severity | None
# None means "not eligible".
# ---------------------------------------------------------------------------
def _days_severity(ctx: _Context) -> Severity:
    return severity_for_days(ctx.stats.days_since_last_workout)


def _check_milestone(ctx: _Context) -> Severity | None:
    streak = ctx.stats.current_streak
    interval = ctx.limits.milestone_interval
    on_interval = interval > 0 and streak > 0 and streak % interval == 0
    if ctx.new_badges or on_interval:
        return _days_severity(ctx)
    return None


def _check_streak_broken(ctx: _Context) -> Severity | None:
    s = ctx.stats
    if s.current_streak == 0 and s.longest_streak > ctx.limits.streak_broken_min_longest:
        return _days_severity(ctx)
    return None


def _check_buddy_ahead(ctx: _Context) -> Severity | None:
    delta = ctx.comparison
    if delta is None:
        return None
    limits = ctx.limits
    gaps = (
        (delta.streak, limits.gap_streak),
        (delta.weekly, limits.gap_weekly),
        (delta.monthly, limits.gap_monthly),
        (delta.total, limits.gap_total),
    )
    multiples = [gap // limit for gap, limit in gaps if limit > 0 and gap >= limit]
    if not multiples:
        return None
    return _severity_for_gap_multiple(max(multiples))


def _check_slacking(ctx: _Context) -> Severity | None:
    s = ctx.stats
    days = s.days_since_last_workout
    if (
        days is None
        or days > ctx.limits.slacking_days
        or (s.weekly_workouts < ctx.limits.slacking_weekly_min and days >= 1)
    ):
        return _days_severity(ctx)
    return None


def _check_crushing_it(ctx: _Context) -> Severity | None:
    s = ctx.stats
    if s.weekly_workouts >= ctx.limits.crushing_weekly and s.current_streak >= ctx.limits.crushing_streak:
        return _days_severity(ctx)
    return None


def _check_daily_check(ctx: _Context) -> Severity | None:
    return _days_severity(ctx)


RULES: dict[BehaviorEvent, Callable[[_Context], Severity | None]] = {
    BehaviorEvent.MILESTONE: _check_milestone,
    BehaviorEvent.STREAK_BROKEN: _check_streak_broken,
    BehaviorEvent.BUDDY_AHEAD: _check_buddy_ahead,
    BehaviorEvent.SLACKING: _check_slacking,
    BehaviorEvent.CRUSHING_IT: _check_crushing_it,
    BehaviorEvent.DAILY_CHECK: _check_daily_check,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def classify_behavior(
    stats: BehaviorStats,
    comparison: ComparisonDelta | None = None,
    *,
    new_badges: Sequence[str] = (),
    now: datetime | None = None,
    cache: ConfigCache | None = None,
) -> BehaviorClassification:
    """Pick the single highest-priority applicable event and its severity."""
    ctx = _Context(
        stats=stats,
        comparison=comparison,
        new_badges=tuple(new_badges),
        limits=_Thresholds.from_cache(cache),
    )
    for event in PRIORITY:
        severity = RULES[event](ctx)
        if severity is None:
            continue
        if event in _NEGATIVE_EVENTS and severity is Severity.NONE:
            severity = Severity.MILD
        return BehaviorClassification(
            user_id=stats.user_id,
            event=event,
            severity=severity,
            computed_at=now or datetime.now(UTC),
        )
    # daily_check always applies; this is unreachable with the default RULES.
    raise RuntimeError("no behavior rule matched")


def classify(
    stats: BehaviorStats,
    comparison: ComparisonDelta | None = None,
    *,
    new_badges: Sequence[str] = (),
    partner_name: str | None = None,
    now: datetime | None = None,
    cache: ConfigCache | None = None,
) -> MessageRequest:
    """Classify *stats* and wrap the result in a :class:`MessageRequest`.

    Without a *comparison* (no active partner) ``buddy_ahead`` is simply
    unavailable and evaluation falls through to the next event.
    """
    result = classify_behavior(
        stats, comparison, new_badges=new_badges, now=now, cache=cache,
    )
    day = stats.as_of or result.computed_at.date()
    request = MessageRequest(
        request_id=f"{stats.user_id}:{result.event.value}:{day.isoformat()}",
        user_id=stats.user_id,
        user_name=stats.user_name,
        event=result.event,
        severity=result.severity,
        tone=tone_for(result.event, result.severity),
        stats=stats,
        comparison=comparison,
        partner_name=partner_name if comparison is not None else None,
        new_badges=tuple(new_badges),
    )
    logger.debug(
        "Classified user %d as %s/%s", stats.user_id, request.event, request.severity,
    )
    return request
