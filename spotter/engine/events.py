"""
spotter.engine.events — WorkoutEvent and the Event Normalizer
==============================================================

The universal event envelope.  Every raw workout completion record coming
from the ingest collaborator is normalized into a :class:`WorkoutEvent`
before the streak calculator or the scoring engine sees it.

Normalization is where a timestamp becomes a **user-local calendar day**;
everything downstream works in days, never in instants.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

__all__ = [
    "NormalizationResult",
    "RawWorkout",
    "RejectReason",
    "WorkoutEvent",
    "local_day",
    "local_today",
    "normalize_workouts",
    "resolve_timezone",
    "workout_days",
]


class RejectReason(enum.StrEnum):
    """Why a record was dropped at ingestion.  Never fatal."""
    DUPLICATE_ID = "duplicate_id"
    FUTURE_DATED = "future_dated"
    INVALID_DURATION = "invalid_duration"
    NOT_IN_LOG = "not_in_log"
    UNKNOWN_USER = "unknown_user"


class RawWorkout(Protocol):
    """Shape of a raw completion record (e.g. a ``Workout`` ORM row)."""

    id: str
    user_id: int
    completed_at: datetime
    duration_minutes: int | None
    pairing_id: int | None


# ---------------------------------------------------------------------------
# WorkoutEvent — the canonical, immutable workout record
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WorkoutEvent:
    """A normalized workout completion.

    ``completed_on`` is the calendar day in the member's own timezone.
    Several events may share a day; they collapse to one streak unit but
    are scored individually.
    """

    id: str
    user_id: int
    completed_on: date
    duration_minutes: int | None = None
    with_partner: bool = False


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    events: list[WorkoutEvent] = field(default_factory=list)
    rejected: list[tuple[str, RejectReason]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Calendar-day helpers
# ---------------------------------------------------------------------------
def resolve_timezone(name: str | None, default: str = "UTC") -> ZoneInfo:
    """Return the :class:`ZoneInfo` for *name*, falling back to *default*."""
    for candidate in (name, default, "UTC"):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r — falling back", candidate)
    return ZoneInfo("UTC")


def _aware(ts: datetime) -> datetime:
    # Naive timestamps are stored as UTC.
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def local_day(ts: datetime, tz: ZoneInfo) -> date:
    """Calendar day of *ts* as seen in *tz*."""
    return _aware(ts).astimezone(tz).date()


def local_today(now: datetime | None, tz: ZoneInfo) -> date:
    """The member-local "today" for the reference instant *now*."""
    return local_day(now or datetime.now(UTC), tz)


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------
def normalize_workouts(
    records: Iterable[RawWorkout],
    *,
    tz: ZoneInfo,
    now: datetime | None = None,
    already_seen: Iterable[str] = (),
) -> NormalizationResult:
    """Validate and canonicalize raw completion records.

    Records are rejected (and reported, not raised) when their id was
    already seen, when they are dated after *now*, or when they carry a
    negative duration.  Surviving events are returned sorted by
    ``(completed_on, id)``.
    """
    reference = _aware(now or datetime.now(UTC))
    seen: set[str] = set(already_seen)
    events: list[WorkoutEvent] = []
    rejected: list[tuple[str, RejectReason]] = []

    for rec in records:
        if rec.id in seen:
            rejected.append((rec.id, RejectReason.DUPLICATE_ID))
            continue
        if _aware(rec.completed_at) > reference:
            rejected.append((rec.id, RejectReason.FUTURE_DATED))
            continue
        if rec.duration_minutes is not None and rec.duration_minutes < 0:
            rejected.append((rec.id, RejectReason.INVALID_DURATION))
            continue

        seen.add(rec.id)
        events.append(WorkoutEvent(
            id=rec.id,
            user_id=rec.user_id,
            completed_on=local_day(rec.completed_at, tz),
            duration_minutes=rec.duration_minutes,
            with_partner=rec.pairing_id is not None,
        ))

    if rejected:
        logger.debug("Normalizer rejected %d record(s): %s", len(rejected), rejected)

    events.sort(key=lambda e: (e.completed_on, e.id))
    return NormalizationResult(events=events, rejected=rejected)


def workout_days(events: Iterable[WorkoutEvent]) -> list[date]:
    """Ascending, de-duplicated calendar days with at least one workout."""
    return sorted({e.completed_on for e in events})
