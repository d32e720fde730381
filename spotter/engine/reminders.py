"""
spotter.engine.reminders — Reminder schedules
===============================================

Parses a member's reminder preference into a :class:`ReminderSchedule` and
answers "is a reminder due right now?" for a member-local instant.
Delivery is someone else's job.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ["ReminderKind", "ReminderSchedule", "is_due", "should_remind"]

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_ALL_DAYS = frozenset(range(7))
_WEEKDAYS = frozenset(range(5))


class ReminderKind(enum.StrEnum):
    OFF = "off"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class ReminderSchedule:
    """When to remind.  ``days`` are ``datetime.weekday()`` numbers (Mon=0)."""

    kind: ReminderKind = ReminderKind.OFF
    at: time = time(18, 0)
    days: frozenset[int] = field(default_factory=frozenset)

    @property
    def active_days(self) -> frozenset[int]:
        if self.kind is ReminderKind.DAILY:
            return _ALL_DAYS
        if self.kind is ReminderKind.WEEKDAYS:
            return _WEEKDAYS
        if self.kind is ReminderKind.CUSTOM:
            return self.days
        return frozenset()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ReminderSchedule:
        """Build a schedule from a stored preference.

        Accepts either an explicit ``kind`` or the ``{"enabled", "time",
        "days"}`` shape, where ``days`` lists weekday names.  Unparseable
        preferences switch reminders off.
        """
        if not data or not data.get("enabled", True):
            return cls()

        try:
            at = time.fromisoformat(str(data.get("time", "18:00")))
            days = frozenset(_parse_day(d) for d in data.get("days", ()))
            kind = ReminderKind(data["kind"]) if "kind" in data else _infer_kind(days)
        except (ValueError, TypeError):
            logger.warning("Unparseable reminder preference %r — reminders off", data)
            return cls()

        if kind is ReminderKind.CUSTOM and not days:
            return cls()
        return cls(kind=kind, at=at, days=days if kind is ReminderKind.CUSTOM else frozenset())


def _parse_day(value: Any) -> int:
    if isinstance(value, int) and 0 <= value <= 6:
        return value
    name = str(value).strip().lower()
    for i, full in enumerate(WEEKDAY_NAMES):
        if name in (full, full[:3]):
            return i
    raise ValueError(f"unknown weekday {value!r}")


def _infer_kind(days: frozenset[int]) -> ReminderKind:
    if not days or days == _ALL_DAYS:
        return ReminderKind.DAILY
    if days == _WEEKDAYS:
        return ReminderKind.WEEKDAYS
    return ReminderKind.CUSTOM


def is_due(schedule: ReminderSchedule, now_local: datetime) -> bool:
    """True when *now_local* falls in the schedule's hour on an active day."""
    if schedule.kind is ReminderKind.OFF:
        return False
    return now_local.weekday() in schedule.active_days and now_local.hour == schedule.at.hour


def should_remind(
    schedule: ReminderSchedule,
    now_local: datetime,
    last_workout: date | None,
) -> bool:
    """:func:`is_due`, except members who already trained today are skipped."""
    if last_workout is not None and last_workout == now_local.date():
        return False
    return is_due(schedule, now_local)
