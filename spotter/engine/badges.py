"""
spotter.engine.badges — Badge/Milestone Evaluator
===================================================

Handler-registry implementation of badge threshold checks.  Every badge
watches one derived scalar (see :class:`~spotter.database.models.CriteriaKind`)
and **fires on the crossing**, not on the level::

    previous_value < threshold <= new_value

Checking only ``new_value >= threshold`` would re-fire on every later
event; that is exactly what this module exists to prevent.  Both snapshots
must come from authoritative, event-derived values (never prev + delta).

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass

from spotter.database.models import CriteriaKind

logger = logging.getLogger(__name__)

__all__ = [
    "METRIC_READERS",
    "Badge",
    "BadgeCriteria",
    "StatSnapshot",
    "badge_progress",
    "evaluate_badges",
]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StatSnapshot:
    """The scalars badges are measured against, at one point in time."""

    current_streak: int = 0
    longest_streak: int = 0
    total_workouts: int = 0
    total_points: int = 0
    level: int = 1


@dataclass(frozen=True, slots=True)
class BadgeCriteria:
    """Declarative criteria: ``kind`` reaches ``threshold``."""

    kind: CriteriaKind
    threshold: int


@dataclass(frozen=True, slots=True)
class Badge:
    id: int | None
    key: str
    name: str
    rarity: str
    criteria: BadgeCriteria
    icon: str | None = None


# ---------------------------------------------------------------------------
# Metric readers — one per criteria kind
# ---------------------------------------------------------------------------
METRIC_READERS: dict[CriteriaKind, Callable[[StatSnapshot], int]] = {
    CriteriaKind.CURRENT_STREAK: lambda s: s.current_streak,
    CriteriaKind.LONGEST_STREAK: lambda s: s.longest_streak,
    CriteriaKind.TOTAL_WORKOUTS: lambda s: s.total_workouts,
    CriteriaKind.TOTAL_POINTS: lambda s: s.total_points,
    CriteriaKind.LEVEL: lambda s: s.level,
}


def _crossed(criteria: BadgeCriteria, prev: StatSnapshot, new: StatSnapshot) -> bool:
    reader = METRIC_READERS.get(criteria.kind)
    if reader is None:
        logger.warning("No metric reader for criteria kind %r", criteria.kind)
        return False
    return reader(prev) < criteria.threshold <= reader(new)


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def evaluate_badges(
    prev: StatSnapshot,
    new: StatSnapshot,
    catalogue: Iterable[Badge],
    already_earned: Collection[int | str] = frozenset(),
) -> list[Badge]:
    """Return the badges whose threshold was crossed between two snapshots.

    Parameters
    ----------
    prev : Snapshot before the update.
    new : Snapshot after the update.
    catalogue : Active badges.
    already_earned : Badge ids (or keys, for unsaved badges) the member
        already holds.  These never fire again.

    Returns
    -------
    Newly fired badges, in catalogue order.
    """
    fired: list[Badge] = []
    for badge in catalogue:
        if badge.id in already_earned or badge.key in already_earned:
            continue
        if _crossed(badge.criteria, prev, new):
            fired.append(badge)
            logger.info(
                "Badge crossed: %s (%s %d)",
                badge.key, badge.criteria.kind, badge.criteria.threshold,
            )
    return fired


def badge_progress(badge: Badge, snapshot: StatSnapshot) -> int:
    """Percent progress (0–100) of *snapshot* towards *badge*."""
    reader = METRIC_READERS.get(badge.criteria.kind)
    if reader is None or badge.criteria.threshold <= 0:
        return 0
    value = reader(snapshot)
    return max(0, min(100, (value * 100) // badge.criteria.threshold))
