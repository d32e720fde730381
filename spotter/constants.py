"""
spotter.constants — Shared Constants & Helpers
================================================

Single source of truth for presentation constants and the leveling formula.
Import from here instead of duplicating in engine modules and services.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spotter.engine.cache import ConfigCache

# ---------------------------------------------------------------------------
# Rarity presentation (used by celebration payloads)
# ---------------------------------------------------------------------------
RARITY_EMOJI: dict[str, str] = {
    "common": "\u26aa",        # ⚪
    "uncommon": "\U0001f7e2",  # 🟢
    "rare": "\U0001f535",      # 🔵
    "epic": "\U0001f7e3",      # 🟣
    "legendary": "\U0001f7e1", # 🟡
}

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
# Level N (1-based) requires DEFAULT_LEVEL_THRESHOLDS[N - 1] total points.
DEFAULT_LEVEL_THRESHOLDS: list[int] = [
    0, 100, 300, 600, 1000, 1500, 2100, 2800, 3600, 4500, 5500,
]
DEFAULT_LEVEL_INCREMENT = 1000


def _level_table(cache: ConfigCache | None) -> tuple[list[int], int]:
    if cache is None:
        return DEFAULT_LEVEL_THRESHOLDS, DEFAULT_LEVEL_INCREMENT
    raw = cache.get_setting("scoring.level_thresholds", DEFAULT_LEVEL_THRESHOLDS)
    try:
        thresholds = sorted(int(v) for v in raw)
    except (TypeError, ValueError):
        thresholds = DEFAULT_LEVEL_THRESHOLDS
    if not thresholds or thresholds[0] != 0:
        thresholds = DEFAULT_LEVEL_THRESHOLDS
    increment = cache.get_int("scoring.level_increment", DEFAULT_LEVEL_INCREMENT)
    return thresholds, max(increment, 1)


def level_for_points(total_points: int, cache: ConfigCache | None = None) -> int:
    """Level reached with *total_points*.

    Walks the threshold table; past the last entry every further level
    costs a fixed increment::

        250  → 2        (100 <= 250 < 300)
        5500 → 11
        6500 → 12

    Negative totals are treated as zero so the level never drops below 1.
    """
    thresholds, increment = _level_table(cache)
    points = max(total_points, 0)
    last = thresholds[-1]
    if points < last:
        return bisect_right(thresholds, points)
    return len(thresholds) + (points - last) // increment


def points_for_level(level: int, cache: ConfigCache | None = None) -> int:
    """Total points required to reach *level*."""
    thresholds, increment = _level_table(cache)
    if level <= 1:
        return 0
    if level <= len(thresholds):
        return thresholds[level - 1]
    return thresholds[-1] + (level - len(thresholds)) * increment


def points_for_next_level(level: int, cache: ConfigCache | None = None) -> int:
    """Total points at which the level after *level* unlocks."""
    return points_for_level(level + 1, cache)
