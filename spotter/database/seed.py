"""
spotter.database.seed — Default Settings & Badge Seeder
========================================================

Baseline settings and the default badge catalogue, seeded on first startup
so scoring works out of the box.

Idempotent — only inserts keys that don't already exist.  Settings and
badges edited later by operators are never overwritten.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from spotter.database.models import BadgeDefinition, CriteriaKind, Rarity, Setting

logger = logging.getLogger(__name__)

# Resolve the seeds directory relative to the project root
_SEEDS_DIR = Path(__file__).resolve().parent.parent.parent / "seeds"


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "scoring.base_points": (10, "scoring", "Base points awarded per workout"),
    "scoring.partner_bonus": (
        15, "scoring", "Extra base points when the workout was done with a partner",
    ),
    "scoring.multiplier_tiers": (
        [[3, 1.25], [7, 1.5], [14, 2.0]],
        "scoring",
        "Consistency multiplier tiers as [min_streak, multiplier] pairs",
    ),
    "scoring.level_thresholds": (
        [0, 100, 300, 600, 1000, 1500, 2100, 2800, 3600, 4500, 5500],
        "scoring",
        "Total points required for each level, starting at level 1",
    ),
    "scoring.level_increment": (
        1000, "scoring", "Points per level beyond the threshold table",
    ),
    "stats.weekly_window_days": (7, "stats", "Trailing window for weekly points/workouts"),
    "stats.monthly_window_days": (30, "stats", "Trailing window for monthly points/workouts"),
    "classifier.milestone_interval": (
        7, "classifier", "Streak lengths divisible by this count as a milestone",
    ),
    "classifier.streak_broken_min_longest": (
        3, "classifier", "A broken streak only counts if the longest streak exceeded this",
    ),
    "classifier.slacking_days": (
        3, "classifier", "Days since last workout beyond which a member is slacking",
    ),
    "classifier.slacking_weekly_min": (
        2, "classifier", "Weekly workouts below this (and none today) count as slacking",
    ),
    "classifier.crushing_weekly": (5, "classifier", "Weekly workouts needed for crushing_it"),
    "classifier.crushing_streak": (7, "classifier", "Current streak needed for crushing_it"),
    "classifier.buddy_gap.streak": (2, "classifier", "Streak gap that counts as buddy_ahead"),
    "classifier.buddy_gap.weekly": (2, "classifier", "Weekly gap that counts as buddy_ahead"),
    "classifier.buddy_gap.monthly": (3, "classifier", "Monthly gap that counts as buddy_ahead"),
    "classifier.buddy_gap.total": (5, "classifier", "Total gap that counts as buddy_ahead"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


def _load_yaml(filename: str) -> Any:
    """Load a YAML file from the seeds directory."""
    path = _SEEDS_DIR / filename
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)


def seed_default_badges(engine: Engine, filename: str = "badges.yaml") -> int:
    """Insert badges from ``seeds/badges.yaml`` whose key is not yet present.

    Entries with an unknown criteria kind or rarity are skipped with a
    warning rather than aborting the whole seed.
    """
    data = _load_yaml(filename)
    entries = data.get("badges") or []
    if not entries:
        return 0

    inserted = 0
    with Session(engine) as session:
        existing = set(session.scalars(select(BadgeDefinition.key)).all())
        for b in entries:
            key = b["key"]
            if key in existing:
                continue
            try:
                kind = CriteriaKind(b["criteria"]["kind"])
                rarity = Rarity(b.get("rarity", "common"))
            except (KeyError, ValueError):
                logger.warning("Skipping badge %r: invalid criteria or rarity", key)
                continue
            session.add(BadgeDefinition(
                key=key,
                name=b["name"],
                description=b.get("description"),
                icon=b.get("icon"),
                rarity=rarity.value,
                criteria_kind=kind.value,
                threshold=int(b["criteria"]["threshold"]),
            ))
            existing.add(key)
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default badges.", inserted)
    return inserted
