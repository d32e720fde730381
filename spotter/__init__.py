"""
Spotter — Behavioral Scoring & Nudge Engine for Gym Accountability
===================================================================
Turns an append-only log of workout completions into streaks, points,
levels and badges, classifies how a member is doing right now, and ranks
members against each other and their gym partner.

Package layout::

    spotter/
    ├── __main__.py        # CLI: replay, leaderboard, motivate
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level table + presentation constants
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (persistence boundary)
    │   └── seed.py        # Default settings + badge catalogue
    ├── engine/
    │   ├── events.py      # WorkoutEvent + normalizer
    │   ├── streaks.py     # Streak calculator
    │   ├── scoring.py     # Points, multipliers, levels
    │   ├── badges.py      # Badge threshold-crossing evaluator
    │   ├── classifier.py  # Behavior taxonomy → MessageRequest
    │   ├── comparison.py  # Leaderboard + head-to-head
    │   ├── messages.py    # Text generator client + fallback templates
    │   ├── celebrations.py # Bounded celebration queue
    │   ├── reminders.py   # Reminder schedules
    │   └── cache.py       # In-memory settings + badge cache
    └── services/
        ├── locks.py            # Per-user serialization
        ├── scoring_service.py  # Workout processing + replay
        ├── stats_service.py    # Snapshots, leaderboard, head-to-head
        └── motivation_service.py # Classification + message generation
"""

__version__ = "0.1.0"
