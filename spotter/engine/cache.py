"""
spotter.engine.cache — In-Memory Config Cache
===============================================

Caches gameplay tuning (``settings``) and the active badge catalogue
(``badge_definitions``) in memory so the pure engine functions never touch
the database.

Invalidation is push-based: whatever transport the caller uses for
table-change notifications (PG NOTIFY, a realtime channel, a cron tick)
feeds the changed table name into :meth:`ConfigCache.handle_notify`.  The
cache itself registers no callbacks and starts no threads.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from spotter.database.models import BadgeDefinition, CriteriaKind, Setting
from spotter.engine.badges import Badge, BadgeCriteria

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache for settings and the badge catalogue.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        base = cache.get_int("scoring.base_points", 10)
        badges = cache.get_badges()

        # later, when the transport reports a change:
        cache.handle_notify("badge_definitions")
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()

        # key → parsed JSON value
        self._settings: dict[str, Any] = {}
        # active badges, ordered by threshold then key
        self._badges: list[Badge] = []

    # -------------------------------------------------------------------
    # Cache loading (synchronous — called via run_db or directly)
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load all config caches from DB. Call on startup."""
        self._load_settings()
        self._load_badges()
        logger.info(
            "ConfigCache loaded: %d settings, %d active badges",
            len(self._settings),
            len(self._badges),
        )

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    def _load_badges(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(BadgeDefinition)
                .where(BadgeDefinition.active.is_(True))
                .order_by(BadgeDefinition.threshold, BadgeDefinition.key)
            ).all()
            badges: list[Badge] = []
            for row in rows:
                try:
                    kind = CriteriaKind(row.criteria_kind)
                except ValueError:
                    logger.warning(
                        "Badge %r has unknown criteria kind %r — ignoring",
                        row.key, row.criteria_kind,
                    )
                    continue
                badges.append(Badge(
                    id=row.id,
                    key=row.key,
                    name=row.name,
                    rarity=row.rarity,
                    criteria=BadgeCriteria(kind=kind, threshold=row.threshold),
                    icon=row.icon,
                ))

        with self._lock:
            self._badges = badges

    # -------------------------------------------------------------------
    # Cache reads (thread-safe)
    # -------------------------------------------------------------------
    def get_badges(self) -> list[Badge]:
        with self._lock:
            return list(self._badges)

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def handle_notify(self, table_name: str) -> None:
        """Reload the relevant cache partition for a changed table."""
        table_name = table_name.strip().lower()
        logger.info("Config cache invalidation for table: %s", table_name)

        if table_name == "settings":
            self._load_settings()
        elif table_name == "badge_definitions":
            self._load_badges()
        else:
            logger.warning("Unknown table in notification: %s — ignoring", table_name)
