"""
tests/test_cache.py — ConfigCache Unit Tests
==============================================

Tests notification routing (without a real PG connection), typed setting
accessors, and badge catalogue loading against SQLite.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from spotter.database.engine import init_db
from spotter.database.models import BadgeDefinition, CriteriaKind, Setting
from spotter.engine.cache import ConfigCache


class TestNotifyRouting:
    """Test that table-change notifications route to the correct reload method."""

    @pytest.fixture
    def cache(self):
        """Build a ConfigCache with a dummy engine (no DB needed)."""
        return ConfigCache(MagicMock())

    @pytest.mark.parametrize(
        "table_name, expected_method",
        [
            ("settings", "_load_settings"),
            ("badge_definitions", "_load_badges"),
            ("  Settings ", "_load_settings"),
        ],
    )
    def test_notify_routes_to_correct_reload(self, cache, table_name, expected_method):
        with patch.object(cache, expected_method) as mock_method:
            cache.handle_notify(table_name)
            mock_method.assert_called_once()

    def test_unknown_notify_ignored(self, cache):
        with (
            patch.object(cache, "_load_settings") as mock_settings,
            patch.object(cache, "_load_badges") as mock_badges,
        ):
            cache.handle_notify("workouts")
            mock_settings.assert_not_called()
            mock_badges.assert_not_called()


class TestLoading:
    @pytest.fixture
    def cache(self, db_engine):
        init_db(db_engine)
        c = ConfigCache(db_engine)
        c.load_all()
        return c

    def test_seeded_settings(self, cache):
        assert cache.get_int("scoring.base_points") == 10
        assert cache.get_setting("scoring.multiplier_tiers") == [[3, 1.25], [7, 1.5], [14, 2.0]]

    def test_typed_accessors_fall_back(self, cache):
        assert cache.get_int("missing.key", 7) == 7
        assert cache.get_float("missing.key", 1.5) == 1.5
        assert cache.get_bool("missing.key", True) is True
        assert cache.get_setting("missing.key") is None

    def test_badges_ordered_by_threshold(self, cache):
        badges = cache.get_badges()
        assert badges
        thresholds = [b.criteria.threshold for b in badges]
        assert thresholds == sorted(thresholds)
        assert all(isinstance(b.criteria.kind, CriteriaKind) for b in badges)

    def test_inactive_and_unknown_badges_skipped(self, cache, db_engine):
        with Session(db_engine) as session:
            session.add(BadgeDefinition(
                key="mystery", name="Mystery", criteria_kind="steps_walked", threshold=5,
            ))
            session.add(BadgeDefinition(
                key="retired", name="Retired", criteria_kind="level", threshold=2, active=False,
            ))
            session.commit()
        cache.handle_notify("badge_definitions")
        keys = {b.key for b in cache.get_badges()}
        assert "mystery" not in keys
        assert "retired" not in keys
        assert "first_rep" in keys

    def test_settings_reload(self, cache, db_engine):
        with Session(db_engine) as session:
            session.get(Setting, "scoring.base_points").value_json = json.dumps(25)
            session.commit()
        assert cache.get_int("scoring.base_points") == 10
        cache.handle_notify("settings")
        assert cache.get_int("scoring.base_points") == 25

    def test_non_json_value_kept_raw(self, cache, db_engine):
        with Session(db_engine) as session:
            session.add(Setting(key="custom.raw", value_json="not json", category="custom"))
            session.commit()
        cache.handle_notify("settings")
        assert cache.get_setting("custom.raw") == "not json"
        assert cache.get_int("custom.raw", 3) == 3
