"""
tests/test_database.py — Engine, Session Helper & Seeder Tests
================================================================
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotter.database import seed
from spotter.database.engine import create_db_engine, get_session, init_db, run_db
from spotter.database.models import BadgeDefinition, PointsLedger, Setting


def _count(engine, model) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model))


class TestCreateEngine:
    def test_missing_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            create_db_engine()


class TestSeeding:
    def test_init_db_seeds_settings_and_badges(self, db_engine):
        init_db(db_engine)
        assert _count(db_engine, Setting) == len(seed.DEFAULT_SETTINGS)
        assert _count(db_engine, BadgeDefinition) == 12

    def test_seeding_is_idempotent(self, db_engine):
        init_db(db_engine)
        init_db(db_engine)
        assert _count(db_engine, Setting) == len(seed.DEFAULT_SETTINGS)
        assert seed.seed_default_badges(db_engine) == 0

    def test_operator_edits_survive_reseed(self, db_engine):
        init_db(db_engine)
        with Session(db_engine) as session:
            session.get(Setting, "scoring.base_points").value_json = "42"
            session.commit()
        seed.seed_default_settings(db_engine)
        with Session(db_engine) as session:
            assert session.get(Setting, "scoring.base_points").value_json == "42"

    def test_invalid_badges_skipped(self, db_engine, tmp_path, monkeypatch):
        (tmp_path / "badges.yaml").write_text(
            "badges:\n"
            "  - key: good\n"
            "    name: Good\n"
            "    criteria: {kind: level, threshold: 3}\n"
            "  - key: bad_kind\n"
            "    name: Bad\n"
            "    criteria: {kind: push_ups, threshold: 3}\n"
            "  - key: bad_rarity\n"
            "    name: Bad\n"
            "    rarity: mythic\n"
            "    criteria: {kind: level, threshold: 3}\n",
            encoding="utf-8",
        )
        monkeypatch.setattr(seed, "_SEEDS_DIR", tmp_path)
        assert seed.seed_default_badges(db_engine) == 1

    def test_missing_seed_file(self, db_engine, tmp_path, monkeypatch):
        monkeypatch.setattr(seed, "_SEEDS_DIR", tmp_path)
        assert seed.seed_default_badges(db_engine) == 0


class TestSessionHelper:
    def test_commits(self, db_engine):
        with get_session(db_engine) as session:
            session.add(Setting(key="x.y", value_json="1"))
        assert _count(db_engine, Setting) == 1

    def test_rolls_back_and_reraises(self, db_engine):
        with pytest.raises(ValueError):
            with get_session(db_engine) as session:
                session.add(Setting(key="x.y", value_json="1"))
                session.flush()
                raise ValueError("boom")
        assert _count(db_engine, Setting) == 0

    def test_ledger_event_id_unique(self, db_engine, make_user):
        make_user(1)
        with pytest.raises(IntegrityError):
            with get_session(db_engine) as session:
                for _ in range(2):
                    session.add(PointsLedger(
                        user_id=1, event_id="w1", amount=10, workout_day=date(2024, 3, 1),
                    ))
                session.flush()


class TestRunDb:
    def test_runs_in_thread(self, db_engine):
        init_db(db_engine)
        result = asyncio.run(run_db(_count, db_engine, Setting))
        assert result == len(seed.DEFAULT_SETTINGS)
