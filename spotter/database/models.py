"""
spotter.database.models — SQLAlchemy 2.0 Data Models
=====================================================

The persistence boundary of the scoring engine.

Tables owned by collaborators (the engine only reads them):
- users              — Member profiles (timezone, reminder preference,
                       account creation time)
- workouts           — Append-only workout completion log
- pairings           — Gym-partner pairings

Derived tables (caches of a pure function of the log — always replayable):
- streaks            — Current / longest streak per member
- points_ledger      — Append-only points journal, one entry per workout
- user_game_stats    — Points totals, level, snapshot for badge transitions
- user_badges        — Earned badges, unique per (member, badge)

Configuration:
- badge_definitions  — Badge catalogue with typed threshold criteria
- settings           — Gameplay tuning key-value store
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Spotter ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class CriteriaKind(enum.StrEnum):
    """The derived scalar a badge threshold is measured against."""
    CURRENT_STREAK = "current_streak"
    LONGEST_STREAK = "longest_streak"
    TOTAL_WORKOUTS = "total_workouts"
    TOTAL_POINTS = "total_points"
    LEVEL = "level"


class Rarity(enum.StrEnum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class PairingStatus(enum.StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class LedgerReason(enum.StrEnum):
    """Why a ledger entry was written."""
    WORKOUT = "workout"
    PARTNER_WORKOUT = "partner_workout"


# ---------------------------------------------------------------------------
# Users — one row per member (owned by the auth collaborator)
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    # {"enabled", "time", "days"} or {"kind", "time", "days"}; see engine.reminders
    reminder_prefs: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    workouts: Mapped[list[Workout]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    game_stats: Mapped[UserGameStats | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r} tz={self.timezone!r}>"


# ---------------------------------------------------------------------------
# Pairings — gym partners (owned by the pairing collaborator)
# ---------------------------------------------------------------------------
class Pairing(Base):
    __tablename__ = "pairings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user1_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user2_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PairingStatus.PENDING.value
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_pairings_user1_status", "user1_id", "status"),
        Index("ix_pairings_user2_status", "user2_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Pairing id={self.id} {self.user1_id}<->{self.user2_id} {self.status}>"


# ---------------------------------------------------------------------------
# Workouts — append-only completion log (written by the ingest collaborator)
# ---------------------------------------------------------------------------
class Workout(Base):
    __tablename__ = "workouts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pairing_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("pairings.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="workouts")

    __table_args__ = (
        Index("ix_workouts_user_completed", "user_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<Workout id={self.id!r} user={self.user_id} at={self.completed_at}>"


# ---------------------------------------------------------------------------
# Streak — derived, recomputed from the workout log
# ---------------------------------------------------------------------------
class Streak(Base):
    __tablename__ = "streaks"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_workout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<Streak user={self.user_id} current={self.current_streak} "
            f"longest={self.longest_streak}>"
        )


# ---------------------------------------------------------------------------
# PointsLedger — append-only points journal
# ---------------------------------------------------------------------------
class PointsLedger(Base):
    __tablename__ = "points_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    reason: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LedgerReason.WORKOUT.value
    )
    workout_day: Mapped[date] = mapped_column(Date, nullable=False)
    breakdown: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # One ledger entry per workout.
        UniqueConstraint("event_id", name="uq_points_ledger_event"),
        Index("ix_points_ledger_user_day", "user_id", "workout_day"),
    )

    def __repr__(self) -> str:
        return f"<PointsLedger event={self.event_id!r} user={self.user_id} amount={self.amount}>"


# ---------------------------------------------------------------------------
# UserGameStats — derived totals + the snapshot badges are evaluated against
# ---------------------------------------------------------------------------
class UserGameStats(Base):
    """Derived totals as of the last write (a scored workout or a replay).

    ``weekly_points`` and ``monthly_points`` are trailing windows ending on
    the member-local day of that write; the leaderboard recomputes the same
    member-local windows for its own reference instant.
    """

    __tablename__ = "user_game_stats"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, default=0)
    monthly_points: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    consistency_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    total_workouts: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="game_stats")

    __table_args__ = (
        Index("ix_user_game_stats_points", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<UserGameStats user={self.user_id} pts={self.total_points} lvl={self.level}>"


# ---------------------------------------------------------------------------
# BadgeDefinition — badge catalogue with typed threshold criteria
# ---------------------------------------------------------------------------
class BadgeDefinition(Base):
    __tablename__ = "badge_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(16), default=None)
    rarity: Mapped[str] = mapped_column(String(20), nullable=False, default=Rarity.COMMON.value)
    criteria_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    earned_by: Mapped[list[UserBadge]] = relationship(back_populates="badge")

    def __repr__(self) -> str:
        return f"<BadgeDefinition id={self.id} key={self.key!r}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges (never revoked, never duplicated)
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badge_definitions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badges")
    badge: Mapped[BadgeDefinition] = relationship(back_populates="earned_by")

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# Setting — key-value gameplay tuning store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Every gameplay tuning knob (base points, multiplier tiers, level table,
    classifier thresholds) lives here so operators can adjust values
    without redeploying.  Values are stored as JSON strings; typed accessors
    live in :class:`~spotter.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
