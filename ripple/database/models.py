"""
ripple.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- participants          — One stats row per participant (optimistic version)
- activity_log          — Append-only event journal, unique on event_id
- leaderboard_snapshots — Weekly/monthly top-N captures, unique per period
- admin_log             — Append-only audit trail of admin job triggers
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
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
    """Shared base for all Ripple ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SnapshotKind(enum.StrEnum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AdminActionType(enum.StrEnum):
    """Categories of admin actions recorded in admin_log."""
    STREAK_SWEEP = "STREAK_SWEEP"
    SNAPSHOT = "SNAPSHOT"
    RECOMPUTE = "RECOMPUTE"


# ---------------------------------------------------------------------------
# Participant — one row per registered participant
# ---------------------------------------------------------------------------
class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volunteer_hours: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal(0)
    )
    completed_events: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    # Optimistic concurrency: every UPDATE checks and bumps this column.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    activity_logs: Mapped[list[ActivityLog]] = relationship(back_populates="participant")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_participants_points_nonneg"),
        CheckConstraint("volunteer_hours >= 0", name="ck_participants_hours_nonneg"),
        CheckConstraint("completed_events >= 0", name="ck_participants_events_nonneg"),
        CheckConstraint("streak >= 0", name="ck_participants_streak_nonneg"),
        CheckConstraint("level >= 1", name="ck_participants_level_positive"),
        Index("ix_participants_ranking", "total_points", "last_activity", "id"),
        Index("ix_participants_last_activity", "last_activity"),
    )

    def __repr__(self) -> str:
        return (
            f"<Participant id={self.id!r} pts={self.total_points} "
            f"lvl={self.level} streak={self.streak}>"
        )


# ---------------------------------------------------------------------------
# ActivityLog — append-only event journal (idempotency key: event_id)
# ---------------------------------------------------------------------------
class ActivityLog(Base):
    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("participants.id"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
    points_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hours_delta: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal(0)
    )
    stats_after: Mapped[dict] = mapped_column(JSONB, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    participant: Mapped[Participant] = relationship(back_populates="activity_logs")

    __table_args__ = (
        UniqueConstraint("event_id", name="uq_activity_log_event_id"),
        Index("ix_activity_log_user_time", "user_id", "occurred_at"),
        Index("ix_activity_log_kind_time", "kind", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} user={self.user_id!r} kind={self.kind}>"


# ---------------------------------------------------------------------------
# LeaderboardSnapshot — immutable periodic top-N capture
# ---------------------------------------------------------------------------
class LeaderboardSnapshot(Base):
    __tablename__ = "leaderboard_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entries: Mapped[list[dict]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        UniqueConstraint("kind", "period_start", name="uq_snapshots_kind_period"),
        Index("ix_snapshots_kind_captured", "kind", "captured_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardSnapshot id={self.id} kind={self.kind} "
            f"period={self.period_start:%Y-%m-%d}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
