"""Initial ledger schema: participants, activity_log, snapshots, admin_log

Revision ID: 5c1e7a9b3d20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c1e7a9b3d20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "participants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("volunteer_hours", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("completed_events", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "badges", postgresql.JSONB(), nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("total_points >= 0", name="ck_participants_points_nonneg"),
        sa.CheckConstraint("volunteer_hours >= 0", name="ck_participants_hours_nonneg"),
        sa.CheckConstraint("completed_events >= 0", name="ck_participants_events_nonneg"),
        sa.CheckConstraint("streak >= 0", name="ck_participants_streak_nonneg"),
        sa.CheckConstraint("level >= 1", name="ck_participants_level_positive"),
    )
    op.create_index(
        "ix_participants_ranking", "participants",
        ["total_points", "last_activity", "id"],
    )
    op.create_index("ix_participants_last_activity", "participants", ["last_activity"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("event_id", sa.String(100), nullable=False),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("participants.id"), nullable=False,
        ),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("points_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hours_delta", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("stats_after", postgresql.JSONB(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", name="uq_activity_log_event_id"),
    )
    op.create_index("ix_activity_log_user_time", "activity_log", ["user_id", "occurred_at"])
    op.create_index("ix_activity_log_kind_time", "activity_log", ["kind", "occurred_at"])

    op.create_table(
        "leaderboard_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entries", postgresql.JSONB(), nullable=False),
        sa.UniqueConstraint("kind", "period_start", name="uq_snapshots_kind_period"),
    )
    op.create_index(
        "ix_snapshots_kind_captured", "leaderboard_snapshots", ["kind", "captured_at"],
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])


def downgrade() -> None:
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_index("ix_snapshots_kind_captured", table_name="leaderboard_snapshots")
    op.drop_table("leaderboard_snapshots")
    op.drop_index("ix_activity_log_kind_time", table_name="activity_log")
    op.drop_index("ix_activity_log_user_time", table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_index("ix_participants_last_activity", table_name="participants")
    op.drop_index("ix_participants_ranking", table_name="participants")
    op.drop_table("participants")
