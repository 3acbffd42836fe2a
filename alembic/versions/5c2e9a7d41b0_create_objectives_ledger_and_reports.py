"""Create objective catalog, progress, ledger, engagement and report tables

Revision ID: 5c2e9a7d41b0
Revises:
Create Date: 2026-10-19 09:12:31.118402

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e9a7d41b0'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=nullable, server_default=sa.func.now()
    )


def upgrade() -> None:
    # --- objective_definitions ---
    op.create_table(
        "objective_definitions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("group_tag", sa.String(30), nullable=True),
        sa.Column("action_type", sa.String(30), nullable=True),
        sa.Column("feature_tag", sa.String(30), nullable=True),
        sa.Column("target_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("difficulty", sa.String(20), nullable=True),
        sa.Column("privacy", sa.String(20), nullable=True),
        sa.Column("audience", postgresql.JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=True, server_default=sa.true()),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("target_count >= 1", name="ck_objective_target_positive"),
        sa.CheckConstraint("points >= 0", name="ck_objective_points_non_negative"),
    )
    op.create_index(
        "ix_objective_definitions_active", "objective_definitions", ["is_active"]
    )

    # --- member_objective_progress (no FK: survives definition deletion) ---
    op.create_table(
        "member_objective_progress",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("objective_id", sa.Integer, nullable=False),
        sa.Column("current_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("points_awarded", sa.Integer, nullable=False, server_default="0"),
        _timestamp("assigned_at"),
        _timestamp("updated_at"),
        sa.Column("version", sa.Integer, nullable=False),
        sa.UniqueConstraint(
            "member_id", "objective_id", name="uq_progress_member_objective"
        ),
    )
    op.create_index("ix_progress_member", "member_objective_progress", ["member_id"])

    # --- progress_events (append-only audit) ---
    op.create_table(
        "progress_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("objective_id", sa.Integer, nullable=False),
        sa.Column("previous_count", sa.Integer, nullable=False),
        sa.Column("new_count", sa.Integer, nullable=False),
        sa.Column("delta", sa.Integer, nullable=False),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("actor_id", sa.String(64), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_progress_events_pair_time", "progress_events",
        ["member_id", "objective_id", "created_at"],
    )

    # --- points_ledger (append-only) ---
    op.create_table(
        "points_ledger",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        _timestamp("created_at", nullable=False),
    )
    op.create_index(
        "ix_points_ledger_member_time", "points_ledger", ["member_id", "created_at"]
    )
    op.create_index(
        "ix_points_ledger_source", "points_ledger", ["source_type", "source_id"]
    )

    # --- member_points (materialized totals) ---
    op.create_table(
        "member_points",
        sa.Column("member_id", sa.String(64), primary_key=True),
        sa.Column("total", sa.Integer, nullable=False, server_default="0"),
        _timestamp("updated_at"),
    )

    # --- user_engagements (append-only) ---
    op.create_table(
        "user_engagements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("activity_id", sa.String(64), nullable=True),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("hours_contributed", sa.Float, nullable=False, server_default="0"),
        sa.Column("points_earned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("impact_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        _timestamp("created_at", nullable=False),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_user_engagements_member_time", "user_engagements", ["member_id", "created_at"]
    )
    op.create_index("ix_user_engagements_time", "user_engagements", ["created_at"])

    # --- impact_reports ---
    op.create_table(
        "impact_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.String(64), nullable=True),
        sa.Column("report_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_hours", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_volunteers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("activities_completed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("metrics", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("suggestions", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("generated_by", sa.String(64), nullable=False),
        _timestamp("created_at", nullable=False),
    )
    op.create_index(
        "ix_impact_reports_org_time", "impact_reports", ["organization_id", "created_at"]
    )

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _timestamp("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_index("ix_impact_reports_org_time", table_name="impact_reports")
    op.drop_table("impact_reports")
    op.drop_index("ix_user_engagements_time", table_name="user_engagements")
    op.drop_index("ix_user_engagements_member_time", table_name="user_engagements")
    op.drop_table("user_engagements")
    op.drop_table("member_points")
    op.drop_index("ix_points_ledger_source", table_name="points_ledger")
    op.drop_index("ix_points_ledger_member_time", table_name="points_ledger")
    op.drop_table("points_ledger")
    op.drop_index("ix_progress_events_pair_time", table_name="progress_events")
    op.drop_table("progress_events")
    op.drop_index("ix_progress_member", table_name="member_objective_progress")
    op.drop_table("member_objective_progress")
    op.drop_index("ix_objective_definitions_active", table_name="objective_definitions")
    op.drop_table("objective_definitions")
