"""
tally.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- objective_definitions      — Catalog of rewardable objectives
- member_objective_progress  — Per-(member, objective) progress with completion latch
- progress_events            — Append-only audit of every progress submission
- points_ledger              — Append-only point-earning events (source of truth)
- member_points              — Materialized point totals, updated with each append
- user_engagements           — Append-only engagement log (hours, impact score)
- impact_reports             — Immutable organization-level report snapshots
- admin_log                  — Append-only audit trail for catalog mutations

Member, activity and organization identifiers belong to external systems
and are stored as opaque strings.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Tally ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Difficulty(enum.StrEnum):
    BASIC = "Basic"
    MEDIUM = "Medium"
    HARD = "Hard"
    EXTREME = "Extreme"


class Privacy(enum.StrEnum):
    PUBLIC = "Public"
    PRIVATE = "Private"


class ObjectiveGroup(enum.StrEnum):
    """Top-level family an objective belongs to."""
    ATTENDANCE_CHECK = "AttendanceCheck"
    MODIFICATION = "Modification"
    INTERACTION = "Interaction"
    DECISION = "Decision"
    CONTRIBUTION = "Contribution"
    EXPLORATION = "Exploration"


class ObjectiveAction(enum.StrEnum):
    """The member action an objective counts."""
    CHECK_IN = "CheckIn"
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    ATTEND = "Attend"
    JOIN = "Join"
    VOTE_IN = "VoteIn"
    SEND = "Send"
    REPLY_TO = "ReplyTo"
    REACT_TO = "ReactTo"
    DISCOVER = "Discover"


class Feature(enum.StrEnum):
    """The product area in which the counted action happens."""
    EVENTS = "Events"
    MEETINGS = "Meetings"
    TRAININGS = "Trainings"
    TEAMS = "Teams"
    VOTES = "Votes"
    TASKS = "Tasks"
    PROJECTS = "Projects"
    STRATEGIES = "Strategies"
    SUBTASKS = "Subtasks"
    COMMENTS = "Comments"
    REPLIES = "Replies"
    EMOJIS = "Emojis"
    ACTIVITIES = "Activities"
    BOARD = "Board"
    CULTURE = "Culture"
    MINUTES = "Minutes"
    OBJECTIVES = "Objectives"
    MEMBERS = "Members"
    GUESTS = "Guests"
    PAST_PRESIDENT = "PastPresident"


class Audience(enum.StrEnum):
    """Member roles an objective is aimed at."""
    PRESIDENT = "President"
    VPS = "VPs"
    MEMBERS = "Members"
    NEW_MEMBERS = "NewMembers"
    ADVISORS = "Advisors"
    SECRETARY = "Secretary"
    COMMITTED_MEMBER = "CommittedMember"
    GUESTS = "Guests"


class SourceType(enum.StrEnum):
    """Where a points_ledger entry came from."""
    ACTIVITY = "activity"
    OBJECTIVE = "objective"
    BONUS = "bonus"
    MANUAL = "manual"


class EngagementAction(enum.StrEnum):
    EVENT_ATTENDANCE = "event_attendance"
    TASK_COMPLETED = "task_completed"
    INITIATIVE_LED = "initiative_led"
    GENERAL_CONTRIBUTION = "general_contribution"


class ReportType(enum.StrEnum):
    NGO_SUMMARY = "ngo_summary"
    PARTNER_AGGREGATION = "partner_aggregation"
    USER_IMPACT = "user_impact"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ---------------------------------------------------------------------------
# ObjectiveDefinition — the catalog
# ---------------------------------------------------------------------------
class ObjectiveDefinition(Base):
    __tablename__ = "objective_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    group_tag: Mapped[str | None] = mapped_column(String(30), default=None)
    action_type: Mapped[str | None] = mapped_column(String(30), default=None)
    feature_tag: Mapped[str | None] = mapped_column(String(30), default=None)
    target_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    difficulty: Mapped[str | None] = mapped_column(String(20), default=None)
    privacy: Mapped[str | None] = mapped_column(String(20), default=None)
    audience: Mapped[list | None] = mapped_column(JSONB, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_objective_definitions_active", "is_active"),
        CheckConstraint("target_count >= 1", name="ck_objective_target_positive"),
        CheckConstraint("points >= 0", name="ck_objective_points_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<ObjectiveDefinition id={self.id} title={self.title!r} "
            f"target={self.target_count} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# MemberObjectiveProgress — one row per (member, objective)
# ---------------------------------------------------------------------------
class MemberObjectiveProgress(Base):
    """Progress toward one objective for one member.

    ``objective_id`` deliberately carries no foreign key: deleting a
    definition leaves historical progress rows in place.  ``version`` is
    the optimistic-concurrency counter; a flush against a stale version
    raises :class:`sqlalchemy.orm.exc.StaleDataError`.
    """
    __tablename__ = "member_objective_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    objective_id: Mapped[int] = mapped_column(Integer, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("member_id", "objective_id", name="uq_progress_member_objective"),
        Index("ix_progress_member", "member_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<MemberObjectiveProgress member={self.member_id!r} "
            f"objective={self.objective_id} count={self.current_count} "
            f"completed={self.is_completed}>"
        )


# ---------------------------------------------------------------------------
# ProgressEvent — append-only audit of progress submissions
# ---------------------------------------------------------------------------
class ProgressEvent(Base):
    __tablename__ = "progress_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    objective_id: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_count: Mapped[int] = mapped_column(Integer, nullable=False)
    new_count: Mapped[int] = mapped_column(Integer, nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_progress_events_pair_time", "member_id", "objective_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProgressEvent member={self.member_id!r} objective={self.objective_id} "
            f"{self.previous_count}->{self.new_count}>"
        )


# ---------------------------------------------------------------------------
# PointsLedgerEntry — append-only journal, canonical point totals
# ---------------------------------------------------------------------------
class PointsLedgerEntry(Base):
    __tablename__ = "points_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(64), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_points_ledger_member_time", "member_id", "created_at"),
        Index("ix_points_ledger_source", "source_type", "source_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointsLedgerEntry id={self.id} member={self.member_id!r} "
            f"points={self.points:+d} source={self.source_type}>"
        )


# ---------------------------------------------------------------------------
# MemberPoints — materialized total, maintained with every ledger append
# ---------------------------------------------------------------------------
class MemberPoints(Base):
    """Denormalized point total per member.

    Updated in the same transaction as the ledger append that changes it.
    The ledger remains authoritative; see
    :func:`tally.services.ledger_service.reconcile_point_totals`.
    """
    __tablename__ = "member_points"

    member_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<MemberPoints member={self.member_id!r} total={self.total}>"


# ---------------------------------------------------------------------------
# UserEngagement — append-only engagement log
# ---------------------------------------------------------------------------
class UserEngagement(Base):
    __tablename__ = "user_engagements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_id: Mapped[str | None] = mapped_column(String(64), default=None)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    hours_contributed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impact_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_user_engagements_member_time", "member_id", "created_at"),
        Index("ix_user_engagements_time", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserEngagement id={self.id} member={self.member_id!r} "
            f"type={self.action_type}>"
        )


# ---------------------------------------------------------------------------
# ImpactReport — immutable aggregation snapshot
# ---------------------------------------------------------------------------
class ImpactReport(Base):
    __tablename__ = "impact_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str | None] = mapped_column(String(64), default=None)
    report_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    total_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_volunteers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activities_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metrics: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    suggestions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    generated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_impact_reports_org_time", "organization_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ImpactReport id={self.id} type={self.report_type} title={self.title!r}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
