"""
tally.services.ledger_service — Points Ledger
==============================================

Append-only journal of point-earning events.  The sum of a member's
entries is their canonical point total.

``member_points`` keeps a materialized copy of that sum for cheap profile
reads.  It is only ever changed by :func:`append_in_session`, in the same
transaction as the entry it accounts for, so the two cannot diverge on a
failed write.  :func:`reconcile_point_totals` re-derives every cached total
from the ledger and corrects drift (e.g. after manual SQL).
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tally.config import TallyConfig
from tally.database.engine import get_session
from tally.database.models import MemberPoints, PointsLedgerEntry, SourceType
from tally.engine.timeutil import to_utc, utcnow
from tally.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _source_type(value: SourceType | str) -> SourceType:
    try:
        return SourceType(value)
    except ValueError:
        raise ValidationError(
            "source_type", f"{value!r} is not one of {[s.value for s in SourceType]}"
        ) from None


def _bump_cached_total(session: Session, member_id: str, points: int) -> None:
    """``total += points`` for *member_id*, creating the row on first use."""
    stmt = (
        update(MemberPoints)
        .where(MemberPoints.member_id == member_id)
        .values(total=MemberPoints.total + points, updated_at=utcnow())
    )
    if session.execute(stmt).rowcount:
        return
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(MemberPoints(member_id=member_id, total=points))
    except IntegrityError:
        # Another transaction inserted the row first; add onto it.
        session.execute(stmt)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def append_in_session(
    session: Session,
    *,
    member_id: str,
    points: int,
    source_type: SourceType | str,
    source_id: str | None = None,
    description: str | None = None,
    occurred_at: datetime | None = None,
) -> PointsLedgerEntry:
    """Add a ledger entry and its cached-total update to *session*.

    Nothing is committed here; the caller owns the transaction.
    """
    if not member_id:
        raise ValidationError("member_id", "must not be empty")
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError("points", "must be an integer")
    kind = _source_type(source_type)

    entry = PointsLedgerEntry(
        member_id=member_id,
        points=points,
        source_type=kind.value,
        source_id=source_id,
        description=description,
        created_at=to_utc(occurred_at) if occurred_at else utcnow(),
    )
    session.add(entry)
    _bump_cached_total(session, member_id, points)
    return entry


def append_entry(
    engine: Engine,
    member_id: str,
    points: int,
    source_type: SourceType | str,
    source_id: str | None = None,
    description: str | None = None,
    occurred_at: datetime | None = None,
) -> PointsLedgerEntry:
    """Record a non-objective award: activity points, bonuses, manual adjustments.

    ``occurred_at`` back-dates the entry (imports, backfills); it defaults
    to now.
    """
    with Session(engine, expire_on_commit=False) as session:
        entry = append_in_session(
            session,
            member_id=member_id,
            points=points,
            source_type=source_type,
            source_id=source_id,
            description=description,
            occurred_at=occurred_at,
        )
        session.commit()
        session.refresh(entry)
        session.expunge(entry)

    logger.info(
        "Ledger: %+d points to %s (%s %s)",
        points, member_id, entry.source_type, source_id or "-",
    )
    return entry


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _bounded(stmt, start: datetime | None, end: datetime | None):
    if start is not None:
        stmt = stmt.where(PointsLedgerEntry.created_at >= to_utc(start))
    if end is not None:
        stmt = stmt.where(PointsLedgerEntry.created_at <= to_utc(end))
    return stmt


def query_entries(
    engine: Engine,
    member_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[PointsLedgerEntry]:
    """Entries for *member_id*, oldest first, optionally within ``[start, end]``."""
    stmt = _bounded(
        select(PointsLedgerEntry).where(PointsLedgerEntry.member_id == member_id),
        start, end,
    ).order_by(PointsLedgerEntry.created_at.asc(), PointsLedgerEntry.id.asc())

    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


def get_total(
    engine: Engine,
    member_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    """Sum of ``points`` over the (optionally bounded) entry set."""
    stmt = _bounded(
        select(func.coalesce(func.sum(PointsLedgerEntry.points), 0)).where(
            PointsLedgerEntry.member_id == member_id
        ),
        start, end,
    )
    with Session(engine) as session:
        return int(session.scalar(stmt) or 0)


def get_points_history(
    engine: Engine,
    member_id: str,
    limit: int | None = None,
    *,
    config: TallyConfig | None = None,
) -> list[PointsLedgerEntry]:
    """Most recent *limit* entries, newest first.

    *limit* defaults to ``config.history_limit`` (50).
    """
    if limit is None:
        limit = (config or TallyConfig()).history_limit
    if limit < 1:
        raise ValidationError("limit", "must be at least 1")
    stmt = (
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.member_id == member_id)
        .order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
        .limit(limit)
    )
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


def get_cached_total(engine: Engine, member_id: str) -> int:
    """Materialized total from ``member_points`` (0 for unknown members)."""
    with Session(engine) as session:
        row = session.get(MemberPoints, member_id)
        return row.total if row is not None else 0


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
def reconcile_point_totals(engine: Engine) -> dict:
    """Compare every cached total with its ledger sum and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        truth_rows = session.execute(
            select(
                PointsLedgerEntry.member_id,
                func.sum(PointsLedgerEntry.points).label("actual"),
            ).group_by(PointsLedgerEntry.member_id)
        ).all()
        truth_map: dict[str, int] = {row.member_id: int(row.actual) for row in truth_rows}

        cached_map: dict[str, MemberPoints] = {
            row.member_id: row for row in session.scalars(select(MemberPoints)).all()
        }

        for member_id in sorted(truth_map.keys() | cached_map.keys()):
            actual = truth_map.get(member_id, 0)
            cached = cached_map.get(member_id)
            stored = cached.total if cached is not None else 0
            if stored == actual:
                continue

            corrections.append({
                "member_id": member_id,
                "stored": stored,
                "actual": actual,
                "diff": actual - stored,
            })
            if cached is None:
                session.add(MemberPoints(member_id=member_id, total=actual))
            else:
                cached.total = actual

        checked = len(truth_map.keys() | cached_map.keys())

    if corrections:
        logger.warning(
            "Point reconciliation: corrected %d/%d totals: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Point reconciliation: all %d totals match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": utcnow().isoformat(),
    }
