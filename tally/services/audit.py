"""
tally.services.audit — Catalog audit trail
===========================================

Objective-definition changes are journaled to ``admin_log`` in the same
transaction as the change, with JSON snapshots of the row before and after.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Engine, inspect, select
from sqlalchemy.orm import Session

from tally.database.models import AdminActionType, AdminLog


def snapshot(obj: Any) -> dict | None:
    """JSON-safe ``{column_name: value}`` view of a mapped row."""
    if obj is None:
        return None
    values = {}
    for attr in inspect(obj).mapper.column_attrs:
        value = getattr(obj, attr.key)
        values[attr.columns[0].name] = value.isoformat() if isinstance(value, datetime) else value
    return values


def record_change(
    session: Session,
    *,
    actor_id: str,
    action: AdminActionType,
    table: str,
    row_id: object,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> AdminLog:
    """Stage an ``admin_log`` row; the caller commits it with the change."""
    entry = AdminLog(
        actor_id=actor_id,
        action_type=AdminActionType(action).value,
        target_table=table,
        target_id=None if row_id is None else str(row_id),
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    )
    session.add(entry)
    return entry


def audit_trail(engine: Engine, table: str, row_id: object) -> list[AdminLog]:
    """Changes to one row, oldest first."""
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(AdminLog)
            .where(AdminLog.target_table == table, AdminLog.target_id == str(row_id))
            .order_by(AdminLog.timestamp.asc(), AdminLog.id.asc())
        ).all())
        session.expunge_all()
        return rows
