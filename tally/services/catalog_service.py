"""
tally.services.catalog_service — Objective Catalog
===================================================

Administrator-facing CRUD for objective definitions.  Every write follows
the pattern:
  1. Validate the payload (nothing is touched on failure)
  2. Read the "before" snapshot
  3. Apply the change
  4. Write admin_log with before/after snapshots
  5. Commit

Deleting a definition never cascades: progress rows and ledger entries
that reference it remain as historical records.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tally.database.models import AdminActionType, AdminLog, ObjectiveDefinition
from tally.engine.timeutil import to_utc
from tally.exceptions import NotFound
from tally.schemas import ObjectiveCreate, ObjectiveUpdate, parse
from tally.services.audit import audit_trail, record_change, snapshot

logger = logging.getLogger(__name__)

TABLE = "objective_definitions"


def default_title(data: ObjectiveCreate) -> str:
    """Readable title for definitions created without one."""
    parts = [str(p) for p in (data.action_type, data.feature_tag) if p]
    label = " ".join(parts) or "Objective"
    title = f"{label} x{data.target_count} ({data.points} pts)"
    if data.difficulty:
        title += f" [{data.difficulty}]"
    return title


def _column_values(data: ObjectiveCreate) -> dict[str, Any]:
    title = (data.title or "").strip() or default_title(data)
    return {
        "title": title,
        "description": data.description,
        "group_tag": data.group_tag.value if data.group_tag else None,
        "action_type": data.action_type.value if data.action_type else None,
        "feature_tag": data.feature_tag.value if data.feature_tag else None,
        "target_count": data.target_count,
        "points": data.points,
        "difficulty": data.difficulty.value if data.difficulty else None,
        "privacy": data.privacy.value if data.privacy else None,
        "audience": [a.value for a in data.audience],
        "is_active": data.is_active,
        "starts_at": to_utc(data.starts_at) if data.starts_at else None,
        "ends_at": to_utc(data.ends_at) if data.ends_at else None,
    }


def _editable_values(obj: ObjectiveDefinition) -> dict[str, Any]:
    """Current definition in ObjectiveCreate shape, for re-validation."""
    return {
        "title": obj.title,
        "description": obj.description,
        "group_tag": obj.group_tag,
        "action_type": obj.action_type,
        "feature_tag": obj.feature_tag,
        "target_count": obj.target_count,
        "points": obj.points,
        "difficulty": obj.difficulty,
        "privacy": obj.privacy,
        "audience": list(obj.audience or []),
        "is_active": obj.is_active,
        "starts_at": obj.starts_at,
        "ends_at": obj.ends_at,
    }


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def create_objective(
    engine: Engine,
    data: ObjectiveCreate | Mapping[str, Any],
    *,
    actor_id: str,
) -> ObjectiveDefinition:
    """Validate and persist a new definition.

    Raises :class:`~tally.exceptions.ValidationError` when ``target_count < 1``,
    ``points < 0``, enum values are unknown, the group/action/feature
    combination is not in the taxonomy, or the validity window is inverted.
    """
    payload = parse(ObjectiveCreate, data)
    row = ObjectiveDefinition(**_column_values(payload))

    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.flush()
        record_change(
            session,
            actor_id=actor_id,
            action=AdminActionType.CREATE,
            table=TABLE,
            row_id=row.id,
            before=None,
            after=snapshot(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)

    logger.info("Objective %d created by %s: %r", row.id, actor_id, row.title)
    return row


def update_objective(
    engine: Engine,
    objective_id: int,
    changes: ObjectiveUpdate | Mapping[str, Any],
    *,
    actor_id: str,
) -> ObjectiveDefinition:
    """Apply a partial update; the merged definition is validated as a whole."""
    patch = parse(ObjectiveUpdate, changes).model_dump(exclude_unset=True)

    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(ObjectiveDefinition, objective_id)
        if obj is None:
            raise NotFound("Objective", objective_id)

        merged = parse(ObjectiveCreate, {**_editable_values(obj), **patch})
        before = snapshot(obj)
        for key, value in _column_values(merged).items():
            setattr(obj, key, value)
        session.flush()

        record_change(
            session,
            actor_id=actor_id,
            action=AdminActionType.UPDATE,
            table=TABLE,
            row_id=obj.id,
            before=before,
            after=snapshot(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)

    logger.info("Objective %d updated by %s (%s)", objective_id, actor_id, sorted(patch))
    return obj


def delete_objective(engine: Engine, objective_id: int, *, actor_id: str) -> None:
    """Permanently remove a definition.  Progress and ledger rows survive."""
    with Session(engine) as session:
        obj = session.get(ObjectiveDefinition, objective_id)
        if obj is None:
            raise NotFound("Objective", objective_id)
        record_change(
            session,
            actor_id=actor_id,
            action=AdminActionType.DELETE,
            table=TABLE,
            row_id=obj.id,
            before=snapshot(obj),
            after=None,
        )
        session.delete(obj)
        session.commit()

    logger.info("Objective %d deleted by %s", objective_id, actor_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_objective(engine: Engine, objective_id: int) -> ObjectiveDefinition:
    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(ObjectiveDefinition, objective_id)
        if obj is None:
            raise NotFound("Objective", objective_id)
        session.expunge(obj)
        return obj


def list_objectives(engine: Engine, active_only: bool = True) -> list[ObjectiveDefinition]:
    """Definitions, newest first."""
    stmt = select(ObjectiveDefinition).order_by(
        ObjectiveDefinition.created_at.desc(), ObjectiveDefinition.id.desc()
    )
    if active_only:
        stmt = stmt.where(ObjectiveDefinition.is_active.is_(True))

    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


def objective_history(engine: Engine, objective_id: int) -> list[AdminLog]:
    """Audit trail of one definition, oldest first (survives deletion)."""
    return audit_trail(engine, TABLE, objective_id)
