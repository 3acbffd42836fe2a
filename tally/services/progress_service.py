"""
tally.services.progress_service — Objective Progress Tracking
==============================================================

Per-(member, objective) state machine around the completion latch in
:mod:`tally.engine.progress`.

``record_progress`` runs one read-modify-write per attempt:
  1. Load the member's progress row; a completed row only takes the new
     count and an event, even if its definition was deleted since.
     Otherwise load the definition too (creating the row when the pair
     was never assigned)
  2. Decide via :func:`~tally.engine.progress.evaluate_progress`
  3. Store the new count and a ``progress_events`` audit row
  4. On a completion transition only: set completion fields and append
     ``+points`` to the ledger
  5. Commit — all of the above or none of it

The progress row carries a version counter.  When two writers race, the
loser's flush matches no row (``StaleDataError``) or collides on the
unique (member, objective) pair (``IntegrityError``); its whole attempt is
rolled back and re-run, and the re-run sees the winner's completed row and
writes nothing to the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tally.config import TallyConfig
from tally.database.models import (
    MemberObjectiveProgress,
    ObjectiveDefinition,
    ProgressEvent,
    SourceType,
)
from tally.engine.progress import evaluate_progress
from tally.engine.timeutil import utcnow
from tally.exceptions import AlreadyAssigned, ConcurrencyConflict, NotFound, ValidationError
from tally.permissions import PROGRESS_WRITE, Authorizer, require
from tally.services import ledger_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemberObjective:
    """An active definition and the member's progress on it, if any."""

    objective: ObjectiveDefinition
    progress: MemberObjectiveProgress | None


def _fetch_progress(
    session: Session, member_id: str, objective_id: int
) -> MemberObjectiveProgress | None:
    return session.scalar(
        select(MemberObjectiveProgress).where(
            MemberObjectiveProgress.member_id == member_id,
            MemberObjectiveProgress.objective_id == objective_id,
        )
    )


def _require_objective(session: Session, objective_id: int) -> ObjectiveDefinition:
    objective = session.get(ObjectiveDefinition, objective_id)
    if objective is None:
        raise NotFound("Objective", objective_id)
    return objective


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------
def assign_objective(
    engine: Engine, member_id: str, objective_id: int
) -> MemberObjectiveProgress:
    """Create the member's progress row at count 0."""
    if not member_id:
        raise ValidationError("member_id", "must not be empty")

    with Session(engine, expire_on_commit=False) as session:
        _require_objective(session, objective_id)
        if _fetch_progress(session, member_id, objective_id) is not None:
            raise AlreadyAssigned(member_id, objective_id)

        row = MemberObjectiveProgress(
            member_id=member_id,
            objective_id=objective_id,
            current_count=0,
            is_completed=False,
            points_awarded=0,
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Lost a race against a concurrent assignment of the same pair.
            raise AlreadyAssigned(member_id, objective_id) from None
        session.expunge(row)

    logger.info("Objective %d assigned to %s", objective_id, member_id)
    return row


def unassign_objective(engine: Engine, member_id: str, objective_id: int) -> None:
    """Remove the progress row.  Points already awarded stay in the ledger."""
    with Session(engine) as session:
        row = _fetch_progress(session, member_id, objective_id)
        if row is None:
            raise NotFound("Progress", (member_id, objective_id))
        session.delete(row)
        session.commit()

    logger.info("Objective %d unassigned from %s", objective_id, member_id)


# ---------------------------------------------------------------------------
# Progress updates
# ---------------------------------------------------------------------------
def _apply_progress(
    engine: Engine,
    member_id: str,
    objective_id: int,
    new_count: int,
    actor_id: str | None,
) -> MemberObjectiveProgress:
    """One read-modify-write attempt; see the module docstring."""
    with Session(engine, expire_on_commit=False) as session:
        row = _fetch_progress(session, member_id, objective_id)
        if row is not None and row.is_completed:
            # Latched: only the count and the audit row change, so a deleted
            # definition does not matter here.
            session.add(ProgressEvent(
                member_id=member_id,
                objective_id=objective_id,
                previous_count=row.current_count,
                new_count=new_count,
                delta=new_count - row.current_count,
                completed=False,
                actor_id=actor_id,
            ))
            row.current_count = new_count
            session.commit()
            session.refresh(row)
            session.expunge(row)
            return row

        objective = _require_objective(session, objective_id)
        if row is None:
            row = MemberObjectiveProgress(
                member_id=member_id,
                objective_id=objective_id,
                current_count=0,
                is_completed=False,
                points_awarded=0,
            )
            session.add(row)

        decision = evaluate_progress(
            previous_count=row.current_count,
            already_completed=row.is_completed,
            new_count=new_count,
            target_count=objective.target_count,
        )

        session.add(ProgressEvent(
            member_id=member_id,
            objective_id=objective_id,
            previous_count=row.current_count,
            new_count=new_count,
            delta=decision.delta,
            completed=decision.completes,
            actor_id=actor_id,
        ))
        row.current_count = decision.new_count

        if decision.completes:
            row.is_completed = True
            row.completed_at = utcnow()
            row.points_awarded = objective.points
            ledger_service.append_in_session(
                session,
                member_id=member_id,
                points=objective.points,
                source_type=SourceType.OBJECTIVE,
                source_id=str(objective.id),
                description=f"Completed: {objective.title}",
            )

        session.commit()
        session.refresh(row)
        session.expunge(row)

    if decision.completes:
        logger.info(
            "Objective %d completed by %s (+%d points)",
            objective_id, member_id, row.points_awarded,
        )
    return row


def record_progress(
    engine: Engine,
    member_id: str,
    objective_id: int,
    new_count: int,
    *,
    actor_id: str | None = None,
    authorizer: Authorizer | None = None,
    max_retries: int | None = None,
    config: TallyConfig | None = None,
) -> MemberObjectiveProgress:
    """Set the member's absolute progress on an objective.

    The count may go down (corrections).  Reaching ``target_count`` for the
    first time completes the objective and awards its points exactly once;
    any later call keeps the completion fields as they are and never fails.

    When *actor_id* is given and differs from *member_id*, *authorizer* must
    allow ``progress:write`` on the member or
    :class:`~tally.exceptions.Unauthorized` is raised.

    Raises :class:`~tally.exceptions.ConcurrencyConflict` after
    *max_retries* lost races (default: ``config.progress_max_retries``).
    """
    if not member_id:
        raise ValidationError("member_id", "must not be empty")
    if isinstance(new_count, bool) or not isinstance(new_count, int):
        raise ValidationError("new_count", "must be an integer")
    if new_count < 0:
        raise ValidationError("new_count", "must not be negative")
    if actor_id is not None and actor_id != member_id:
        require(actor_id, PROGRESS_WRITE, member_id, authorizer)

    if max_retries is None:
        max_retries = (config or TallyConfig()).progress_max_retries
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return _apply_progress(engine, member_id, objective_id, new_count, actor_id)
        except (StaleDataError, IntegrityError) as exc:
            logger.info(
                "Progress race on member=%s objective=%d (attempt %d/%d): %s",
                member_id, objective_id, attempt, attempts, type(exc).__name__,
            )
    raise ConcurrencyConflict(member_id, objective_id, attempts)


def increment_progress(
    engine: Engine,
    member_id: str,
    objective_id: int,
    delta: int = 1,
    *,
    actor_id: str | None = None,
    authorizer: Authorizer | None = None,
    max_retries: int | None = None,
    config: TallyConfig | None = None,
) -> MemberObjectiveProgress:
    """Add *delta* to the current count (floored at 0), then record it.

    The read of the current count and the write are separate transactions;
    a concurrent increment can be lost, but never a completion or an award.
    """
    with Session(engine) as session:
        row = _fetch_progress(session, member_id, objective_id)
        current = row.current_count if row is not None else 0
    return record_progress(
        engine,
        member_id,
        objective_id,
        max(0, current + delta),
        actor_id=actor_id,
        authorizer=authorizer,
        max_retries=max_retries,
        config=config,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_progress(engine: Engine, member_id: str, objective_id: int) -> MemberObjectiveProgress:
    with Session(engine, expire_on_commit=False) as session:
        row = _fetch_progress(session, member_id, objective_id)
        if row is None:
            raise NotFound("Progress", (member_id, objective_id))
        session.expunge(row)
        return row


def list_member_objectives(engine: Engine, member_id: str) -> list[MemberObjective]:
    """Every active definition paired with the member's progress (or ``None``)."""
    with Session(engine, expire_on_commit=False) as session:
        objectives = session.scalars(
            select(ObjectiveDefinition)
            .where(ObjectiveDefinition.is_active.is_(True))
            .order_by(ObjectiveDefinition.created_at.desc(), ObjectiveDefinition.id.desc())
        ).all()
        progress_rows = session.scalars(
            select(MemberObjectiveProgress).where(
                MemberObjectiveProgress.member_id == member_id
            )
        ).all()
        by_objective = {row.objective_id: row for row in progress_rows}
        session.expunge_all()

    return [MemberObjective(obj, by_objective.get(obj.id)) for obj in objectives]


def get_progress_events(
    engine: Engine, member_id: str, objective_id: int
) -> list[ProgressEvent]:
    """Audit trail of submissions for one pair, oldest first."""
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(ProgressEvent)
            .where(
                ProgressEvent.member_id == member_id,
                ProgressEvent.objective_id == objective_id,
            )
            .order_by(ProgressEvent.created_at.asc(), ProgressEvent.id.asc())
        ).all())
        session.expunge_all()
        return rows
