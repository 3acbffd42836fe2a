"""
tally.engine.progress — Completion Latch
=========================================

Pure decision logic for one progress submission.  No database I/O: the
progress service feeds in the current row state and applies the result
inside its transaction.

States per (member, objective)::

    ASSIGNED (count < target, not completed) ──► COMPLETED (terminal)

Once COMPLETED, no submission changes completion fields again, whatever
count it carries.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProgressDecision:
    """Outcome of applying ``new_count`` to a progress row.

    Parameters
    ----------
    new_count : The absolute count to store.
    delta : ``new_count - previous_count`` (negative for corrections).
    reached_target : ``new_count >= target_count``.
    completes : True only when this submission fires the latch, i.e. the
        row was not completed and the target is now reached.  Exactly the
        submissions with ``completes=True`` append to the points ledger.
    """

    new_count: int
    delta: int
    reached_target: bool
    completes: bool


def evaluate_progress(
    *,
    previous_count: int,
    already_completed: bool,
    new_count: int,
    target_count: int,
) -> ProgressDecision:
    """Decide what a submission of *new_count* does to a progress row."""
    reached = new_count >= target_count
    return ProgressDecision(
        new_count=new_count,
        delta=new_count - previous_count,
        reached_target=reached,
        completes=reached and not already_completed,
    )
