"""
tally.exceptions — Error taxonomy
==================================

Every service raises one of these instead of returning ``None`` or a
``(success, message)`` tuple, so collaborators can map them onto their own
transport (HTTP status, bot reply, CLI exit code).
"""

from __future__ import annotations


class TallyError(Exception):
    """Base exception for the engine."""


class ValidationError(TallyError):
    """Bad input; raised before any mutation."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Validation error for {field}: {message}")


class NotFound(TallyError):
    """A referenced objective, progress row or report does not exist."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class AlreadyAssigned(TallyError):
    """The member already has a progress row for this objective."""

    def __init__(self, member_id: str, objective_id: int):
        self.member_id = member_id
        self.objective_id = objective_id
        super().__init__(
            f"Objective {objective_id} is already assigned to member {member_id!r}"
        )


class ConcurrencyConflict(TallyError):
    """A progress update kept losing the race for the same row.

    The caller may retry; re-submitting the same count is safe.
    """

    def __init__(self, member_id: str, objective_id: int, attempts: int):
        self.member_id = member_id
        self.objective_id = objective_id
        self.attempts = attempts
        super().__init__(
            f"Progress for member {member_id!r} on objective {objective_id} "
            f"changed concurrently {attempts} times; giving up"
        )


class Unauthorized(TallyError):
    """The caller is unidentified or not allowed to perform the action."""

    def __init__(self, action: str, caller_id: str | None, scope: str | None = None):
        self.action = action
        self.caller_id = caller_id
        self.scope = scope
        target = f" on {scope!r}" if scope else ""
        super().__init__(f"Caller {caller_id!r} may not {action}{target}")
