"""
tally.permissions — Delegated authorization hooks
==================================================

The engine never authenticates anyone.  Collaborators identify the caller
and pass an *authorizer*: a callable ``(caller_id, action, scope) -> bool``
deciding whether that caller may perform *action* on *scope* (a member id
for progress writes, an organization id or ``None`` for reports).
"""

from __future__ import annotations

from collections.abc import Callable

from tally.exceptions import Unauthorized

Authorizer = Callable[[str, str, str | None], bool]

PROGRESS_WRITE = "progress:write"
REPORT_GENERATE = "report:generate"


def allow_all(caller_id: str, action: str, scope: str | None) -> bool:
    """Default authorizer: any identified caller may act."""
    return True


def require(
    caller_id: str | None,
    action: str,
    scope: str | None = None,
    authorizer: Authorizer | None = None,
) -> str:
    """Return *caller_id* or raise :class:`Unauthorized`.

    An empty caller identity is always refused, whatever the authorizer.
    """
    if not caller_id:
        raise Unauthorized(action, caller_id, scope)
    check = authorizer or allow_all
    if not check(caller_id, action, scope):
        raise Unauthorized(action, caller_id, scope)
    return caller_id
