"""
tally.services.engagement_service — Engagement Log
===================================================

Append-only log of volunteering / contribution actions.  Independent of
the points ledger: ``points_earned`` here is informational and never
changes a member's point total.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tally.database.models import UserEngagement
from tally.schemas import EngagementCreate, parse

logger = logging.getLogger(__name__)


def log_engagement(
    engine: Engine, data: EngagementCreate | Mapping[str, Any]
) -> UserEngagement:
    """Validate and append one engagement row."""
    payload = parse(EngagementCreate, data)
    row = UserEngagement(
        member_id=payload.member_id,
        activity_id=payload.activity_id,
        action_type=payload.action_type.value,
        hours_contributed=payload.hours_contributed,
        points_earned=payload.points_earned,
        impact_score=payload.impact_score,
        metadata_=payload.metadata or None,
    )
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        session.expunge(row)

    logger.debug(
        "Engagement %d logged for %s (%s, %.2fh)",
        row.id, row.member_id, row.action_type, row.hours_contributed,
    )
    return row


def get_user_engagements(engine: Engine, member_id: str) -> list[UserEngagement]:
    """All engagement rows for *member_id*, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(UserEngagement)
            .where(UserEngagement.member_id == member_id)
            .order_by(UserEngagement.created_at.desc(), UserEngagement.id.desc())
        ).all())
        session.expunge_all()
        return rows
