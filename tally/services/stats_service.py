"""
tally.services.stats_service — Member Statistics
=================================================

Read-side entry points of the aggregation engine.  Fetches the relevant
rows and hands them to :mod:`tally.engine.aggregation`; never writes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Engine

from tally.engine.aggregation import (
    ImpactSummary,
    PointsStats,
    compute_points_stats,
    period_bounds,
    summarize_engagements,
)
from tally.engine.timeutil import utcnow
from tally.services import engagement_service, ledger_service


def compute_stats(
    engine: Engine, member_id: str, as_of: datetime | None = None
) -> PointsStats:
    """Year-to-date totals and week/month buckets as of *as_of* (default: now).

    Boundaries follow the timezone of *as_of*; a naive *as_of* is UTC.
    """
    as_of = as_of or utcnow()
    bounds = period_bounds(as_of)
    entries = ledger_service.query_entries(
        engine, member_id, start=bounds.year_start, end=bounds.as_of
    )
    return compute_points_stats(entries, bounds.as_of)


def get_user_impact_summary(engine: Engine, member_id: str) -> ImpactSummary:
    """Lifetime hours, points, impact score and action counts from the engagement log."""
    return summarize_engagements(engagement_service.get_user_engagements(engine, member_id))
