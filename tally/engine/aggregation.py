"""
tally.engine.aggregation — Points Statistics & Engagement Summaries
====================================================================

Pure read-side calculations over rows already fetched by the services.
Inputs are duck-typed: anything with the ORM attribute names works
(``created_at``/``points`` for ledger entries; ``member_id``,
``hours_contributed``, ``points_earned``, ``impact_score``, ``action_type``
for engagements).

Period boundaries are computed in the timezone of ``as_of``; naive
timestamps are treated as UTC.

Week buckets use the legacy formula::

    week = ceil((days_since_jan1 + weekday_of_jan1 + 1) / 7)

where ``days_since_jan1`` is fractional and weekdays count Sunday as 0.
It is *not* ISO-8601 numbering (a Saturday afternoon in the first week
already lands in ``W2``), but downstream charts are keyed on it, so it is
kept exactly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from tally.constants import MONTH_LABELS
from tally.engine.timeutil import in_zone, to_utc

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PeriodBounds:
    """Start instants of the week, month and year containing ``as_of``."""

    as_of: datetime
    week_start: datetime
    month_start: datetime
    year_start: datetime


@dataclass
class PointsStats:
    """Year-to-date point statistics for one member.

    ``total`` covers the same year-scoped entry set as ``this_year``.
    ``weekly`` and ``monthly`` preserve chronological insertion order.
    """

    total: int = 0
    this_week: int = 0
    this_month: int = 0
    this_year: int = 0
    weekly: dict[str, int] = field(default_factory=dict)
    monthly: dict[str, int] = field(default_factory=dict)


@dataclass
class ImpactSummary:
    """Lifetime engagement totals for one member.

    ``actions_count`` is the number of log entries, malformed ones included;
    the sums and ``by_type`` cover well-formed entries only.
    """

    total_hours: float = 0.0
    total_points: int = 0
    total_impact_score: float = 0.0
    actions_count: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    skipped: int = 0


# ---------------------------------------------------------------------------
# Period helpers
# ---------------------------------------------------------------------------
def period_bounds(as_of: datetime) -> PeriodBounds:
    """Sunday-aligned week start, first of month and Jan 1, all at 00:00."""
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=UTC)
    midnight = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
    days_since_sunday = (as_of.weekday() + 1) % 7
    return PeriodBounds(
        as_of=as_of,
        week_start=midnight - timedelta(days=days_since_sunday),
        month_start=midnight.replace(day=1),
        year_start=midnight.replace(month=1, day=1),
    )


def week_number(moment: datetime) -> int:
    """Legacy week-of-year bucket for *moment* (in *moment*'s own timezone)."""
    jan1 = moment.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    days_since_jan1 = (moment - jan1).total_seconds() / _SECONDS_PER_DAY
    jan1_weekday = (jan1.weekday() + 1) % 7  # Sunday = 0
    return math.ceil((days_since_jan1 + jan1_weekday + 1) / 7)


def week_label(moment: datetime) -> str:
    return f"W{week_number(moment)}"


def month_label(moment: datetime) -> str:
    return MONTH_LABELS[moment.month - 1]


# ---------------------------------------------------------------------------
# Points statistics
# ---------------------------------------------------------------------------
def compute_points_stats(entries: Iterable[Any], as_of: datetime) -> PointsStats:
    """Aggregate ledger *entries* into year-to-date totals and buckets.

    Entries outside ``[year_start, as_of]`` are ignored, so callers may pass
    a superset.
    """
    bounds = period_bounds(as_of)
    zone = bounds.as_of.tzinfo
    stats = PointsStats()

    for entry in sorted(entries, key=lambda e: to_utc(e.created_at)):
        moment = in_zone(entry.created_at, zone)
        if moment < bounds.year_start or moment > bounds.as_of:
            continue

        points = int(entry.points)
        stats.this_year += points
        stats.total += points
        if moment >= bounds.month_start:
            stats.this_month += points
        if moment >= bounds.week_start:
            stats.this_week += points

        week_key = week_label(moment)
        stats.weekly[week_key] = stats.weekly.get(week_key, 0) + points
        month_key = month_label(moment)
        stats.monthly[month_key] = stats.monthly.get(month_key, 0) + points

    return stats


# ---------------------------------------------------------------------------
# Engagement records
# ---------------------------------------------------------------------------
def _finite(value: Any) -> float | None:
    try:
        number = float(value if value is not None else 0)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def read_measures(engagement: Any) -> tuple[float, int, float] | None:
    """Return ``(hours, points, impact_score)`` or ``None`` if malformed.

    A record is malformed when it has no member, when hours are negative or
    not a finite number, or when points or impact score are not finite
    numbers.  Missing numbers count as zero.
    """
    if not getattr(engagement, "member_id", None):
        return None
    hours = _finite(engagement.hours_contributed)
    points = _finite(engagement.points_earned)
    impact = _finite(engagement.impact_score)
    if hours is None or points is None or impact is None or hours < 0:
        return None
    return hours, int(points), impact


def summarize_engagements(engagements: Iterable[Any]) -> ImpactSummary:
    """Totals over one member's engagement log; malformed rows are skipped."""
    summary = ImpactSummary()
    for engagement in engagements:
        summary.actions_count += 1
        measures = read_measures(engagement)
        if measures is None:
            summary.skipped += 1
            logger.warning(
                "Skipping malformed engagement id=%s member=%r",
                getattr(engagement, "id", None),
                getattr(engagement, "member_id", None),
            )
            continue
        hours, points, impact = measures
        summary.total_hours += hours
        summary.total_points += points
        summary.total_impact_score += impact
        action = str(engagement.action_type)
        summary.by_type[action] = summary.by_type.get(action, 0) + 1
    return summary
