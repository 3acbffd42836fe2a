"""
tally.engine.impact — Impact Report Calculation
================================================

Pure aggregation and heuristics behind
:func:`tally.services.report_service.generate_report`.  Given the same
engagement rows and thresholds, :func:`build_report` always returns the
same totals, metrics and suggestions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from tally.constants import (
    SUGGESTION_HIGH_DIVERSITY,
    SUGGESTION_HIGH_HOURS,
    SUGGESTION_LOW_DIVERSITY,
    SUGGESTION_LOW_HOURS,
)
from tally.engine.aggregation import read_measures

logger = logging.getLogger(__name__)

DEFAULT_LOW_HOURS_THRESHOLD = 50.0
DEFAULT_DIVERSITY_THRESHOLD = 5


@dataclass
class EngagementTotals:
    """Aggregates over the engagement rows selected for a report."""

    volunteers: set[str] = field(default_factory=set)
    activities: set[str] = field(default_factory=set)
    total_hours: float = 0.0
    total_points: int = 0
    total_impact_score: float = 0.0
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class ReportContent:
    """Everything an :class:`~tally.database.models.ImpactReport` snapshots."""

    total_hours: float
    total_volunteers: int
    activities_completed: int
    metrics: dict[str, float | int]
    suggestions: list[str]


def round2(value: float) -> float:
    """Round half-up to two decimals (``7.125`` → ``7.13``)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def aggregate_engagements(engagements: Iterable[Any]) -> EngagementTotals:
    totals = EngagementTotals()
    for engagement in engagements:
        measures = read_measures(engagement)
        if measures is None:
            totals.skipped += 1
            logger.warning(
                "Report aggregation skipped malformed engagement id=%s",
                getattr(engagement, "id", None),
            )
            continue
        hours, points, impact = measures
        totals.volunteers.add(engagement.member_id)
        if engagement.activity_id:
            totals.activities.add(engagement.activity_id)
        totals.total_hours += hours
        totals.total_points += points
        totals.total_impact_score += impact
    return totals


def build_suggestions(
    total_hours: float,
    activity_count: int,
    *,
    low_hours_threshold: float = DEFAULT_LOW_HOURS_THRESHOLD,
    diversity_threshold: int = DEFAULT_DIVERSITY_THRESHOLD,
) -> list[str]:
    """Two suggestions, hours first, each picked by its own threshold."""
    suggestions = []
    if total_hours < low_hours_threshold:
        suggestions.append(SUGGESTION_LOW_HOURS)
    else:
        suggestions.append(SUGGESTION_HIGH_HOURS)

    if activity_count < diversity_threshold:
        suggestions.append(SUGGESTION_LOW_DIVERSITY)
    else:
        suggestions.append(SUGGESTION_HIGH_DIVERSITY)
    return suggestions


def average_hours(total_hours: float, volunteer_count: int) -> float:
    if volunteer_count <= 0:
        return 0
    return round2(total_hours / volunteer_count)


def build_report(
    engagements: Iterable[Any],
    *,
    low_hours_threshold: float = DEFAULT_LOW_HOURS_THRESHOLD,
    diversity_threshold: int = DEFAULT_DIVERSITY_THRESHOLD,
) -> ReportContent:
    totals = aggregate_engagements(engagements)
    metrics: dict[str, float | int] = {
        "total_impact_score": totals.total_impact_score,
        "avg_hours_per_volunteer": average_hours(
            totals.total_hours, len(totals.volunteers)
        ),
        "total_points_earned": totals.total_points,
        "skipped_records": totals.skipped,
    }
    return ReportContent(
        total_hours=totals.total_hours,
        total_volunteers=len(totals.volunteers),
        activities_completed=len(totals.activities),
        metrics=metrics,
        suggestions=build_suggestions(
            totals.total_hours,
            len(totals.activities),
            low_hours_threshold=low_hours_threshold,
            diversity_threshold=diversity_threshold,
        ),
    )
