"""
tally.services.report_service — Impact Reports
===============================================

Builds organization-level snapshots from the engagement log.  A report is
written once and never recomputed: later engagements only show up in
later reports.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tally.config import TallyConfig
from tally.database.models import ImpactReport, ReportType, UserEngagement
from tally.engine.impact import build_report
from tally.engine.timeutil import to_utc
from tally.exceptions import NotFound
from tally.permissions import REPORT_GENERATE, Authorizer, require
from tally.schemas import ReportRequest, parse

logger = logging.getLogger(__name__)


def _select_engagements(
    session: Session, start: datetime | None, end: datetime | None
) -> list[UserEngagement]:
    stmt = select(UserEngagement).order_by(UserEngagement.created_at.asc(), UserEngagement.id.asc())
    if start is not None:
        stmt = stmt.where(UserEngagement.created_at >= start)
    if end is not None:
        stmt = stmt.where(UserEngagement.created_at <= end)
    return list(session.scalars(stmt).all())


def generate_report(
    engine: Engine,
    *,
    report_type: ReportType | str,
    title: str,
    caller_id: str | None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    organization_id: str | None = None,
    authorizer: Authorizer | None = None,
    config: TallyConfig | None = None,
) -> ImpactReport:
    """Aggregate engagements in ``[period_start, period_end]`` and persist a report.

    Raises
    ------
    Unauthorized
        If *caller_id* is empty or *authorizer* refuses ``report:generate``
        for *organization_id*.
    ValidationError
        If the period is inverted, the report type is unknown or the title
        is blank.
    """
    require(caller_id, REPORT_GENERATE, organization_id, authorizer)
    request = parse(ReportRequest, {
        "report_type": report_type,
        "title": title,
        "period_start": period_start,
        "period_end": period_end,
        "organization_id": organization_id,
    })
    cfg = config or TallyConfig()
    start = to_utc(request.period_start) if request.period_start else None
    end = to_utc(request.period_end) if request.period_end else None

    with Session(engine, expire_on_commit=False) as session:
        engagements = _select_engagements(session, start, end)
        content = build_report(
            engagements,
            low_hours_threshold=cfg.report_low_hours_threshold,
            diversity_threshold=cfg.report_activity_diversity_threshold,
        )
        report = ImpactReport(
            organization_id=request.organization_id,
            report_type=request.report_type.value,
            title=request.title,
            period_start=start,
            period_end=end,
            total_hours=content.total_hours,
            total_volunteers=content.total_volunteers,
            activities_completed=content.activities_completed,
            metrics=content.metrics,
            suggestions=content.suggestions,
            generated_by=caller_id,
        )
        session.add(report)
        session.commit()
        session.refresh(report)
        session.expunge(report)

    logger.info(
        "Impact report %d (%s) generated by %s: %d engagements, %d volunteers, %.2fh",
        report.id, report.report_type, caller_id, len(engagements),
        report.total_volunteers, report.total_hours,
    )
    return report


def list_reports(engine: Engine, organization_id: str | None = None) -> list[ImpactReport]:
    """Past reports, newest first, optionally for one organization."""
    stmt = select(ImpactReport).order_by(ImpactReport.created_at.desc(), ImpactReport.id.desc())
    if organization_id:
        stmt = stmt.where(ImpactReport.organization_id == organization_id)

    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


def get_report(engine: Engine, report_id: int) -> ImpactReport:
    with Session(engine, expire_on_commit=False) as session:
        report = session.get(ImpactReport, report_id)
        if report is None:
            raise NotFound("ImpactReport", report_id)
        session.expunge(report)
        return report
