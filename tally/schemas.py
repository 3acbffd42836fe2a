"""
tally.schemas — Inbound DTOs
=============================

Pydantic models for the payloads collaborators hand to the services.
Services accept either a model instance or a plain mapping; mappings are
validated through :func:`parse`, which turns pydantic errors into
:class:`tally.exceptions.ValidationError` so callers deal with a single
error taxonomy.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from tally.constants import OBJECTIVE_TAXONOMY, privacy_disabled
from tally.database.models import (
    Audience,
    Difficulty,
    EngagementAction,
    Feature,
    ObjectiveAction,
    ObjectiveGroup,
    Privacy,
    ReportType,
)
from tally.engine.timeutil import to_utc
from tally.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)


def parse(model_cls: type[M], data: M | Mapping[str, Any]) -> M:
    """Validate *data* into *model_cls*, raising the engine's ValidationError."""
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(dict(data))
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or model_cls.__name__
        raise ValidationError(field, first.get("msg", "invalid value")) from exc


def _check_window(start: datetime | None, end: datetime | None, label: str) -> None:
    if start is not None and end is not None and to_utc(start) > to_utc(end):
        raise ValueError(f"{label} start must not be after its end")


# ---------------------------------------------------------------------------
# Objectives
# ---------------------------------------------------------------------------
class ObjectiveCreate(BaseModel):
    title: str | None = None
    description: str | None = None
    group_tag: ObjectiveGroup | None = None
    action_type: ObjectiveAction | None = None
    feature_tag: Feature | None = None
    target_count: int = Field(default=1, ge=1)
    points: int = Field(default=0, ge=0)
    difficulty: Difficulty | None = None
    privacy: Privacy | None = None
    audience: list[Audience] = Field(default_factory=list)
    is_active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> ObjectiveCreate:
        _check_window(self.starts_at, self.ends_at, "validity window")

        if self.group_tag and self.action_type:
            actions = OBJECTIVE_TAXONOMY[self.group_tag]
            if self.action_type not in actions:
                raise ValueError(
                    f"{self.action_type} is not a valid action for {self.group_tag}"
                )
            if self.feature_tag and self.feature_tag not in actions[self.action_type]:
                raise ValueError(
                    f"{self.feature_tag} is not a valid feature for "
                    f"{self.group_tag}/{self.action_type}"
                )

        if self.group_tag and privacy_disabled(self.group_tag):
            self.privacy = None
        return self


class ObjectiveUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    title: str | None = None
    description: str | None = None
    group_tag: ObjectiveGroup | None = None
    action_type: ObjectiveAction | None = None
    feature_tag: Feature | None = None
    target_count: int | None = Field(default=None, ge=1)
    points: int | None = Field(default=None, ge=0)
    difficulty: Difficulty | None = None
    privacy: Privacy | None = None
    audience: list[Audience] | None = None
    is_active: bool | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


# ---------------------------------------------------------------------------
# Engagements
# ---------------------------------------------------------------------------
class EngagementCreate(BaseModel):
    member_id: str = Field(min_length=1)
    activity_id: str | None = None
    action_type: EngagementAction
    hours_contributed: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    points_earned: int = 0
    impact_score: float = Field(default=0.0, allow_inf_nan=False)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Impact reports
# ---------------------------------------------------------------------------
class ReportRequest(BaseModel):
    report_type: ReportType
    title: str
    period_start: datetime | None = None
    period_end: datetime | None = None
    organization_id: str | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def _check_period(self) -> ReportRequest:
        _check_window(self.period_start, self.period_end, "report period")
        return self
