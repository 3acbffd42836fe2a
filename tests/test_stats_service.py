"""
tests/test_stats_service.py — Engagement Log & Member Statistics Tests
=======================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from tally.exceptions import ValidationError
from tally.services import engagement_service, ledger_service, stats_service


@pytest.fixture
def engine(db_engine):
    return db_engine


def _award(engine, when: datetime, points: int, member_id: str = "m1"):
    ledger_service.append_entry(engine, member_id, points, "activity", occurred_at=when)


class TestLogEngagement:
    def test_log_and_read_back(self, engine):
        row = engagement_service.log_engagement(engine, {
            "member_id": "m1",
            "activity_id": "act-1",
            "action_type": "event_attendance",
            "hours_contributed": 2.5,
            "points_earned": 10,
            "impact_score": 1.25,
            "metadata": {"location": "park"},
        })
        assert row.id is not None
        assert row.action_type == "event_attendance"
        assert row.metadata_ == {"location": "park"}

        rows = engagement_service.get_user_engagements(engine, "m1")
        assert [r.id for r in rows] == [row.id]

    def test_newest_first(self, engine):
        first = engagement_service.log_engagement(
            engine, {"member_id": "m1", "action_type": "task_completed"}
        )
        second = engagement_service.log_engagement(
            engine, {"member_id": "m1", "action_type": "initiative_led"}
        )
        engagement_service.log_engagement(
            engine, {"member_id": "m2", "action_type": "initiative_led"}
        )
        rows = engagement_service.get_user_engagements(engine, "m1")
        assert [r.id for r in rows] == [second.id, first.id]

    def test_does_not_touch_ledger(self, engine):
        engagement_service.log_engagement(
            engine, {"member_id": "m1", "action_type": "task_completed", "points_earned": 30}
        )
        assert ledger_service.get_total(engine, "m1") == 0

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"member_id": ""}, "member_id"),
            ({"hours_contributed": -1}, "hours_contributed"),
            ({"hours_contributed": float("inf")}, "hours_contributed"),
            ({"impact_score": float("nan")}, "impact_score"),
            ({"action_type": "napping"}, "action_type"),
        ],
    )
    def test_invalid_payload(self, engine, overrides, field):
        payload = {"member_id": "m1", "action_type": "task_completed", **overrides}
        with pytest.raises(ValidationError) as exc_info:
            engagement_service.log_engagement(engine, payload)
        assert exc_info.value.field == field
        assert engagement_service.get_user_engagements(engine, "m1") == []


class TestComputeStats:
    def test_year_to_date(self, engine):
        _award(engine, datetime(2023, 12, 31, 12, tzinfo=UTC), 500)
        _award(engine, datetime(2024, 1, 2, tzinfo=UTC), 10)
        _award(engine, datetime(2024, 3, 15, tzinfo=UTC), 20)
        _award(engine, datetime(2024, 6, 1, tzinfo=UTC), 5)
        _award(engine, datetime(2024, 6, 1, tzinfo=UTC), 1000, member_id="m2")

        stats = stats_service.compute_stats(engine, "m1", as_of=datetime(2024, 12, 31, tzinfo=UTC))

        assert stats.total == 35
        assert stats.this_year == 35
        assert stats.this_month == 0
        assert stats.this_week == 0
        assert stats.weekly == {"W1": 10, "W11": 20, "W22": 5}
        assert stats.monthly == {"Jan": 10, "Mar": 20, "Jun": 5}

    def test_entries_after_as_of_are_excluded(self, engine):
        _award(engine, datetime(2024, 6, 1, tzinfo=UTC), 5)
        _award(engine, datetime(2024, 6, 20, tzinfo=UTC), 7)

        stats = stats_service.compute_stats(engine, "m1", as_of=datetime(2024, 6, 10, tzinfo=UTC))
        assert stats.this_year == 5
        assert stats.this_month == 5

    def test_current_week(self, engine):
        _award(engine, datetime(2024, 12, 29, 8, tzinfo=UTC), 4)
        _award(engine, datetime(2024, 12, 28, 8, tzinfo=UTC), 6)

        stats = stats_service.compute_stats(engine, "m1", as_of=datetime(2024, 12, 31, tzinfo=UTC))
        assert stats.this_week == 4
        assert stats.this_month == 10

    def test_as_of_timezone(self, engine):
        """Jan 1 03:00 UTC still belongs to the previous year in UTC-5."""
        _award(engine, datetime(2025, 1, 1, 3, tzinfo=UTC), 9)
        zone = timezone(timedelta(hours=-5))

        stats = stats_service.compute_stats(
            engine, "m1", as_of=datetime(2024, 12, 31, 23, tzinfo=zone)
        )
        assert stats.this_year == 9
        assert stats.monthly == {"Dec": 9}

    def test_defaults_to_now(self, engine):
        ledger_service.append_entry(engine, "m1", 3, "bonus")
        stats = stats_service.compute_stats(engine, "m1")
        assert stats.this_year == 3
        assert stats.this_week == 3


class TestImpactSummary:
    def test_lifetime_totals(self, engine):
        for action, hours, points, impact in [
            ("event_attendance", 2.0, 10, 1.0),
            ("task_completed", 1.5, 5, 0.5),
            ("task_completed", 0.5, 5, 0.5),
        ]:
            engagement_service.log_engagement(engine, {
                "member_id": "m1",
                "action_type": action,
                "hours_contributed": hours,
                "points_earned": points,
                "impact_score": impact,
            })

        summary = stats_service.get_user_impact_summary(engine, "m1")
        assert summary.total_hours == 4.0
        assert summary.total_points == 20
        assert summary.total_impact_score == 2.0
        assert summary.actions_count == 3
        assert summary.by_type == {"event_attendance": 1, "task_completed": 2}

    def test_unknown_member(self, engine):
        summary = stats_service.get_user_impact_summary(engine, "ghost")
        assert summary.actions_count == 0
        assert summary.total_hours == 0.0
