"""
tests/test_progress_service.py — Progress Tracker Integration Tests
====================================================================
Assignment, the completion latch, exactly-once awards, authorization and
lost-race retries for tally.services.progress_service.

Most tests use the in-memory SQLite engine.  The race tests use a
file-backed engine so the interleaved writer really runs in a separate
transaction.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tally.config import TallyConfig
from tally.database.engine import run_db
from tally.database.models import SourceType
from tally.engine.timeutil import to_utc
from tally.exceptions import (
    AlreadyAssigned,
    ConcurrencyConflict,
    NotFound,
    Unauthorized,
    ValidationError,
)
from tally.permissions import PROGRESS_WRITE
from tally.services import catalog_service, ledger_service, progress_service


# Helper to run async code without pytest-asyncio
def _run(coro):
    return asyncio.run(coro)


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def objective(engine, make_objective):
    """Target 5, worth 50 points."""
    return make_objective(engine, target_count=5, points=50)


class TestAssignment:
    def test_assign_starts_at_zero(self, engine, objective):
        row = progress_service.assign_objective(engine, "m1", objective.id)
        assert row.current_count == 0
        assert row.is_completed is False
        assert row.points_awarded == 0
        assert row.completed_at is None

    def test_assign_twice(self, engine, objective):
        progress_service.assign_objective(engine, "m1", objective.id)
        with pytest.raises(AlreadyAssigned):
            progress_service.assign_objective(engine, "m1", objective.id)

    def test_assign_unknown_objective(self, engine):
        with pytest.raises(NotFound):
            progress_service.assign_objective(engine, "m1", 404)

    def test_assign_requires_member(self, engine, objective):
        with pytest.raises(ValidationError):
            progress_service.assign_objective(engine, "", objective.id)

    def test_unassign_keeps_awarded_points(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 5)
        progress_service.unassign_objective(engine, "m1", objective.id)

        with pytest.raises(NotFound):
            progress_service.get_progress(engine, "m1", objective.id)
        assert ledger_service.get_total(engine, "m1") == 50

    def test_unassign_missing(self, engine, objective):
        with pytest.raises(NotFound):
            progress_service.unassign_objective(engine, "m1", objective.id)


class TestRecordProgress:
    def test_partial_then_complete_then_overshoot(self, engine, objective):
        progress_service.assign_objective(engine, "m1", objective.id)

        row = progress_service.record_progress(engine, "m1", objective.id, 3)
        assert row.current_count == 3
        assert row.is_completed is False
        assert ledger_service.query_entries(engine, "m1") == []

        row = progress_service.record_progress(engine, "m1", objective.id, 5)
        assert row.is_completed is True
        assert row.points_awarded == 50
        assert row.completed_at is not None
        completed_at = row.completed_at

        entries = ledger_service.query_entries(engine, "m1")
        assert len(entries) == 1
        assert entries[0].points == 50
        assert entries[0].source_type == SourceType.OBJECTIVE
        assert entries[0].source_id == str(objective.id)
        assert entries[0].description == "Completed: Attend five events"

        row = progress_service.record_progress(engine, "m1", objective.id, 7)
        assert row.current_count == 7
        assert row.is_completed is True
        assert row.completed_at == completed_at
        assert len(ledger_service.query_entries(engine, "m1")) == 1

    def test_repeated_completing_submissions_award_once(self, engine, objective):
        for _ in range(4):
            row = progress_service.record_progress(engine, "m1", objective.id, 5)
        assert row.points_awarded == 50
        assert ledger_service.get_total(engine, "m1") == 50
        assert ledger_service.get_cached_total(engine, "m1") == 50

    def test_correction_below_target_keeps_completion(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 5)
        row = progress_service.record_progress(engine, "m1", objective.id, 2)
        assert row.current_count == 2
        assert row.is_completed is True
        assert row.points_awarded == 50

        row = progress_service.record_progress(engine, "m1", objective.id, 5)
        assert ledger_service.get_total(engine, "m1") == 50

    def test_unassigned_pair_is_created(self, engine, objective):
        row = progress_service.record_progress(engine, "m2", objective.id, 1)
        assert row.current_count == 1
        assert progress_service.get_progress(engine, "m2", objective.id).id == row.id

    def test_overshoot_in_one_step(self, engine, objective):
        row = progress_service.record_progress(engine, "m1", objective.id, 40)
        assert row.is_completed is True
        assert ledger_service.get_total(engine, "m1") == 50

    def test_zero_point_objective_still_records_award(self, engine, make_objective):
        obj = make_objective(engine, target_count=1, points=0)
        row = progress_service.record_progress(engine, "m1", obj.id, 1)
        assert row.is_completed is True
        assert [e.points for e in ledger_service.query_entries(engine, "m1")] == [0]

    def test_members_are_independent(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 5)
        row = progress_service.record_progress(engine, "m2", objective.id, 4)
        assert row.is_completed is False
        assert ledger_service.get_total(engine, "m2") == 0

    @pytest.mark.parametrize("bad", [-1, 2.5, "3", True, None])
    def test_invalid_count(self, engine, objective, bad):
        with pytest.raises(ValidationError) as exc_info:
            progress_service.record_progress(engine, "m1", objective.id, bad)
        assert exc_info.value.field == "new_count"
        with pytest.raises(NotFound):
            progress_service.get_progress(engine, "m1", objective.id)

    def test_unknown_objective(self, engine):
        with pytest.raises(NotFound):
            progress_service.record_progress(engine, "m1", 12345, 1)

    def test_deleted_objective(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 1)
        catalog_service.delete_objective(engine, objective.id, actor_id="admin-1")
        with pytest.raises(NotFound):
            progress_service.record_progress(engine, "m1", objective.id, 5)
        assert progress_service.get_progress(engine, "m1", objective.id).current_count == 1

    def test_completed_pair_survives_deleted_objective(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 5)
        catalog_service.delete_objective(engine, objective.id, actor_id="admin-1")

        row = progress_service.record_progress(engine, "m1", objective.id, 6)

        assert row.current_count == 6
        assert row.is_completed is True
        assert row.points_awarded == 50
        assert ledger_service.get_total(engine, "m1") == 50
        events = progress_service.get_progress_events(engine, "m1", objective.id)
        assert [(e.new_count, e.completed) for e in events] == [(5, True), (6, False)]

    def test_ledger_failure_rolls_back_progress(self, engine, objective, monkeypatch):
        def broken_bump(session, member_id, points):
            raise OperationalError("UPDATE member_points", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger_service, "_bump_cached_total", broken_bump)

        with pytest.raises(OperationalError):
            progress_service.record_progress(engine, "m1", objective.id, 5)

        with pytest.raises(NotFound):
            progress_service.get_progress(engine, "m1", objective.id)
        assert progress_service.get_progress_events(engine, "m1", objective.id) == []
        assert ledger_service.query_entries(engine, "m1") == []
        assert ledger_service.get_total(engine, "m1") == 0
        assert ledger_service.get_cached_total(engine, "m1") == 0

    def test_async_bridge(self, engine, objective):
        row = _run(run_db(progress_service.record_progress, engine, "m1", objective.id, 5))
        assert row.is_completed is True


class TestAuthorization:
    def test_self_report_skips_authorizer(self, engine, objective):
        authorizer = MagicMock(return_value=False)
        progress_service.record_progress(
            engine, "m1", objective.id, 2, actor_id="m1", authorizer=authorizer
        )
        authorizer.assert_not_called()

    def test_other_actor_needs_permission(self, engine, objective):
        authorizer = MagicMock(return_value=False)
        with pytest.raises(Unauthorized):
            progress_service.record_progress(
                engine, "m1", objective.id, 5, actor_id="m2", authorizer=authorizer
            )
        authorizer.assert_called_once_with("m2", PROGRESS_WRITE, "m1")
        assert ledger_service.get_total(engine, "m1") == 0

    def test_permitted_actor_is_recorded(self, engine, objective):
        authorizer = MagicMock(return_value=True)
        progress_service.record_progress(
            engine, "m1", objective.id, 5, actor_id="coach", authorizer=authorizer
        )
        events = progress_service.get_progress_events(engine, "m1", objective.id)
        assert [e.actor_id for e in events] == ["coach"]


class TestIncrementProgress:
    def test_increments_from_zero(self, engine, objective):
        progress_service.increment_progress(engine, "m1", objective.id)
        row = progress_service.increment_progress(engine, "m1", objective.id, 3)
        assert row.current_count == 4

    def test_negative_delta_floors_at_zero(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 2)
        row = progress_service.increment_progress(engine, "m1", objective.id, -5)
        assert row.current_count == 0

    def test_increment_completes(self, engine, objective):
        progress_service.record_progress(engine, "m1", objective.id, 4)
        row = progress_service.increment_progress(engine, "m1", objective.id)
        assert row.is_completed is True
        assert ledger_service.get_total(engine, "m1") == 50


class TestQueries:
    def test_progress_events_audit_trail(self, engine, objective):
        for count in (2, 5, 3):
            progress_service.record_progress(engine, "m1", objective.id, count)

        events = progress_service.get_progress_events(engine, "m1", objective.id)
        assert [(e.previous_count, e.new_count, e.delta) for e in events] == [
            (0, 2, 2), (2, 5, 3), (5, 3, -2),
        ]
        assert [e.completed for e in events] == [False, True, False]

    def test_list_member_objectives(self, engine, objective, make_objective):
        other = make_objective(engine, title="other", target_count=2)
        make_objective(engine, title="retired", is_active=False)
        progress_service.record_progress(engine, "m1", objective.id, 1)

        listed = progress_service.list_member_objectives(engine, "m1")
        by_id = {item.objective.id: item for item in listed}

        assert set(by_id) == {objective.id, other.id}
        assert by_id[objective.id].progress.current_count == 1
        assert by_id[other.id].progress is None

    def test_get_progress_missing(self, engine, objective):
        with pytest.raises(NotFound):
            progress_service.get_progress(engine, "nobody", objective.id)


class TestConcurrency:
    def test_gives_up_after_max_retries(self, engine, objective, monkeypatch):
        attempt = MagicMock(side_effect=StaleDataError("row changed"))
        monkeypatch.setattr(progress_service, "_apply_progress", attempt)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            progress_service.record_progress(engine, "m1", objective.id, 5, max_retries=2)

        assert exc_info.value.attempts == 2
        assert attempt.call_count == 2

    def test_retry_budget_from_config(self, engine, objective, monkeypatch):
        attempt = MagicMock(side_effect=StaleDataError("row changed"))
        monkeypatch.setattr(progress_service, "_apply_progress", attempt)

        with pytest.raises(ConcurrencyConflict):
            progress_service.record_progress(
                engine, "m1", objective.id, 5, config=TallyConfig(progress_max_retries=4)
            )
        assert attempt.call_count == 4

    def test_concurrent_completion_awards_once(self, file_engine, make_objective, monkeypatch):
        """A second writer completes the objective between our read and write."""
        obj = make_objective(file_engine, target_count=3, points=30)
        progress_service.assign_objective(file_engine, "m1", obj.id)

        real_fetch = progress_service._fetch_progress
        raced = []

        def fetch_then_race(session, member_id, objective_id):
            row = real_fetch(session, member_id, objective_id)
            if not raced:
                raced.append(True)
                progress_service.record_progress(file_engine, member_id, objective_id, 3)
            return row

        monkeypatch.setattr(progress_service, "_fetch_progress", fetch_then_race)
        row = progress_service.record_progress(file_engine, "m1", obj.id, 4)

        assert row.current_count == 4
        assert row.is_completed is True
        assert row.points_awarded == 30
        entries = ledger_service.query_entries(file_engine, "m1")
        assert [e.points for e in entries] == [30]
        assert ledger_service.get_cached_total(file_engine, "m1") == 30

    def test_concurrent_first_write_awards_once(self, file_engine, make_objective, monkeypatch):
        """Both writers see no progress row; the loser collides on the unique pair."""
        obj = make_objective(file_engine, target_count=1, points=15)

        real_fetch = progress_service._fetch_progress
        raced = []

        def fetch_then_race(session, member_id, objective_id):
            row = real_fetch(session, member_id, objective_id)
            if not raced:
                raced.append(True)
                progress_service.record_progress(file_engine, member_id, objective_id, 1)
            return row

        monkeypatch.setattr(progress_service, "_fetch_progress", fetch_then_race)
        row = progress_service.record_progress(file_engine, "m1", obj.id, 2)

        assert row.current_count == 2
        assert row.is_completed is True
        assert ledger_service.get_total(file_engine, "m1") == 15
        assert to_utc(row.completed_at) <= to_utc(row.updated_at)
