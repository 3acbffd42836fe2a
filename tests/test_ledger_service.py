"""
tests/test_ledger_service.py — Points Ledger Tests
===================================================
Append/query semantics, the materialized ``member_points`` total and
reconciliation of drifted totals.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from tally.config import TallyConfig
from tally.database.models import MemberPoints, SourceType
from tally.engine.timeutil import to_utc
from tally.exceptions import ValidationError
from tally.services import ledger_service


@pytest.fixture
def engine(db_engine):
    return db_engine


def _seed(engine, member_id="m1"):
    """Three back-dated entries: +10 (Jan), -3 (Feb), +20 (Mar)."""
    ledger_service.append_entry(
        engine, member_id, 10, SourceType.ACTIVITY, "act-1",
        occurred_at=datetime(2024, 1, 10, tzinfo=UTC),
    )
    ledger_service.append_entry(
        engine, member_id, -3, "manual", description="Duplicate check-in",
        occurred_at=datetime(2024, 2, 10, tzinfo=UTC),
    )
    ledger_service.append_entry(
        engine, member_id, 20, SourceType.BONUS,
        occurred_at=datetime(2024, 3, 10, tzinfo=UTC),
    )


class TestAppendEntry:
    def test_append_returns_entry(self, engine):
        entry = ledger_service.append_entry(
            engine, "m1", 15, SourceType.ACTIVITY, "act-9", "Beach clean-up"
        )
        assert entry.id is not None
        assert entry.member_id == "m1"
        assert entry.points == 15
        assert entry.source_type == "activity"
        assert entry.source_id == "act-9"
        assert entry.description == "Beach clean-up"
        assert entry.created_at is not None

    def test_occurred_at_backdates(self, engine):
        entry = ledger_service.append_entry(
            engine, "m1", 5, "bonus", occurred_at=datetime(2023, 7, 4, 12, 0, tzinfo=UTC)
        )
        assert to_utc(entry.created_at) == datetime(2023, 7, 4, 12, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        "member_id, points, source_type, field",
        [
            ("", 5, "bonus", "member_id"),
            ("m1", 2.5, "bonus", "points"),
            ("m1", True, "bonus", "points"),
            ("m1", 5, "lottery", "source_type"),
        ],
    )
    def test_invalid_entries_rejected(self, engine, member_id, points, source_type, field):
        with pytest.raises(ValidationError) as exc_info:
            ledger_service.append_entry(engine, member_id, points, source_type)
        assert exc_info.value.field == field
        assert ledger_service.query_entries(engine, "m1") == []


class TestQueries:
    def test_entries_oldest_first(self, engine):
        _seed(engine)
        entries = ledger_service.query_entries(engine, "m1")
        assert [e.points for e in entries] == [10, -3, 20]

    def test_bounded_query_is_inclusive(self, engine):
        _seed(engine)
        entries = ledger_service.query_entries(
            engine, "m1",
            start=datetime(2024, 2, 10, tzinfo=UTC),
            end=datetime(2024, 3, 10, tzinfo=UTC),
        )
        assert [e.points for e in entries] == [-3, 20]

    def test_total_equals_sum_of_entries(self, engine):
        _seed(engine)
        _seed(engine, "m2")
        ledger_service.append_entry(engine, "m2", 100, "bonus")

        for member_id in ("m1", "m2"):
            entries = ledger_service.query_entries(engine, member_id)
            assert ledger_service.get_total(engine, member_id) == sum(e.points for e in entries)

    def test_bounded_total(self, engine):
        _seed(engine)
        total = ledger_service.get_total(
            engine, "m1", start=datetime(2024, 2, 1, tzinfo=UTC)
        )
        assert total == 17

    def test_unknown_member_has_nothing(self, engine):
        assert ledger_service.query_entries(engine, "ghost") == []
        assert ledger_service.get_total(engine, "ghost") == 0
        assert ledger_service.get_cached_total(engine, "ghost") == 0

    def test_history_newest_first_with_limit(self, engine):
        _seed(engine)
        history = ledger_service.get_points_history(engine, "m1", limit=2)
        assert [e.points for e in history] == [20, -3]

    def test_history_default_limit(self, engine):
        for i in range(55):
            ledger_service.append_entry(engine, "m1", i, "activity")
        history = ledger_service.get_points_history(engine, "m1")
        assert len(history) == 50
        assert history[0].points == 54

    def test_history_limit_from_config(self, engine):
        _seed(engine)
        history = ledger_service.get_points_history(
            engine, "m1", config=TallyConfig(history_limit=1)
        )
        assert [e.points for e in history] == [20]

    def test_history_limit_must_be_positive(self, engine):
        with pytest.raises(ValidationError):
            ledger_service.get_points_history(engine, "m1", limit=0)


class TestCachedTotals:
    def test_cached_total_tracks_appends(self, engine):
        _seed(engine)
        assert ledger_service.get_cached_total(engine, "m1") == 27

    def test_failed_transaction_leaves_no_trace(self, engine):
        with pytest.raises(RuntimeError):
            with Session(engine) as session:
                ledger_service.append_in_session(
                    session, member_id="m1", points=40, source_type="bonus"
                )
                session.flush()
                raise RuntimeError("caller aborted")
        assert ledger_service.get_total(engine, "m1") == 0
        assert ledger_service.get_cached_total(engine, "m1") == 0


class TestReconciliation:
    def test_no_drift(self, engine):
        _seed(engine)
        result = ledger_service.reconcile_point_totals(engine)
        assert result["checked"] == 1
        assert result["corrected"] == 0
        assert result["corrections"] == []

    def test_corrects_drift(self, engine):
        _seed(engine)
        _seed(engine, "m2")
        with Session(engine) as session:
            session.execute(
                update(MemberPoints).where(MemberPoints.member_id == "m1").values(total=999)
            )
            session.execute(delete(MemberPoints).where(MemberPoints.member_id == "m2"))
            session.commit()

        result = ledger_service.reconcile_point_totals(engine)

        assert result["checked"] == 2
        assert result["corrected"] == 2
        assert result["corrections"] == [
            {"member_id": "m1", "stored": 999, "actual": 27, "diff": -972},
            {"member_id": "m2", "stored": 0, "actual": 27, "diff": 27},
        ]
        assert ledger_service.get_cached_total(engine, "m1") == 27
        assert ledger_service.get_cached_total(engine, "m2") == 27
        assert ledger_service.reconcile_point_totals(engine)["corrected"] == 0

    def test_orphaned_cached_total_is_zeroed(self, engine):
        with Session(engine) as session:
            session.add(MemberPoints(member_id="m9", total=12))
            session.commit()

        result = ledger_service.reconcile_point_totals(engine)
        assert result["corrected"] == 1
        assert ledger_service.get_cached_total(engine, "m9") == 0
