"""
tests/conftest.py — Shared Test Fixtures
=========================================
SQLite stands in for PostgreSQL.  JSONB columns are rendered as TEXT there;
SQLAlchemy's JSON (de)serialization still applies.
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from tally.database.models import Base
from tally.services import catalog_service


@compiles(JSONB, "sqlite")
def _jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite with every Tally table.

    StaticPool keeps a single connection so worker threads started by
    ``run_db`` see the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine.

    Unlike ``db_engine`` every session gets its own connection, so two
    sessions really are two transactions (needed for race tests).
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'tally.db'}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _make_objective(engine: Engine, **overrides):
    """Insert an objective definition and return it (detached)."""
    data = {
        "title": "Attend five events",
        "group_tag": "AttendanceCheck",
        "action_type": "Attend",
        "feature_tag": "Events",
        "target_count": 5,
        "points": 50,
    }
    data.update(overrides)
    return catalog_service.create_objective(engine, data, actor_id="admin-1")


@pytest.fixture
def make_objective():
    """Factory: ``make_objective(engine, **overrides)`` → ObjectiveDefinition."""
    return _make_objective
