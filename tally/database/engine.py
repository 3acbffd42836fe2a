"""
tally.database.engine — Engine, Sessions & Async Bridge
========================================================

Services are plain synchronous functions taking an :class:`Engine`.  Each
one opens its own short-lived session, finishes its transaction and hands
back detached rows, so callers never hold a session across calls.

Callers living on an ``asyncio`` loop (web handlers, schedulers) wrap the
call in :func:`run_db`, which runs it on a worker thread::

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)

    row = await run_db(progress_service.record_progress, engine, "m-1", 7, 3)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from tally.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Pool sizing for a PostgreSQL server shared with other collaborators.
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}


def create_db_engine(url: str | None = None) -> Engine:
    """Engine for *url*, or for ``DATABASE_URL`` when *url* is omitted.

    Raises
    ------
    RuntimeError
        If neither is available.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the Tally database."
        )

    options = {} if url.startswith("sqlite") else POOL_OPTIONS
    engine = create_engine(url, echo=False, **options)
    logger.info(
        "Database engine ready (%s → %s)",
        engine.url.get_backend_name(), engine.url.database,
    )
    return engine


def init_db(engine: Engine) -> None:
    """``CREATE TABLE IF NOT EXISTS`` for every model.

    Production schemas are owned by Alembic; this covers scratch and test
    databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema checked: %d tables", len(Base.metadata.tables))


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Unit of work: commit when the block exits cleanly, roll back otherwise."""
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous service call without blocking the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
