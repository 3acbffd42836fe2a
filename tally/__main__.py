"""
tally.__main__ — Entry point for ``python -m tally``
====================================================

Maintenance run:
1. Load .env (DATABASE_URL).
2. Load config.yaml (falls back to defaults when absent).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Reconcile materialized point totals against the ledger.

Run with::

    python -m tally
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from tally.config import TallyConfig, load_config
from tally.database.engine import create_db_engine, init_db
from tally.services.ledger_service import reconcile_point_totals

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("tally")


def main() -> int:
    """Bootstrap the schema and reconcile point totals."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except FileNotFoundError:
        logger.warning("config.yaml not found; using built-in defaults.")
        cfg = TallyConfig()
    logger.info("Organization: %s", cfg.organization_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1
    init_db(engine)

    # 4. Ledger consistency.
    result = reconcile_point_totals(engine)
    logger.info(
        "Reconciliation done: %d checked, %d corrected",
        result["checked"], result["corrected"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
