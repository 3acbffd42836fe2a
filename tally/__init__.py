"""
Tally — Objectives, Points Ledger & Impact Engine
==================================================
Rewards members of an organization for completing objectives, keeps an
append-only ledger of every point they earn, and turns engagement logs
into per-member statistics and organization-level impact reports.

UIs, activity trackers and admin tools call into the services; the engine
itself has no transport layer.

Package layout::

    tally/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Objective taxonomy, labels, suggestion texts
    ├── exceptions.py      # ValidationError, NotFound, AlreadyAssigned, …
    ├── permissions.py     # Delegated authorizer hooks
    ├── schemas.py         # Pydantic input DTOs
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session helper, async bridge
    │   └── models.py      # All ORM models
    ├── engine/            # Pure calculation, no I/O
    │   ├── progress.py    # Completion latch decision
    │   ├── aggregation.py # Points stats, week/month buckets, summaries
    │   ├── impact.py      # Report totals and heuristic suggestions
    │   └── timeutil.py    # UTC normalization
    └── services/          # Transactions over the database
        ├── catalog_service.py     # Objective definitions (audited)
        ├── progress_service.py    # assign / record_progress / unassign
        ├── ledger_service.py      # Points ledger + materialized totals
        ├── engagement_service.py  # Engagement log
        ├── stats_service.py       # compute_stats / impact summary
        ├── report_service.py      # Impact reports
        └── audit.py               # admin_log helpers
"""

__version__ = "0.1.0"
