"""
tally.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for non-secret settings: organization identity,
history paging, report heuristics and the progress retry budget.  Secrets
(``DATABASE_URL``) stay in the environment / ``.env``.

Usage::

    from tally.config import load_config

    cfg = load_config()                   # reads ./config.yaml by default
    print(cfg.organization_name)          # "Tally Dev"
    print(cfg.report_low_hours_threshold) # 50.0
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TallyConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so services can run with ``TallyConfig()``
    when no file is present (tests, one-off scripts).
    """

    # Identity
    organization_name: str = "Tally"

    # Points ledger
    history_limit: int = 50  # Default page size for points history

    # Impact report heuristics
    report_low_hours_threshold: float = 50.0
    report_activity_diversity_threshold: int = 5

    # Progress tracker
    progress_max_retries: int = 3  # Attempts before ConcurrencyConflict


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TallyConfig:
    """Read *path* and return a :class:`TallyConfig` instance.

    Keys missing from the file fall back to the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a numeric setting is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = TallyConfig()
    cfg = TallyConfig(
        organization_name=str(raw.get("organization_name", defaults.organization_name)),
        history_limit=int(raw.get("history_limit", defaults.history_limit)),
        report_low_hours_threshold=float(
            raw.get("report_low_hours_threshold", defaults.report_low_hours_threshold)
        ),
        report_activity_diversity_threshold=int(
            raw.get(
                "report_activity_diversity_threshold",
                defaults.report_activity_diversity_threshold,
            )
        ),
        progress_max_retries=int(
            raw.get("progress_max_retries", defaults.progress_max_retries)
        ),
    )

    if cfg.history_limit < 1:
        raise ValueError("history_limit must be at least 1")
    if cfg.progress_max_retries < 1:
        raise ValueError("progress_max_retries must be at least 1")
    return cfg
