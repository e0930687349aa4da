"""Configuration management for the forecast engine.

This module centralizes configuration values including paths, guard
limits, and environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

# Base project root - assumes this file is in pf_forecast/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directory
DATA_DIR = Path(os.getenv("PF_FORECAST_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("PF_FORECAST_DB_PATH", DATA_DIR / "forecast.db")
).resolve()

# Forecast horizon defaults (months)
DEFAULT_HORIZON_MONTHS = int(os.getenv("PF_FORECAST_HORIZON_MONTHS", "9"))
PROJECTION_MONTHS = int(os.getenv("PF_FORECAST_PROJECTION_MONTHS", "6"))

# Per-line iteration cap for recurrence expansion
EXPANSION_GUARD = int(os.getenv("PF_FORECAST_EXPANSION_GUARD", "1000"))

# Allocation percentages must sum to 1.0 within this tolerance
ALLOCATION_EPSILON = 0.001

# Rollout quarters must total 100% within this tolerance (percent units)
ROLLOUT_TOLERANCE = 0.1

CUSTOM_ACCOUNT_LIMIT = 15
MAX_STATEMENT_MONTHS = 12


def get_db_path() -> str:
    """Database path in effect, read at call time so overrides of ``DB_PATH`` apply."""
    return str(DB_PATH)
