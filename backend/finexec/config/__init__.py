"""Engine hyperparameters.

Defaults live here; a host process may override the numeric ones through
environment variables without touching code.
"""

from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


# Absolute tolerance for Net Financial Assets vs Closing Balance.
BALANCE_TOLERANCE: float = _env_float("FINEXEC_BALANCE_TOLERANCE", 0.01)

# Above this many facilities the aggregation service logs a performance warning.
LARGE_BATCH_THRESHOLD: int = _env_int("FINEXEC_LARGE_BATCH_THRESHOLD", 100)

# Version tag written into enriched form-data snapshots.
SNAPSHOT_VERSION: str = "1.0"
