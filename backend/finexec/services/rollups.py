"""
Section and subsection rollups.

Supports both list-of-dicts (keyed activity mapping) and a vectorised
DataFrame path. Both honour the same contract:

  * q1..q4 are raw quarter sums (missing -> 0), kept for visibility.
  * total sums each member's ``cumulative_balance``; only when an activity
    has no balance does its raw quarter sum stand in.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from finexec.core.quarters import QUARTERS
from finexec.execution_config.classifier import parse_code
from finexec.io._utils import to_float, to_float_or_zero
from finexec.services.balance import CUMULATIVE_BALANCE_KEY


@dataclass
class Rollup:
    q1: float = 0.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0
    total: float = 0.0

    def quarter_sum(self) -> float:
        return self.q1 + self.q2 + self.q3 + self.q4

    def add(self, q1: float, q2: float, q3: float, q4: float, total: float) -> None:
        self.q1 += q1
        self.q2 += q2
        self.q3 += q3
        self.q4 += q4
        self.total += total

    def to_dict(self) -> dict[str, float]:
        return {"q1": self.q1, "q2": self.q2, "q3": self.q3, "q4": self.q4, "total": self.total}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Rollup:
        if not data:
            return cls()
        return cls(*(to_float_or_zero(data.get(k)) for k in (*QUARTERS, "total")))


@dataclass
class Rollups:
    by_section: dict[str, Rollup] = field(default_factory=dict)
    by_subsection: dict[str, Rollup] = field(default_factory=dict)

    def section(self, code: str) -> Rollup:
        """Rollup for a section, or an all-zero rollup when nothing was reported."""
        return self.by_section.get(code) or Rollup()

    def to_dict(self) -> dict[str, dict[str, dict[str, float]]]:
        """Snapshot shape persisted with the form data."""
        return {
            "bySection": {k: v.to_dict() for k, v in self.by_section.items()},
            "bySubSection": {k: v.to_dict() for k, v in self.by_subsection.items()},
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Rollups:
        """Read a stored snapshot (camelCase or snake_case keys)."""
        data = data or {}
        by_section = data.get("bySection", data.get("by_section")) or {}
        by_sub = data.get("bySubSection", data.get("by_subsection")) or {}
        return cls(
            by_section={k: Rollup.from_mapping(v) for k, v in by_section.items()},
            by_subsection={k: Rollup.from_mapping(v) for k, v in by_sub.items()},
        )


# ── Dict-based rollups ───────────────────────────────────────────────────────

def _activity_total(activity: Mapping[str, Any], raw: tuple[float, float, float, float]) -> float:
    balance = to_float(activity.get(CUMULATIVE_BALANCE_KEY))
    if balance is not None:
        return balance
    return sum(raw)


def compute_rollups(activities: Mapping[str, Mapping[str, Any]]) -> Rollups:
    """
    Fold balance-annotated activities into per-section / per-subsection rollups.

    Section and subsection come from the activity's ``section``/``subsection``
    fields when present, else from parsing its code. Activities with no
    section contribute to neither bucket.
    """
    rollups = Rollups()
    for code, activity in activities.items():
        if "section" in activity or "subsection" in activity:
            section = activity.get("section")
            subsection = activity.get("subsection")
        else:
            parsed = parse_code(code)
            section, subsection = parsed.section, parsed.subsection

        raw = tuple(to_float_or_zero(activity.get(q)) for q in QUARTERS)
        total = _activity_total(activity, raw)

        if section:
            rollups.by_section.setdefault(section, Rollup()).add(*raw, total)
        if subsection:
            rollups.by_subsection.setdefault(subsection, Rollup()).add(*raw, total)
    return rollups


# ── DataFrame-based rollups ──────────────────────────────────────────────────

def activities_to_frame(activities: Mapping[str, Mapping[str, Any]]) -> pd.DataFrame:
    """One row per activity: code, section, subsection, q1..q4, cumulative_balance."""
    rows: list[dict[str, Any]] = []
    for code, activity in activities.items():
        parsed = parse_code(code)
        rows.append({
            "code": code,
            "section": activity.get("section", parsed.section),
            "subsection": activity.get("subsection", parsed.subsection),
            **{q: to_float(activity.get(q)) for q in QUARTERS},
            CUMULATIVE_BALANCE_KEY: to_float(activity.get(CUMULATIVE_BALANCE_KEY)),
        })
    columns = ["code", "section", "subsection", *QUARTERS, CUMULATIVE_BALANCE_KEY]
    return pd.DataFrame(rows, columns=columns)


def _group_rollups(work: pd.DataFrame, key: str) -> dict[str, Rollup]:
    scoped = work.loc[work[key].notna() & (work[key] != "")]
    if scoped.empty:
        return {}
    grouped = scoped.groupby(key, sort=False)[[*QUARTERS, "total"]].sum()
    return {
        str(idx): Rollup(*(float(row[c]) for c in (*QUARTERS, "total")))
        for idx, row in grouped.iterrows()
    }


def compute_rollups_df(frame: pd.DataFrame) -> Rollups:
    """
    Vectorised ``compute_rollups`` over an ``activities_to_frame``-shaped frame.

    ``section``/``subsection`` columns are derived from ``code`` when absent.
    """
    if frame.empty:
        return Rollups()

    work = frame.copy()
    if "section" not in work.columns or "subsection" not in work.columns:
        parsed = work["code"].map(parse_code)
        work["section"] = parsed.map(lambda p: p.section)
        work["subsection"] = parsed.map(lambda p: p.subsection)

    for q in QUARTERS:
        if q not in work.columns:
            work[q] = np.nan
        work[q] = pd.to_numeric(work[q], errors="coerce").fillna(0.0)
    if CUMULATIVE_BALANCE_KEY in work.columns:
        balance = pd.to_numeric(work[CUMULATIVE_BALANCE_KEY], errors="coerce")
    else:
        balance = pd.Series(np.nan, index=work.index, dtype=float)
    raw_sum = work[list(QUARTERS)].sum(axis=1)
    work["total"] = balance.where(balance.notna(), raw_sum)

    return Rollups(
        by_section=_group_rollups(work, "section"),
        by_subsection=_group_rollups(work, "subsection"),
    )
