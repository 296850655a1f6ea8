"""
Compiled multi-facility execution report.

Wraps an ``AggregationResult`` into the ``CompiledExecution`` contract
(facility columns, report tree, section summaries, per-facility totals)
and flattens the tree into a DataFrame for tabular exports.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pandas as pd

from finexec.io.form_data import ExecutionRecord
from finexec.schemas import (
    ActivityRow,
    CompiledExecution,
    FacilityColumn,
    FacilityTotals,
    SectionSummary,
)
from finexec.services.aggregation import AggregationResult


def _facility_columns(records: Sequence[ExecutionRecord]) -> list[FacilityColumn]:
    columns: dict[str, FacilityColumn] = {}
    for record in records:
        if record.facility_key in columns:
            continue
        columns[record.facility_key] = FacilityColumn(
            id=record.facility_id,
            name=record.facility_name,
            facility_type=record.facility_type,
            project_type=record.project_type,
            has_data=bool(record.activities),
        )
    return list(columns.values())


def _section_summaries(rows: Sequence[ActivityRow]) -> list[SectionSummary]:
    return [
        SectionSummary(
            code=row.code,
            name=row.name,
            total=row.total,
            is_computed=row.is_computed,
            computation_formula=row.computation_formula,
        )
        for row in rows
        if row.is_section
    ]


def _facility_totals(rows: Sequence[ActivityRow], facility_ids: Sequence[str]) -> FacilityTotals:
    """Sum of section values per facility (computed sections included)."""
    by_facility = {fid: 0.0 for fid in facility_ids}
    for row in rows:
        if not row.is_section:
            continue
        for fid in facility_ids:
            by_facility[fid] += row.values.get(fid, 0.0)
    return FacilityTotals(by_facility=by_facility, grand_total=sum(by_facility.values()))


def build_compiled_report(result: AggregationResult) -> CompiledExecution:
    """Assemble the compiled report for one aggregation run."""
    return CompiledExecution(
        facilities=_facility_columns(result.records),
        activities=result.rows,
        sections=_section_summaries(result.rows),
        totals=_facility_totals(result.rows, result.facility_ids),
        warnings=list(result.warnings),
    )


# ── Tabular export ───────────────────────────────────────────────────────────

def _walk(rows: Sequence[ActivityRow], facility_ids: Sequence[str], out: list[dict[str, Any]]) -> None:
    for row in rows:
        out.append({
            "code": row.code,
            "name": row.name,
            "category": row.category,
            "subcategory": row.subcategory,
            "level": row.level,
            "is_section": row.is_section,
            "is_subcategory": row.is_subcategory,
            "is_computed": row.is_computed,
            **{fid: row.values.get(fid, 0.0) for fid in facility_ids},
            "total": row.total,
        })
        if row.items:
            _walk(row.items, facility_ids, out)


def rows_to_frame(rows: Sequence[ActivityRow], facility_ids: Sequence[str] | None = None) -> pd.DataFrame:
    """
    Depth-first flattening of the report tree: one row per node, one column
    per facility. Facility columns default to the union of ids in ``rows``.
    """
    if facility_ids is None:
        seen: dict[str, None] = {}
        for row in rows:
            seen.update(dict.fromkeys(row.values))
        facility_ids = list(seen)

    flat: list[dict[str, Any]] = []
    _walk(rows, facility_ids, flat)
    columns = [
        "code", "name", "category", "subcategory", "level",
        "is_section", "is_subcategory", "is_computed",
        *facility_ids, "total",
    ]
    return pd.DataFrame(flat, columns=columns)
