"""
Cross-facility aggregation of execution data.

Facilities of different types (hospital, health center, ...) report against
different activity catalogs whose codes differ but whose structure lines up
on ``(category, subcategory, display_order)``. This module:

  1. cleans the batch (bad form data / code-less activities -> warnings),
  2. unifies the per-type catalogs on that structural key,
  3. extracts each facility's figures under its own codes,
  4. derives Surplus (C = A - B) and Net Financial Assets (F = D - E),
  5. builds the section -> subsection -> activity report tree.

Matching is exact on code, with a case-insensitive exact fallback. Partial
or prefix matches never count.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from finexec.config import LARGE_BATCH_THRESHOLD
from finexec.core.quarters import QUARTERS, ZERO_TOTALS, QuarterTotals
from finexec.execution_config.schema import (
    NET_FINANCIAL_ASSETS,
    PERIOD_SURPLUS_LABEL,
    SECTION_LABELS,
    SECTION_ORDER,
    SECTIONS_BY_CODE,
    SUBSECTION_LABELS,
    SUMMED_SECTIONS,
    SURPLUS_DEFICIT,
    UNKNOWN_DISPLAY_ORDER,
)
from finexec.io._utils import first_present, to_float, to_float_or_zero, to_text
from finexec.io.form_data import ExecutionRecord, clean_execution_records, normalize_activities
from finexec.schemas import ActivityRow

_log = logging.getLogger(__name__)

# activity code -> facility id -> figures
AggregatedData = dict[str, dict[str, QuarterTotals]]

SURPLUS_KEY = "surplus"
NET_FINANCIAL_ASSETS_KEY = "net_financial_assets"

_TOTAL_ROW_NAME = re.compile(r"^[A-G]\.\s")
_TRAILING_NUMBER = re.compile(r"(\d+)$")


# ── Catalog types ────────────────────────────────────────────────────────────

CatalogKey = tuple[str, str, int]


@dataclass(frozen=True)
class ActivityCatalogEntry:
    """Static reference row for one activity of one (program, facility type)."""
    code: str
    name: str
    category: str
    subcategory: str | None = None
    display_order: int = 0
    is_total_row: bool = False
    is_computed: bool = False
    computation_formula: str | None = None

    @property
    def key(self) -> CatalogKey:
        return (self.category, self.subcategory or "none", self.display_order)

    @property
    def is_summary_row(self) -> bool:
        """Total rows are flagged, or named like ``"A. Receipts"``."""
        return self.is_total_row or bool(_TOTAL_ROW_NAME.match(self.name))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ActivityCatalogEntry:
        order = to_float(first_present(data, "display_order", "displayOrder"))
        return cls(
            code=str(data["code"]),
            name=str(data.get("name") or ""),
            category=str(data.get("category") or ""),
            subcategory=to_text(data.get("subcategory")),
            display_order=int(order) if order is not None else 0,
            is_total_row=bool(first_present(data, "is_total_row", "isTotalRow")),
            is_computed=bool(first_present(data, "is_computed", "isComputed")),
            computation_formula=to_text(first_present(data, "computation_formula", "computationFormula")),
        )


@dataclass(frozen=True)
class UnifiedActivity(ActivityCatalogEntry):
    """A catalog entry merged across every facility type sharing its key."""
    facility_types: tuple[str, ...] = ()
    source_code: str = ""


def _as_entry(row: ActivityCatalogEntry | Mapping[str, Any]) -> ActivityCatalogEntry:
    if isinstance(row, ActivityCatalogEntry):
        return row
    return ActivityCatalogEntry.from_mapping(row)


def _as_catalog(rows: Iterable[ActivityCatalogEntry | Mapping[str, Any]]) -> list[ActivityCatalogEntry]:
    return [_as_entry(r) for r in rows]


# ── Per-facility activity lookup ─────────────────────────────────────────────

@dataclass(frozen=True)
class _ActivityLookup:
    """One facility's code-keyed activities plus a lower-cased code index."""
    activities: Mapping[str, Any]
    by_lower: Mapping[str, str]

    @classmethod
    def of(cls, activities: Mapping[str, Any]) -> _ActivityLookup:
        by_lower: dict[str, str] = {}
        for code in activities:
            by_lower.setdefault(code.lower(), code)
        return cls(activities=activities, by_lower=by_lower)

    def match(self, code: str) -> str | None:
        if code in self.activities:
            return code
        return self.by_lower.get(code.lower())

    def totals(self, code: str) -> QuarterTotals:
        """Figures for ``code``; zeros when the facility has no such activity."""
        matched = self.match(code)
        if matched is None:
            return ZERO_TOTALS
        activity = self.activities[matched]
        q1, q2, q3, q4 = (to_float_or_zero(activity.get(q)) for q in QUARTERS)
        stored = to_float(first_present(activity, "cumulative_balance", "cumulativeBalance"))
        total = stored if stored is not None else q1 + q2 + q3 + q4
        return QuarterTotals(q1=q1, q2=q2, q3=q3, q4=q4, total=total)


# ── Results ──────────────────────────────────────────────────────────────────

@dataclass
class AggregationResult:
    rows: list[ActivityRow]
    aggregated: AggregatedData
    computed: dict[str, dict[str, QuarterTotals]]
    unified_catalog: list[UnifiedActivity]
    records: list[ExecutionRecord]
    facility_ids: list[str]
    warnings: list[str] = field(default_factory=list)


# ── Service ──────────────────────────────────────────────────────────────────

class AggregationService:
    """
    Stateless multi-facility aggregation. Construct once per configuration;
    every method is a pure function of its arguments.
    """

    def __init__(self, large_batch_threshold: int = LARGE_BATCH_THRESHOLD) -> None:
        self.large_batch_threshold = large_batch_threshold

    # ── 1. Cleanup ──────────────────────────────────────────────────────────

    def handle_missing_activity_data(
        self,
        records: Sequence[ExecutionRecord | Mapping[str, Any]],
    ) -> tuple[list[ExecutionRecord], list[str]]:
        """Filter malformed records/activities; return (cleaned, warnings)."""
        typed = [r if isinstance(r, ExecutionRecord) else ExecutionRecord.from_mapping(r) for r in records]
        result = clean_execution_records(typed)
        return result.records, result.warnings

    # ── 2. Catalog unification ──────────────────────────────────────────────

    def build_unified_catalog(
        self,
        catalogs_by_type: Mapping[str, Iterable[ActivityCatalogEntry | Mapping[str, Any]]],
    ) -> list[UnifiedActivity]:
        """
        Merge per-facility-type catalogs on ``(category, subcategory, display_order)``.

        The first facility type to contribute a key provides code, name and
        flags; later types only extend ``facility_types``. Sorted by category,
        then display order.
        """
        first_seen: dict[CatalogKey, ActivityCatalogEntry] = {}
        types_by_key: dict[CatalogKey, list[str]] = {}
        sizes: dict[str, int] = {}

        for facility_type, rows in catalogs_by_type.items():
            catalog = _as_catalog(rows)
            sizes[facility_type] = len(catalog)
            for entry in catalog:
                first_seen.setdefault(entry.key, entry)
                types = types_by_key.setdefault(entry.key, [])
                if facility_type not in types:
                    types.append(facility_type)

        unified = [
            UnifiedActivity(
                code=entry.code,
                name=entry.name,
                category=entry.category,
                subcategory=entry.subcategory,
                display_order=entry.display_order,
                is_total_row=entry.is_total_row,
                is_computed=entry.is_computed,
                computation_formula=entry.computation_formula,
                facility_types=tuple(types_by_key[key]),
                source_code=entry.code,
            )
            for key, entry in first_seen.items()
        ]
        unified.sort(key=lambda a: (a.category, a.display_order))

        single = sum(1 for a in unified if len(a.facility_types) == 1)
        _log.info(
            "Unified catalog: %d activities from %d facility types %s",
            len(unified), len(sizes), sizes,
        )
        if single:
            _log.info(
                "%d activities exist in only one facility type; other types report zero for them",
                single,
            )
        return unified

    # ── 3. Matching and extraction ──────────────────────────────────────────

    def match_activity_code(self, activity_code: str, available_codes: Iterable[str]) -> str | None:
        """Exact match, then case-insensitive exact match, else None."""
        return _ActivityLookup.of(dict.fromkeys(available_codes)).match(activity_code)

    def extract_activity_values(self, form_data: Mapping[str, Any] | None, activity_code: str) -> QuarterTotals:
        """
        One facility's figures for one activity.

        Missing activity -> zeros. Unreported quarters -> 0. The stored
        cumulative balance is trusted as ``total`` when present; otherwise the
        quarters are summed (snapshots written before balances existed).
        """
        if not isinstance(form_data, Mapping):
            return ZERO_TOTALS
        lookup = _ActivityLookup.of(normalize_activities(form_data.get("activities")))
        return lookup.totals(activity_code)

    def sum_quarterly_values(self, values: Iterable[QuarterTotals]) -> QuarterTotals:
        """
        Element-wise sum. ``total`` is the sum of totals, never re-derived from
        the quarters, so stock-resolved totals stay stock-resolved.
        """
        q1 = q2 = q3 = q4 = total = 0.0
        for v in values:
            q1 += v.q1
            q2 += v.q2
            q3 += v.q3
            q4 += v.q4
            total += v.total
        return QuarterTotals(q1=q1, q2=q2, q3=q3, q4=q4, total=total)

    # ── 4. Aggregation ──────────────────────────────────────────────────────

    def aggregate_by_activity(
        self,
        records: Sequence[ExecutionRecord],
        catalog: Iterable[ActivityCatalogEntry | Mapping[str, Any]],
    ) -> AggregatedData:
        """Single-catalog aggregation: every facility is read under the catalog's codes."""
        entries = _as_catalog(catalog)
        aggregated: AggregatedData = {entry.code: {} for entry in entries}

        for record in records:
            facility_id = record.facility_key
            lookup = _ActivityLookup.of(record.activities)
            for entry in entries:
                aggregated[entry.code][facility_id] = lookup.totals(entry.code)
        return aggregated

    def aggregate_by_activity_with_multiple_catalogs(
        self,
        records: Sequence[ExecutionRecord],
        facility_catalogs: Mapping[str, Iterable[ActivityCatalogEntry | Mapping[str, Any]]],
        unified_catalog: Sequence[UnifiedActivity],
    ) -> tuple[AggregatedData, list[str]]:
        """
        Aggregate facilities that use different catalogs.

        ``facility_catalogs`` maps facility id (as str) to that facility's own
        catalog. For each unified activity the facility entry with the same
        structural key is looked up and its code read from the facility's
        data. Facilities with no catalog get zeros for every activity and a
        warning; they are never dropped.
        """
        aggregated: AggregatedData = {a.code: {} for a in unified_catalog}
        warnings: list[str] = []

        if len(records) > self.large_batch_threshold:
            _log.warning(
                "Aggregating %d facilities (threshold %d); consider narrowing the filters",
                len(records), self.large_batch_threshold,
            )

        indexes: dict[str, dict[CatalogKey, ActivityCatalogEntry]] = {
            str(fid): {entry.key: entry for entry in _as_catalog(rows)}
            for fid, rows in facility_catalogs.items()
        }

        matches = 0
        mismatches = 0
        for record in records:
            facility_id = record.facility_key
            index = indexes.get(facility_id)
            if not index:
                msg = (
                    f"Facility {record.facility_name} ({facility_id}, type {record.facility_type}): "
                    "no activity catalog; all activities reported as zero"
                )
                _log.warning(msg)
                warnings.append(msg)
                for activity in unified_catalog:
                    aggregated[activity.code][facility_id] = ZERO_TOTALS
                continue

            lookup = _ActivityLookup.of(record.activities)
            facility_matches = 0
            for activity in unified_catalog:
                entry = index.get(activity.key)
                matched = lookup.match(entry.code) if entry else None
                if matched is None:
                    aggregated[activity.code][facility_id] = ZERO_TOTALS
                    mismatches += 1
                    if entry is not None:
                        _log.debug(
                            "Facility %s: %s maps to %s but the code is not in its data",
                            facility_id, activity.code, entry.code,
                        )
                    continue
                aggregated[activity.code][facility_id] = lookup.totals(matched)
                facility_matches += 1
                matches += 1

            _log.debug(
                "Facility %s: %d/%d unified activities matched",
                facility_id, facility_matches, len(unified_catalog),
            )

        if mismatches:
            _log.info(
                "%.2f%% of activity lookups had no data (%d of %d)",
                mismatches / (matches + mismatches) * 100, mismatches, matches + mismatches,
            )
        return aggregated, warnings

    # ── 5. Derived sections ─────────────────────────────────────────────────

    @staticmethod
    def _facility_ids(aggregated: AggregatedData) -> list[str]:
        ids: dict[str, None] = {}
        for per_facility in aggregated.values():
            ids.update(dict.fromkeys(per_facility))
        return list(ids)

    def _section_totals(
        self,
        aggregated: AggregatedData,
        catalog: Sequence[ActivityCatalogEntry],
        section: str,
        facility_id: str,
    ) -> QuarterTotals:
        return self.sum_quarterly_values(
            aggregated.get(entry.code, {}).get(facility_id, ZERO_TOTALS)
            for entry in catalog
            if entry.category == section and not entry.is_summary_row
        )

    def calculate_computed_values(
        self,
        aggregated: AggregatedData,
        catalog: Iterable[ActivityCatalogEntry | Mapping[str, Any]],
    ) -> dict[str, dict[str, QuarterTotals]]:
        """
        Per facility: ``surplus`` = A - B and ``net_financial_assets`` = D - E.

        Section sums skip total rows. D and E totals are already stock-resolved
        per activity, so F's total is a difference of latest balances.
        """
        entries = _as_catalog(catalog)
        computed: dict[str, dict[str, QuarterTotals]] = {SURPLUS_KEY: {}, NET_FINANCIAL_ASSETS_KEY: {}}
        for facility_id in self._facility_ids(aggregated):
            totals = {s: self._section_totals(aggregated, entries, s, facility_id) for s in SUMMED_SECTIONS}
            computed[SURPLUS_KEY][facility_id] = totals["A"] - totals["B"]
            computed[NET_FINANCIAL_ASSETS_KEY][facility_id] = totals["D"] - totals["E"]
        return computed

    # ── 6. Report tree ──────────────────────────────────────────────────────

    @staticmethod
    def _leaf(
        entry: ActivityCatalogEntry,
        values: dict[str, float],
        level: int,
        *,
        computed_formula: str | None = None,
    ) -> ActivityRow:
        return ActivityRow(
            code=entry.code,
            name=entry.name,
            category=entry.category,
            subcategory=entry.subcategory,
            display_order=entry.display_order,
            level=level,
            is_section=False,
            is_subcategory=False,
            is_computed=entry.is_computed or computed_formula is not None,
            computation_formula=computed_formula or entry.computation_formula,
            values=values,
            total=sum(values.values()),
        )

    @staticmethod
    def _sum_items(items: Sequence[ActivityRow], facility_ids: Sequence[str]) -> dict[str, float]:
        return {fid: sum(item.values.get(fid, 0.0) for item in items) for fid in facility_ids}

    @staticmethod
    def _subsection_order(subsection: str) -> int:
        match = _TRAILING_NUMBER.search(subsection)
        return int(match.group(1)) if match else UNKNOWN_DISPLAY_ORDER

    def _computed_section(
        self,
        section: str,
        key: str,
        computed: Mapping[str, Mapping[str, QuarterTotals]],
        facility_ids: Sequence[str],
    ) -> ActivityRow:
        sdef = SECTIONS_BY_CODE[section]
        per_facility = computed.get(key, {})
        values = {fid: per_facility.get(fid, ZERO_TOTALS).total for fid in facility_ids}
        return ActivityRow(
            code=section,
            name=sdef.label,
            category=section,
            display_order=sdef.display_order,
            level=0,
            is_section=True,
            is_subcategory=False,
            is_computed=True,
            computation_formula=sdef.computation_formula,
            values=values,
            total=sum(values.values()),
            items=[],
        )

    def build_hierarchical_structure(
        self,
        aggregated: AggregatedData,
        computed: Mapping[str, Mapping[str, QuarterTotals]],
        catalog: Iterable[ActivityCatalogEntry | Mapping[str, Any]],
        subcategory_names: Mapping[str, str] | None = None,
    ) -> list[ActivityRow]:
        """
        Sections A–G in fixed order with one value per facility.

        - C and F are computed, leafless nodes (``A - B`` / ``D - E``).
        - B groups its leaves under subsection nodes (level 1, leaves level 2).
        - The "Surplus/Deficit of the Period" leaf in G is replaced by the
          computed surplus.
        - Total rows are skipped; sections with no catalog activities are omitted.
        """
        entries = _as_catalog(catalog)
        names = {**SUBSECTION_LABELS, **(subcategory_names or {})}
        facility_ids = self._facility_ids(aggregated)

        def leaf_values(code: str) -> dict[str, float]:
            per_facility = aggregated.get(code, {})
            return {fid: per_facility.get(fid, ZERO_TOTALS).total for fid in facility_ids}

        rows: list[ActivityRow] = []
        for section in SECTION_ORDER:
            if section == SURPLUS_DEFICIT.code:
                rows.append(self._computed_section(section, SURPLUS_KEY, computed, facility_ids))
                continue
            if section == NET_FINANCIAL_ASSETS.code:
                rows.append(self._computed_section(section, NET_FINANCIAL_ASSETS_KEY, computed, facility_ids))
                continue

            members = sorted(
                (e for e in entries if e.category == section),
                key=lambda e: e.display_order,
            )
            if not members:
                continue
            leaves = [e for e in members if not e.is_summary_row]

            items: list[ActivityRow] = []
            if section == "B":
                for subsection in sorted({e.subcategory for e in leaves if e.subcategory}):
                    sub_items = [self._leaf(e, leaf_values(e.code), 2) for e in leaves if e.subcategory == subsection]
                    sub_values = self._sum_items(sub_items, facility_ids)
                    items.append(ActivityRow(
                        code=subsection,
                        name=names.get(subsection, subsection),
                        category=section,
                        subcategory=subsection,
                        display_order=self._subsection_order(subsection),
                        level=1,
                        is_section=False,
                        is_subcategory=True,
                        is_computed=False,
                        values=sub_values,
                        total=sum(sub_values.values()),
                        items=sub_items,
                    ))
                items.extend(self._leaf(e, leaf_values(e.code), 1) for e in leaves if not e.subcategory)
            else:
                surplus = computed.get(SURPLUS_KEY, {})
                for e in leaves:
                    if section == "G" and PERIOD_SURPLUS_LABEL in e.name.lower():
                        values = {fid: surplus.get(fid, ZERO_TOTALS).total for fid in facility_ids}
                        items.append(self._leaf(e, values, 1, computed_formula=SURPLUS_DEFICIT.computation_formula))
                    else:
                        items.append(self._leaf(e, leaf_values(e.code), 1))

            section_values = self._sum_items(items, facility_ids)
            sdef = SECTIONS_BY_CODE[section]
            rows.append(ActivityRow(
                code=section,
                name=SECTION_LABELS[section],
                category=section,
                display_order=sdef.display_order,
                level=0,
                is_section=True,
                is_subcategory=False,
                is_computed=False,
                values=section_values,
                total=sum(section_values.values()),
                items=items,
            ))
        return rows

    # ── 7. Whole pipeline ───────────────────────────────────────────────────

    def aggregate(
        self,
        records: Sequence[ExecutionRecord | Mapping[str, Any]],
        catalogs_by_type: Mapping[str, Iterable[ActivityCatalogEntry | Mapping[str, Any]]],
        subcategory_names: Mapping[str, str] | None = None,
    ) -> AggregationResult:
        """
        Clean -> unify -> aggregate -> derive -> tree, for one request.

        Each record's catalog is chosen by its ``facility_type``; records whose
        type has no catalog still appear, with zeros.
        """
        cleaned, warnings = self.handle_missing_activity_data(records)
        catalogs = {ftype: _as_catalog(rows) for ftype, rows in catalogs_by_type.items()}
        unified = self.build_unified_catalog(catalogs)

        facility_catalogs = {
            r.facility_key: catalogs[r.facility_type]
            for r in cleaned
            if r.facility_type in catalogs
        }
        aggregated, agg_warnings = self.aggregate_by_activity_with_multiple_catalogs(
            cleaned, facility_catalogs, unified,
        )
        computed = self.calculate_computed_values(aggregated, unified)
        rows = self.build_hierarchical_structure(aggregated, computed, unified, subcategory_names)

        return AggregationResult(
            rows=rows,
            aggregated=aggregated,
            computed=computed,
            unified_catalog=unified,
            records=cleaned,
            facility_ids=[r.facility_key for r in cleaned],
            warnings=[*warnings, *agg_warnings],
        )
