"""
Boundary normalisation for execution form data.

Stored form data holds ``activities`` either as a list of activity dicts
or as a dict keyed by code. Everything past this module sees one shape:
an insertion-ordered ``dict[code, activity]``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from finexec.execution_config.classifier import parse_code
from finexec.io._utils import first_present, has_valid_code, to_text

_log = logging.getLogger(__name__)


# ── Activity collections ─────────────────────────────────────────────────────

def raw_activity_list(form_data: Mapping[str, Any] | None) -> list[Any]:
    """Activities as a list, whatever the stored shape. Unknown shapes -> []."""
    if not isinstance(form_data, Mapping):
        return []
    raw = form_data.get("activities")
    if isinstance(raw, Mapping):
        return list(raw.values())
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return []


def normalize_activities(raw: Any) -> dict[str, dict[str, Any]]:
    """
    Array-or-mapping activities -> ordered ``{code: activity}``.

    The activity's own ``code`` field is authoritative, also for mapping
    input. Entries without a usable code are dropped. Later duplicates
    overwrite earlier ones.
    """
    if isinstance(raw, Mapping):
        rows: list[Any] = list(raw.values())
    elif isinstance(raw, (list, tuple)):
        rows = list(raw)
    else:
        return {}

    keyed: dict[str, dict[str, Any]] = {}
    for activity in rows:
        if not has_valid_code(activity):
            continue
        keyed[activity["code"]] = dict(activity)
    return keyed


def to_keyed_activities(raw: Any) -> dict[str, dict[str, Any]]:
    """Normalised activities annotated with ``section`` / ``subsection``."""
    out: dict[str, dict[str, Any]] = {}
    for code, activity in normalize_activities(raw).items():
        parsed = parse_code(code)
        out[code] = {**activity, "section": parsed.section, "subsection": parsed.subsection}
    return out


def activity_label(activity: Mapping[str, Any]) -> str | None:
    return to_text(first_present(activity, "name", "label"))


# ── Execution records ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExecutionRecord:
    """One facility's stored execution submission for a reporting period."""
    id: int | str
    form_data: Any
    facility_id: int | str
    facility_name: str
    facility_type: str
    project_type: str
    year: int | None = None
    quarter: str | None = None
    computed_values: Mapping[str, Any] | None = None

    @property
    def facility_key(self) -> str:
        """Facility id as used for ``ActivityRow.values`` keys."""
        return str(self.facility_id)

    @property
    def activities(self) -> dict[str, dict[str, Any]]:
        if not isinstance(self.form_data, Mapping):
            return {}
        return normalize_activities(self.form_data.get("activities"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ExecutionRecord:
        """Build from a caller row; accepts camelCase or snake_case keys."""
        return cls(
            id=first_present(data, "id"),
            form_data=first_present(data, "form_data", "formData"),
            facility_id=first_present(data, "facility_id", "facilityId"),
            facility_name=str(first_present(data, "facility_name", "facilityName") or ""),
            facility_type=str(first_present(data, "facility_type", "facilityType") or ""),
            project_type=str(first_present(data, "project_type", "projectType") or ""),
            year=first_present(data, "year"),
            quarter=first_present(data, "quarter"),
            computed_values=first_present(data, "computed_values", "computedValues"),
        )


@dataclass
class CleanupResult:
    records: list[ExecutionRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def clean_execution_records(records: list[ExecutionRecord]) -> CleanupResult:
    """
    Drop records with non-mapping form data and activities without a code.

    Surviving records come back with ``form_data["activities"]`` normalised
    to an ordered code-keyed dict. Problems are collected as warning strings;
    the batch always proceeds.
    """
    result = CleanupResult()
    for record in records:
        if not isinstance(record.form_data, Mapping):
            msg = f"Facility {record.facility_name}: Invalid form data structure"
            _log.warning(msg)
            result.warnings.append(msg)
            continue

        raw_rows = raw_activity_list(record.form_data)
        valid = normalize_activities(record.form_data.get("activities"))
        dropped = sum(1 for row in raw_rows if not has_valid_code(row))
        if dropped:
            msg = f"Facility {record.facility_name}: Filtered out {dropped} invalid activities"
            _log.warning(msg)
            result.warnings.append(msg)

        result.records.append(
            replace(record, form_data={**record.form_data, "activities": valid})
        )
    return result
