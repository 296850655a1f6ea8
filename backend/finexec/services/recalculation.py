"""
Form-data recalculation: normalise -> balances -> rollups -> statement.

This is what runs on every create/update of a facility's execution
submission. The result is persisted verbatim by the caller as the form-data
snapshot (activities with ``cumulative_balance`` plus rollups) and the
statement as ``computedValues``.

``ExecutionEngine`` bundles the tolerance and an optional caller-owned
cache; there is no module-level state.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from finexec.config import BALANCE_TOLERANCE, SNAPSHOT_VERSION
from finexec.core.quarters import QuarterlyValues, latest_reported_quarter, quarter_key
from finexec.io.form_data import normalize_activities, to_keyed_activities
from finexec.schemas import BalanceValidationError, StatementBalances
from finexec.services.balance import CUMULATIVE_BALANCE_KEY, add_cumulative_balances
from finexec.services.rollups import Rollups, compute_rollups
from finexec.services.statement import to_balances, validate_quarterly_balance, with_validation

_log = logging.getLogger(__name__)


@dataclass
class Recalculation:
    """Everything derived from one submission's form data."""
    activities: dict[str, dict[str, Any]]
    rollups: Rollups
    balances: StatementBalances
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_form_data(self, base: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Form data to persist: ``base`` fields plus recalculated activities/rollups."""
        return {
            **(base or {}),
            "activities": self.activities,
            "rollups": self.rollups.to_dict(),
        }


# ── Pure pipeline steps ──────────────────────────────────────────────────────

def _form_activities(form_data: Mapping[str, Any] | None) -> Any:
    if not isinstance(form_data, Mapping):
        return None
    return form_data.get("activities")


def enrich_form_data(
    form_data: Mapping[str, Any] | None,
    context: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Snapshot ``{version, context, activities, rollups}`` for one submission.

    Activities may arrive as a list or a code-keyed dict; the snapshot always
    holds a code-keyed dict annotated with section, subsection and
    cumulative balance.
    """
    keyed = to_keyed_activities(_form_activities(form_data))
    activities = add_cumulative_balances(keyed)
    rollups = compute_rollups(activities)
    return {
        "version": SNAPSHOT_VERSION,
        "context": dict(context or {}),
        "activities": activities,
        "rollups": rollups.to_dict(),
    }


def _last_quarter_reported(
    form_data: Mapping[str, Any] | None,
    context: Mapping[str, Any],
    activities: Mapping[str, Mapping[str, Any]],
) -> str | None:
    explicit = context.get("quarter")
    if not explicit and isinstance(form_data, Mapping):
        explicit = form_data.get("quarter")
    if explicit:
        try:
            return quarter_key(explicit).upper()
        except ValueError:
            _log.warning("Ignoring unrecognised quarter %r; inferring from activities", explicit)

    latest: str | None = None
    for activity in activities.values():
        candidate = latest_reported_quarter(QuarterlyValues.from_mapping(activity))
        if candidate is not None and (latest is None or candidate > latest):
            latest = candidate
    return latest


def recalculate_execution_data(
    form_data: Mapping[str, Any] | None,
    context: Mapping[str, Any] | None = None,
    *,
    tolerance: float = BALANCE_TOLERANCE,
    reported_at: str | None = None,
) -> Recalculation:
    """
    Full recalculation of one submission.

    ``context`` may carry ``quarter`` (``"Q1"``..``"Q4"``); otherwise the form's
    own ``quarter`` or the latest quarter any activity reports is recorded
    as ``lastQuarterReported``. ``reported_at`` is copied into the metadata
    untouched so the result stays deterministic.
    """
    context = context or {}
    keyed = to_keyed_activities(_form_activities(form_data))
    activities = add_cumulative_balances(keyed)
    rollups = compute_rollups(activities)
    balances = to_balances(rollups, tolerance=tolerance)

    metadata: dict[str, Any] = {
        "lastQuarterReported": _last_quarter_reported(form_data, context, activities),
    }
    if reported_at is not None:
        metadata["lastReportedAt"] = reported_at

    _log.debug(
        "Recalculated %d activities across %d sections (balanced=%s)",
        len(activities), len(rollups.by_section), balances.is_balanced,
    )
    return Recalculation(
        activities=activities,
        rollups=rollups,
        balances=balances,
        metadata=metadata,
    )


def validate_recalculation(result: Recalculation) -> tuple[bool, list[str]]:
    """Structural sanity check before persisting a recalculation."""
    errors: list[str] = []
    for code, activity in result.activities.items():
        if CUMULATIVE_BALANCE_KEY not in activity:
            errors.append(f"Activity {code} is missing cumulative_balance")
        section = activity.get("section")
        if section and section not in result.rollups.by_section:
            errors.append(f"Section {section} of activity {code} has no rollup")
    return (not errors, errors)


def merge_form_data(
    existing: Mapping[str, Any] | None,
    update: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """
    Merge an update into stored form data.

    Top-level keys are merged shallowly; activities are merged per code so
    that an update reporting a new quarter keeps the quarters stored before.
    The result always holds activities as a code-keyed dict.
    """
    existing = existing or {}
    update = update or {}
    merged: dict[str, Any] = {**existing, **update}

    old = normalize_activities(existing.get("activities"))
    new = normalize_activities(update.get("activities"))
    activities = {code: dict(activity) for code, activity in old.items()}
    for code, activity in new.items():
        activities[code] = {**activities.get(code, {}), **activity}
    merged["activities"] = activities
    return merged


# ── Engine value ─────────────────────────────────────────────────────────────

def activity_set_hash(
    form_data: Mapping[str, Any] | None,
    context: Mapping[str, Any] | None = None,
    *,
    tolerance: float | None = None,
) -> str:
    """
    SHA-256 of the normalised activity set, context and (when given) the
    balance tolerance, stable across key order.
    """
    payload = {
        "activities": normalize_activities(_form_activities(form_data)),
        "quarter": (form_data or {}).get("quarter") if isinstance(form_data, Mapping) else None,
        "context": dict(context or {}),
        "tolerance": tolerance,
    }
    blob = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class ExecutionEngine:
    """
    Explicit, constructible engine for per-submission work.

    ``cache`` is any mutable mapping the caller owns (a dict, an LRU, ...);
    results are keyed by ``activity_set_hash`` including the engine's
    tolerance, so engines sharing one cache never mix results. Hits are
    handed out as deep copies.
    """

    def __init__(
        self,
        tolerance: float = BALANCE_TOLERANCE,
        cache: MutableMapping[str, Recalculation] | None = None,
    ) -> None:
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")
        self.tolerance = tolerance
        self.cache = cache

    def recalculate(
        self,
        form_data: Mapping[str, Any] | None,
        context: Mapping[str, Any] | None = None,
    ) -> Recalculation:
        if self.cache is None:
            return recalculate_execution_data(form_data, context, tolerance=self.tolerance)

        key = activity_set_hash(form_data, context, tolerance=self.tolerance)
        cached = self.cache.get(key)
        if cached is None:
            cached = recalculate_execution_data(form_data, context, tolerance=self.tolerance)
            self.cache[key] = cached
        else:
            _log.debug("Recalculation cache hit %s", key[:12])
        return copy.deepcopy(cached)

    def balances(
        self,
        form_data: Mapping[str, Any] | None,
        context: Mapping[str, Any] | None = None,
    ) -> StatementBalances:
        return self.recalculate(form_data, context).balances

    def validate(
        self,
        form_data: Mapping[str, Any] | None,
        context: Mapping[str, Any] | None = None,
    ) -> StatementBalances:
        """Balances with per-quarter identity errors attached."""
        balances = self.balances(form_data, context)
        errors: list[BalanceValidationError] = validate_quarterly_balance(balances, self.tolerance)
        return with_validation(balances, errors)
