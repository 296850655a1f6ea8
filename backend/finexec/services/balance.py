"""
Cumulative balance calculation.

Collapses up to four quarterly entries into one year-to-date figure:

    FLOW  (A, B, C)  -> sum of quarters, unreported quarters count as 0
    STOCK (D, E, F)  -> latest reported quarter (Q4 -> Q1), explicit 0 kept,
                        None when nothing was reported
    MIXED (G)        -> per item, see classifier.is_flow_item
    anything else    -> FLOW

F is never stored independently; it is D - E and inherits stock semantics.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from finexec.core.quarters import QuarterlyValues, flow_sum, latest_defined
from finexec.execution_config.classifier import parse_code, resolve_item_kind
from finexec.execution_config.schema import SectionKind
from finexec.io.form_data import activity_label

CUMULATIVE_BALANCE_KEY = "cumulative_balance"


def calculate_cumulative_balance(
    q1: float | None = None,
    q2: float | None = None,
    q3: float | None = None,
    q4: float | None = None,
    section: str | None = None,
    subsection: str | None = None,
    code: str | None = None,
    label: str | None = None,
) -> float | None:
    """
    Year-to-date balance for one activity.

    ``code`` and ``label`` only matter for Section G. Never raises; a stock
    item with no reported quarter returns None.
    """
    kind = resolve_item_kind(section, subsection, code=code, label=label)
    if kind is SectionKind.STOCK:
        return latest_defined(q1, q2, q3, q4)
    return flow_sum(q1, q2, q3, q4)


def balance_for_activity(code: str, activity: Mapping[str, Any]) -> float | None:
    """Cumulative balance for a stored activity dict, classified from its code."""
    parsed = parse_code(code)
    values = QuarterlyValues.from_mapping(activity)
    return calculate_cumulative_balance(
        *values.as_tuple(),
        section=parsed.section,
        subsection=parsed.subsection,
        code=code,
        label=activity_label(activity),
    )


def add_cumulative_balances(
    activities: Mapping[str, Mapping[str, Any]],
) -> dict[str, dict[str, Any]]:
    """
    Return a copy of ``activities`` with ``cumulative_balance`` on every entry.

    Numeric strings are coerced for the calculation, but the stored quarter
    fields are left exactly as reported. Any previously stored balance is
    replaced.
    """
    enriched: dict[str, dict[str, Any]] = {}
    for code, activity in activities.items():
        enriched[code] = {
            **activity,
            CUMULATIVE_BALANCE_KEY: balance_for_activity(code, activity),
        }
    return enriched
