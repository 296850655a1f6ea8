"""Core value objects: quarter keys, quarterly entries, flow and stock collapse."""

from finexec.core.quarters import (
    QUARTERS,
    ZERO_TOTALS,
    QuarterlyValues,
    QuarterTotals,
    flow_sum,
    latest_defined,
    latest_reported_quarter,
    quarter_key,
)

__all__ = [
    "QUARTERS",
    "ZERO_TOTALS",
    "QuarterlyValues",
    "QuarterTotals",
    "flow_sum",
    "latest_defined",
    "latest_reported_quarter",
    "quarter_key",
]
