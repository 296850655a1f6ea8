"""Quarter keys and the two ways quarterly entries collapse into a year figure."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from finexec.io._utils import to_float

QUARTERS: tuple[str, ...] = ("q1", "q2", "q3", "q4")


def quarter_key(label: str) -> str:
    """Normalise ``"Q3"`` / ``"q3"`` / ``" q3 "`` to ``"q3"``."""
    key = str(label).strip().lower()
    if key not in QUARTERS:
        raise ValueError(f"Unknown quarter {label!r}. Expected one of Q1..Q4.")
    return key


@dataclass(frozen=True)
class QuarterlyValues:
    """Four optional quarterly entries; None means "not reported"."""
    q1: float | None = None
    q2: float | None = None
    q3: float | None = None
    q4: float | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> QuarterlyValues:
        """Read q1..q4 from an activity dict, keeping absent as None and 0 as 0."""
        if not data:
            return cls()
        return cls(*(to_float(data.get(q)) for q in QUARTERS))

    def as_tuple(self) -> tuple[float | None, float | None, float | None, float | None]:
        return (self.q1, self.q2, self.q3, self.q4)

    def is_empty(self) -> bool:
        return all(v is None for v in self.as_tuple())


@dataclass(frozen=True)
class QuarterTotals:
    """Fully-resolved per-facility figures: every quarter is a number."""
    q1: float = 0.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0
    total: float = 0.0

    def quarter_sum(self) -> float:
        return self.q1 + self.q2 + self.q3 + self.q4

    def __sub__(self, other: QuarterTotals) -> QuarterTotals:
        return QuarterTotals(
            q1=self.q1 - other.q1,
            q2=self.q2 - other.q2,
            q3=self.q3 - other.q3,
            q4=self.q4 - other.q4,
            total=self.total - other.total,
        )


ZERO_TOTALS = QuarterTotals()


def flow_sum(
    q1: float | None,
    q2: float | None,
    q3: float | None,
    q4: float | None,
) -> float:
    """Year-to-date sum; unreported quarters count as zero."""
    return (q1 or 0.0) + (q2 or 0.0) + (q3 or 0.0) + (q4 or 0.0)


def latest_defined(
    q1: float | None,
    q2: float | None,
    q3: float | None,
    q4: float | None,
) -> float | None:
    """Most recent reported quarter, scanning Q4 -> Q1. Explicit 0 counts."""
    for value in (q4, q3, q2, q1):
        if value is not None:
            return value
    return None


def latest_reported_quarter(values: QuarterlyValues) -> str | None:
    """Label (``"Q1"`` .. ``"Q4"``) of the most recent reported quarter."""
    for key, value in reversed(list(zip(QUARTERS, values.as_tuple()))):
        if value is not None:
            return key.upper()
    return None
