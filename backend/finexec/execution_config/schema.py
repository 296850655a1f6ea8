"""
Execution statement schema definition.

SINGLE SOURCE OF TRUTH for the statement structure used throughout
FinExec: balance calculation, rollups, statement assembly and the
multi-facility report tree.

Sections::

    A  Receipts                 flow
    B  Expenditures             flow   (subsections B-01 .. B-05)
    C  Surplus / Deficit        flow   (computed: A - B)
    D  Financial Assets         stock
    E  Financial Liabilities    stock
    F  Net Financial Assets     stock  (computed: D - E)
    G  Closing Balance          mixed  (per-item keyword heuristic)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SectionKind(str, Enum):
    """How quarterly entries collapse into one cumulative balance."""
    FLOW = "flow"
    STOCK = "stock"
    MIXED = "mixed"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class SectionDef:
    """One statement section (e.g. D = Financial Assets)."""
    code: str
    label: str
    kind: SectionKind
    display_order: int
    computation_formula: str | None = None

    @property
    def is_computed(self) -> bool:
        return self.computation_formula is not None


# ═════════════════════════════════════════════════════════════════════════════
# CANONICAL SECTIONS
# ═════════════════════════════════════════════════════════════════════════════

RECEIPTS              = SectionDef("A", "Receipts",              SectionKind.FLOW,  100)
EXPENDITURES          = SectionDef("B", "Expenditures",          SectionKind.FLOW,  200)
SURPLUS_DEFICIT       = SectionDef("C", "Surplus / Deficit",     SectionKind.FLOW,  300, "A - B")
FINANCIAL_ASSETS      = SectionDef("D", "Financial Assets",      SectionKind.STOCK, 400)
FINANCIAL_LIABILITIES = SectionDef("E", "Financial Liabilities", SectionKind.STOCK, 500)
NET_FINANCIAL_ASSETS  = SectionDef("F", "Net Financial Assets",  SectionKind.STOCK, 600, "D - E")
CLOSING_BALANCE       = SectionDef("G", "Closing Balance",       SectionKind.MIXED, 700)

ALL_SECTIONS = (
    RECEIPTS,
    EXPENDITURES,
    SURPLUS_DEFICIT,
    FINANCIAL_ASSETS,
    FINANCIAL_LIABILITIES,
    NET_FINANCIAL_ASSETS,
    CLOSING_BALANCE,
)

# ═════════════════════════════════════════════════════════════════════════════
# EXPENDITURE SUBSECTIONS
# ═════════════════════════════════════════════════════════════════════════════

SUBSECTION_LABELS: dict[str, str] = {
    "B-01": "Human Resources + Bonus",
    "B-02": "Monitoring & Evaluation",
    "B-03": "Living Support to Clients/Target Populations",
    "B-04": "Overheads (Use of goods & services)",
    "B-05": "Transfer to other reporting entities",
}

# ═════════════════════════════════════════════════════════════════════════════
# SECTION G KEYWORDS
# ═════════════════════════════════════════════════════════════════════════════
# Matched case-insensitively as substrings of the activity code and label.

G_FLOW_KEYWORDS: tuple[str, ...] = (
    "period",
    "current",
    "revenue",
    "expense",
    "income",
    "expenditure",
    "receipt",
    "flow",
)

G_STOCK_KEYWORDS: tuple[str, ...] = (
    "balance",
    "closing",
    "asset",
    "liability",
    "position",
    "stock",
)

# "Accumulated" + one of these marks a running balance.
G_ACCUMULATED_KEYWORD = "accumulated"
G_ACCUMULATED_TARGETS: tuple[str, ...] = ("surplus", "deficit")

# Opening / prior-year balances carried into the period.
G_OPENING_KEYWORDS: tuple[str, ...] = ("prior", "opening")

# Leaf inside G that is definitionally A - B.
PERIOD_SURPLUS_LABEL = "surplus/deficit of the period"

# ═════════════════════════════════════════════════════════════════════════════
# DERIVED LOOKUPS
# ═════════════════════════════════════════════════════════════════════════════

SECTION_ORDER: list[str] = [s.code for s in ALL_SECTIONS]

SECTIONS_BY_CODE: dict[str, SectionDef] = {s.code: s for s in ALL_SECTIONS}

SECTION_LABELS: dict[str, str] = {s.code: s.label for s in ALL_SECTIONS}

SECTION_KINDS: dict[str, SectionKind] = {s.code: s.kind for s in ALL_SECTIONS}

FLOW_SECTIONS = frozenset(c for c, k in SECTION_KINDS.items() if k is SectionKind.FLOW)
STOCK_SECTIONS = frozenset(c for c, k in SECTION_KINDS.items() if k is SectionKind.STOCK)

# Sections whose leaf activities are summed when deriving C and F.
SUMMED_SECTIONS: tuple[str, ...] = ("A", "B", "D", "E", "G")

UNKNOWN_DISPLAY_ORDER = 999
