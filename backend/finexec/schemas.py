"""Pydantic models defining the output contract consumed by calling layers.

Fields are snake_case in Python and serialise to the camelCase keys of the
stored snapshot via ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Statement balances ──────────────────────────────────────────────────────

class StatementLine(_CamelModel):
    q1: float = 0.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0
    cumulative_balance: float = 0.0

    def quarter(self, key: str) -> float:
        return float(getattr(self, key))


class BalanceValidationError(_CamelModel):
    field: str
    message: str
    code: str


class StatementBalances(_CamelModel):
    receipts: StatementLine
    expenditures: StatementLine
    surplus: StatementLine
    financial_assets: StatementLine
    financial_liabilities: StatementLine
    net_financial_assets: StatementLine
    closing_balance: StatementLine
    is_balanced: bool
    validation_errors: list[BalanceValidationError] = Field(default_factory=list)


class AccountingValidation(_CamelModel):
    is_valid: bool
    net_financial_assets: float
    closing_balance: float
    difference: float
    errors: list[BalanceValidationError] = Field(default_factory=list)


# ── Quarterly summary across stored submissions ─────────────────────────────

class QuarterSummary(_CamelModel):
    total_receipts: float = 0.0
    total_expenditures: float = 0.0
    surplus: float = 0.0
    net_financial_assets: float = 0.0
    closing_balance: float = 0.0
    is_balanced: bool = True


class YearToDateTotals(_CamelModel):
    total_receipts: float = 0.0
    total_expenditures: float = 0.0
    cumulative_surplus: float = 0.0
    final_closing_balance: float = 0.0


class QuarterlySummary(_CamelModel):
    quarters: dict[str, QuarterSummary] = Field(default_factory=dict)
    year_to_date: YearToDateTotals = Field(default_factory=YearToDateTotals)


# ── Multi-facility report tree ──────────────────────────────────────────────

class ActivityRow(_CamelModel):
    code: str
    name: str
    category: str
    subcategory: str | None = None
    display_order: int = 0
    level: int = 0
    is_section: bool = False
    is_subcategory: bool = False
    is_computed: bool = False
    computation_formula: str | None = None
    values: dict[str, float] = Field(default_factory=dict)
    total: float = 0.0
    items: list[ActivityRow] | None = None


class SectionSummary(_CamelModel):
    code: str
    name: str
    total: float
    is_computed: bool
    computation_formula: str | None = None


class FacilityTotals(_CamelModel):
    by_facility: dict[str, float] = Field(default_factory=dict)
    grand_total: float = 0.0


class FacilityColumn(_CamelModel):
    id: int | str
    name: str
    facility_type: str
    project_type: str
    has_data: bool = True


class CompiledExecution(_CamelModel):
    facilities: list[FacilityColumn] = Field(default_factory=list)
    activities: list[ActivityRow] = Field(default_factory=list)
    sections: list[SectionSummary] = Field(default_factory=list)
    totals: FacilityTotals = Field(default_factory=FacilityTotals)
    warnings: list[str] = Field(default_factory=list)


ActivityRow.model_rebuild()
