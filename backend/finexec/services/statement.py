"""
Seven-line execution statement and the balance identity.

    receipts               A
    expenditures           B
    surplus                A - B            (flow arithmetic)
    financial_assets       D
    financial_liabilities  E
    net_financial_assets   D - E            (cumulative from stock totals)
    closing_balance        G + surplus

The statement balances when |net_financial_assets - closing_balance| is
below the tolerance (0.01 by default). Imbalance is reported as data;
callers decide whether to reject a submission.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from finexec.config import BALANCE_TOLERANCE
from finexec.core.quarters import QUARTERS
from finexec.io._utils import to_float, to_float_or_zero
from finexec.schemas import (
    AccountingValidation,
    BalanceValidationError,
    QuarterlySummary,
    QuarterSummary,
    StatementBalances,
    StatementLine,
    YearToDateTotals,
)
from finexec.services.rollups import Rollup, Rollups

_log = logging.getLogger(__name__)

ACCOUNTING_EQUATION_MISMATCH = "ACCOUNTING_EQUATION_MISMATCH"
QUARTERLY_BALANCE_MISMATCH = "QUARTERLY_BALANCE_MISMATCH"


def _check_tolerance(tolerance: float) -> float:
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")
    return tolerance


def _line(rollup: Rollup) -> StatementLine:
    return StatementLine(
        q1=rollup.q1, q2=rollup.q2, q3=rollup.q3, q4=rollup.q4,
        cumulative_balance=rollup.total,
    )


def _diff_line(left: Rollup, right: Rollup, cumulative: float) -> StatementLine:
    return StatementLine(
        q1=left.q1 - right.q1,
        q2=left.q2 - right.q2,
        q3=left.q3 - right.q3,
        q4=left.q4 - right.q4,
        cumulative_balance=cumulative,
    )


# ── Assembly ─────────────────────────────────────────────────────────────────

def to_balances(
    rollups: Rollups | Mapping[str, Any],
    *,
    tolerance: float = BALANCE_TOLERANCE,
) -> StatementBalances:
    """
    Map section rollups onto the seven statement lines.

    Accepts a ``Rollups`` object or its stored ``{bySection, bySubSection}``
    dict. Only section-level rollups are read. ``validation_errors`` is left
    empty; see ``validate_quarterly_balance`` / ``with_validation``.
    """
    _check_tolerance(tolerance)
    if not isinstance(rollups, Rollups):
        rollups = Rollups.from_mapping(rollups)

    a = rollups.section("A")
    b = rollups.section("B")
    d = rollups.section("D")
    e = rollups.section("E")
    g = rollups.section("G")

    surplus = _diff_line(a, b, a.quarter_sum() - b.quarter_sum())
    net_financial_assets = _diff_line(d, e, d.total - e.total)
    closing_balance = StatementLine(
        q1=g.q1 + surplus.q1,
        q2=g.q2 + surplus.q2,
        q3=g.q3 + surplus.q3,
        q4=g.q4 + surplus.q4,
        cumulative_balance=g.total + surplus.cumulative_balance,
    )

    difference = abs(net_financial_assets.cumulative_balance - closing_balance.cumulative_balance)
    return StatementBalances(
        receipts=_line(a),
        expenditures=_line(b),
        surplus=surplus,
        financial_assets=_line(d),
        financial_liabilities=_line(e),
        net_financial_assets=net_financial_assets,
        closing_balance=closing_balance,
        is_balanced=difference < tolerance,
        validation_errors=[],
    )


def balance_difference(balances: StatementBalances) -> float:
    """|Net Financial Assets - Closing Balance| on cumulative figures."""
    return abs(
        balances.net_financial_assets.cumulative_balance
        - balances.closing_balance.cumulative_balance
    )


# ── Validation helpers for calling layers ───────────────────────────────────

def validate_accounting_equation(
    balances: StatementBalances,
    tolerance: float = BALANCE_TOLERANCE,
) -> AccountingValidation:
    """Year-to-date identity check with a structured error when it fails."""
    _check_tolerance(tolerance)
    nfa = balances.net_financial_assets.cumulative_balance
    closing = balances.closing_balance.cumulative_balance
    difference = abs(nfa - closing)
    is_valid = difference < tolerance

    errors: list[BalanceValidationError] = []
    if not is_valid:
        errors.append(BalanceValidationError(
            field="balance",
            message=(
                f"Net Financial Assets ({nfa}) must equal Closing Balance ({closing}). "
                f"Difference: {difference}"
            ),
            code=ACCOUNTING_EQUATION_MISMATCH,
        ))
    return AccountingValidation(
        is_valid=is_valid,
        net_financial_assets=nfa,
        closing_balance=closing,
        difference=difference,
        errors=errors,
    )


def validate_quarterly_balance(
    balances: StatementBalances,
    tolerance: float = BALANCE_TOLERANCE,
) -> list[BalanceValidationError]:
    """One error per quarter-end where F and G differ by more than ``tolerance``."""
    _check_tolerance(tolerance)
    errors: list[BalanceValidationError] = []
    for q in QUARTERS:
        f_value = balances.net_financial_assets.quarter(q)
        g_value = balances.closing_balance.quarter(q)
        difference = abs(f_value - g_value)
        if difference > tolerance:
            label = q.upper()
            errors.append(BalanceValidationError(
                field=f"balance_{q}",
                message=f"{label}: F ({f_value}) ≠ G ({g_value}). Difference: {difference}",
                code=QUARTERLY_BALANCE_MISMATCH,
            ))
    if errors:
        _log.info("Statement imbalanced in %d quarter(s)", len(errors))
    return errors


def with_validation(
    balances: StatementBalances,
    errors: Iterable[BalanceValidationError],
) -> StatementBalances:
    """Copy of ``balances`` carrying ``errors``; any error clears ``is_balanced``."""
    collected = [*balances.validation_errors, *errors]
    return balances.model_copy(update={
        "validation_errors": collected,
        "is_balanced": balances.is_balanced and not collected,
    })


# ── Summary across stored submissions ───────────────────────────────────────

def _stored_line(computed: Mapping[str, Any], *names: str) -> Mapping[str, Any]:
    for name in names:
        line = computed.get(name)
        if isinstance(line, Mapping):
            return line
    return {}


def _line_cumulative(line: Mapping[str, Any]) -> float:
    value = line.get("cumulativeBalance", line.get("cumulative_balance"))
    return to_float_or_zero(value)


def quarterly_summary(
    computed_values: Iterable[Mapping[str, Any] | StatementBalances | None],
    tolerance: float = BALANCE_TOLERANCE,
) -> QuarterlySummary:
    """
    Aggregate stored statement snapshots (one per submission) by quarter.

    Per-quarter figures are summed across submissions and re-checked
    against ``tolerance``. Year-to-date receipts, expenditures and surplus
    are summed; the final closing balance is the last submission's.
    Submissions without computed values are skipped.
    """
    _check_tolerance(tolerance)
    quarters: dict[str, QuarterSummary] = {}
    ytd = YearToDateTotals()

    for computed in computed_values:
        if computed is None:
            continue
        if isinstance(computed, StatementBalances):
            computed = computed.model_dump(by_alias=True)

        receipts = _stored_line(computed, "receipts")
        expenditures = _stored_line(computed, "expenditures")
        surplus = _stored_line(computed, "surplus")
        nfa = _stored_line(computed, "netFinancialAssets", "net_financial_assets")
        closing = _stored_line(computed, "closingBalance", "closing_balance")

        for q in QUARTERS:
            label = q.upper()
            summary = quarters.setdefault(label, QuarterSummary())
            summary.total_receipts += to_float_or_zero(receipts.get(q))
            summary.total_expenditures += to_float_or_zero(expenditures.get(q))
            summary.surplus += to_float_or_zero(surplus.get(q))
            summary.net_financial_assets += to_float_or_zero(nfa.get(q))
            summary.closing_balance += to_float_or_zero(closing.get(q))
            summary.is_balanced = (
                abs(summary.net_financial_assets - summary.closing_balance) < tolerance
            )

        ytd.total_receipts += _line_cumulative(receipts)
        ytd.total_expenditures += _line_cumulative(expenditures)
        ytd.cumulative_surplus += _line_cumulative(surplus)
        final_closing = to_float(closing.get("cumulativeBalance", closing.get("cumulative_balance")))
        ytd.final_closing_balance = final_closing if final_closing is not None else 0.0

    return QuarterlySummary(quarters=quarters, year_to_date=ytd)
