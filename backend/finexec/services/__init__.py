from .balance import (
    CUMULATIVE_BALANCE_KEY,
    add_cumulative_balances,
    balance_for_activity,
    calculate_cumulative_balance,
)
from .rollups import Rollup, Rollups, activities_to_frame, compute_rollups, compute_rollups_df
from .statement import (
    ACCOUNTING_EQUATION_MISMATCH,
    QUARTERLY_BALANCE_MISMATCH,
    balance_difference,
    quarterly_summary,
    to_balances,
    validate_accounting_equation,
    validate_quarterly_balance,
    with_validation,
)
from .recalculation import (
    ExecutionEngine,
    Recalculation,
    activity_set_hash,
    enrich_form_data,
    merge_form_data,
    recalculate_execution_data,
    validate_recalculation,
)
from .aggregation import (
    ActivityCatalogEntry,
    AggregationResult,
    AggregationService,
    UnifiedActivity,
)
from .compiled import build_compiled_report, rows_to_frame

__all__ = [
    "CUMULATIVE_BALANCE_KEY",
    "calculate_cumulative_balance",
    "balance_for_activity",
    "add_cumulative_balances",
    "Rollup",
    "Rollups",
    "compute_rollups",
    "activities_to_frame",
    "compute_rollups_df",
    "ACCOUNTING_EQUATION_MISMATCH",
    "QUARTERLY_BALANCE_MISMATCH",
    "to_balances",
    "balance_difference",
    "validate_accounting_equation",
    "validate_quarterly_balance",
    "with_validation",
    "quarterly_summary",
    "Recalculation",
    "ExecutionEngine",
    "enrich_form_data",
    "recalculate_execution_data",
    "validate_recalculation",
    "merge_form_data",
    "activity_set_hash",
    "ActivityCatalogEntry",
    "UnifiedActivity",
    "AggregationResult",
    "AggregationService",
    "build_compiled_report",
    "rows_to_frame",
]
