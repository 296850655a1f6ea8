from .form_data import (
    CleanupResult,
    ExecutionRecord,
    activity_label,
    clean_execution_records,
    normalize_activities,
    raw_activity_list,
    to_keyed_activities,
)

__all__ = [
    "CleanupResult",
    "ExecutionRecord",
    "activity_label",
    "clean_execution_records",
    "normalize_activities",
    "raw_activity_list",
    "to_keyed_activities",
]
