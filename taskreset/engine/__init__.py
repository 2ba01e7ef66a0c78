"""Reset engine for taskreset."""

from taskreset.engine.reset_policy import compute_next_eligible, evaluate_reset, ResetOutcome
from taskreset.engine.cascade import toggle
from taskreset.engine.reconciliation import (
    reconcile_task,
    plan_reconciliation,
    ReconciliationLoop,
    ReconciliationReport,
    TaskTransition,
)
from taskreset.engine.ordering import TaskFilters, TaskSortOption, filter_and_sort, is_overdue

__all__ = [
    "compute_next_eligible",
    "evaluate_reset",
    "ResetOutcome",
    "toggle",
    "reconcile_task",
    "plan_reconciliation",
    "ReconciliationLoop",
    "ReconciliationReport",
    "TaskTransition",
    "TaskFilters",
    "TaskSortOption",
    "filter_and_sort",
    "is_overdue",
]
