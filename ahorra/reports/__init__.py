"""Reports package - summaries, budget progress and alerts."""

from ahorra.reports.aggregation import (
    BudgetAlertTracker,
    budget_progress,
    build_monthly_summary,
    classify_budget,
    format_currency,
)

__all__ = [
    "BudgetAlertTracker",
    "budget_progress",
    "build_monthly_summary",
    "classify_budget",
    "format_currency",
]
