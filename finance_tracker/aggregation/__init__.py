"""Ledger aggregation package."""

from finance_tracker.aggregation.aggregator import (
    SAMPLE_CATEGORY_AMOUNTS,
    SAMPLE_MONTHLY_EXPENSE,
    SAMPLE_MONTHLY_INCOME,
    LedgerAggregator,
    budget_progress,
    category_breakdown,
    compute_totals,
    contribute_to_goal,
    goal_progress,
    month_label,
    month_window,
    monthly_series,
    ordered_transactions,
    recent_transactions,
    transaction_sort_key,
)

__all__ = [
    "SAMPLE_CATEGORY_AMOUNTS",
    "SAMPLE_MONTHLY_EXPENSE",
    "SAMPLE_MONTHLY_INCOME",
    "LedgerAggregator",
    "budget_progress",
    "category_breakdown",
    "compute_totals",
    "contribute_to_goal",
    "goal_progress",
    "month_label",
    "month_window",
    "monthly_series",
    "ordered_transactions",
    "recent_transactions",
    "transaction_sort_key",
]
