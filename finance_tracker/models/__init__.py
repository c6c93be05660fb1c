"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data flowing between the store, the aggregator and the renderers
must conform to these schemas.
"""

from finance_tracker.models.ledger import (
    Budget,
    BudgetDraft,
    BudgetProgress,
    CategoryBreakdown,
    DashboardView,
    Goal,
    GoalDraft,
    GoalProgress,
    LedgerSnapshot,
    MonthlyPoint,
    MonthlySeries,
    Totals,
    Transaction,
    TransactionDraft,
    TransactionKind,
)
from finance_tracker.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Budget",
    "BudgetDraft",
    "BudgetProgress",
    "CategoryBreakdown",
    "DashboardView",
    "Goal",
    "GoalDraft",
    "GoalProgress",
    "LedgerSnapshot",
    "MonthlyPoint",
    "MonthlySeries",
    "Totals",
    "Transaction",
    "TransactionDraft",
    "TransactionKind",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
