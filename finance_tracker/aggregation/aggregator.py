"""
Ledger Aggregator

DESIGN DECISION: Aggregation is PURE.
Every function here takes the data it needs as arguments and returns a
new value. Nothing reads the clock, the store or module-level state,
so the same snapshot and reference date always give the same dashboard.

The store pushes a fresh snapshot on every change and the whole
dashboard is recomputed from scratch. At personal-ledger scale this is
simpler than incremental bookkeeping and cannot drift out of sync.

Placeholder chart data is never returned silently: category_breakdown
and monthly_series set is_sample_data whenever they fall back to it.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from finance_tracker.models.ledger import (
    Budget,
    BudgetProgress,
    CategoryBreakdown,
    DashboardView,
    Goal,
    GoalProgress,
    LedgerSnapshot,
    MonthlyPoint,
    MonthlySeries,
    Totals,
    Transaction,
    TransactionKind,
)
from finance_tracker.validation.validator import ValidationError, parse_amount


ZERO = Decimal("0")
HUNDRED = Decimal("100")

DEFAULT_RECENT_LIMIT = 5
DEFAULT_MONTHS_BACK = 6

# Shown on the category chart of an account with no expenses yet
SAMPLE_CATEGORY_AMOUNTS: dict[str, Decimal] = {
    "Food": Decimal("450"),
    "Transportation": Decimal("280"),
    "Entertainment": Decimal("150"),
    "Bills": Decimal("600"),
    "Shopping": Decimal("320"),
}

# Shown on the income/expense chart of an account with no history in the window
SAMPLE_MONTHLY_INCOME: tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("2800", "3200", "2900", "3100", "3000", "3300")
)
SAMPLE_MONTHLY_EXPENSE: tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("2200", "2400", "2100", "2600", "2300", "2500")
)

# Fixed English labels; strftime('%b') would follow the process locale
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


# =============================================================================
# ORDERING
# =============================================================================

def transaction_sort_key(transaction: Transaction) -> tuple[date, tuple[int, int, str]]:
    """
    Ascending sort key for the canonical transaction order.

    Sorted with reverse=True this yields date descending, then identifier
    descending. Purely numeric identifiers (clock-derived ids from the
    local store) compare as integers among themselves; all other
    identifiers compare as text and sort ahead of numeric ones.
    """
    identifier = transaction.id
    if identifier.isascii() and identifier.isdigit():
        id_key = (0, int(identifier), identifier)
    else:
        id_key = (1, 0, identifier)
    return (transaction.date, id_key)


def ordered_transactions(transactions: Iterable[Transaction]) -> tuple[Transaction, ...]:
    """Full transaction history in canonical order, most recent first."""
    return tuple(sorted(transactions, key=transaction_sort_key, reverse=True))


def recent_transactions(
    transactions: Iterable[Transaction],
    n: int = DEFAULT_RECENT_LIMIT,
) -> tuple[Transaction, ...]:
    """
    The n most recent transactions in canonical order.

    Recomputed on every call; returns fewer than n (possibly none)
    when the ledger is short.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    return ordered_transactions(transactions)[:n]


# =============================================================================
# TOTALS
# =============================================================================

def _sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def compute_totals(transactions: Iterable[Transaction]) -> Totals:
    """Income, expenses and balance over all transactions."""
    income = ZERO
    expenses = ZERO
    for transaction in transactions:
        if transaction.kind == TransactionKind.INCOME:
            income += transaction.amount
        elif transaction.kind == TransactionKind.EXPENSE:
            expenses += transaction.amount
    return Totals(income=income, expenses=expenses, balance=income - expenses)


# =============================================================================
# BUDGETS AND GOALS
# =============================================================================

def _percentage(part: Decimal, whole: Decimal) -> float:
    return float(part / whole * HUNDRED)


def budget_progress(budget: Budget, transactions: Iterable[Transaction]) -> BudgetProgress:
    """
    Spend against a budget.

    Only expenses whose category equals the budget category exactly
    (no case folding) count. No trimming happens here either; the models
    strip surrounding whitespace from categories when they are built, so
    " Food" and "Food" are already the same category by the time they
    arrive.

    remaining and percentage are not clamped, so an over-budget category
    shows a negative remainder and a percentage above 100.
    """
    spent = _sum_amounts(
        t for t in transactions
        if t.kind == TransactionKind.EXPENSE and t.category == budget.category
    )
    percentage = _percentage(spent, budget.limit)
    return BudgetProgress(
        category=budget.category,
        limit=budget.limit,
        spent=spent,
        remaining=budget.limit - spent,
        percentage=percentage,
        display_percentage=min(percentage, 100.0),
    )


def goal_progress(goal: Goal) -> GoalProgress:
    """Progress towards a savings goal, raw and clamped for display."""
    percentage = _percentage(goal.current_amount, goal.target_amount)
    return GoalProgress(
        goal_id=goal.id,
        name=goal.name,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        remaining=goal.target_amount - goal.current_amount,
        percentage=percentage,
        display_percentage=min(percentage, 100.0),
        deadline=goal.deadline,
    )


def contribute_to_goal(goal: Goal, amount: Any) -> Goal:
    """
    Add a contribution to a goal.

    Returns a new Goal; the original is left untouched and the caller
    is responsible for persisting the result.

    Raises:
        ValidationError: If amount is not a finite number greater than zero
    """
    parsed, issues = parse_amount(amount)
    if parsed is None:
        raise ValidationError(
            "; ".join(issue.message for issue in issues),
            issues=issues,
        )
    return goal.model_copy(update={"current_amount": goal.current_amount + parsed})


# =============================================================================
# CHART SERIES
# =============================================================================

def category_breakdown(transactions: Iterable[Transaction]) -> CategoryBreakdown:
    """
    Total expense per category.

    An account without any expenses gets the fixed sample set with
    is_sample_data=True so an empty chart still renders.
    """
    amounts: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.kind != TransactionKind.EXPENSE:
            continue
        amounts[transaction.category] = amounts.get(transaction.category, ZERO) + transaction.amount

    if not amounts:
        return CategoryBreakdown(amounts=dict(SAMPLE_CATEGORY_AMOUNTS), is_sample_data=True)
    return CategoryBreakdown(amounts=amounts, is_sample_data=False)


def month_label(year: int, month: int) -> str:
    """Human label for a calendar month, e.g. 'Jan 2024'."""
    return f"{MONTH_ABBREVIATIONS[month - 1]} {year}"


def month_window(reference_date: date, months_back: int) -> list[tuple[int, int]]:
    """(year, month) pairs for months_back months ending at reference_date, oldest first."""
    if months_back < 1:
        raise ValueError(f"months_back must be at least 1, got {months_back}")
    anchor = reference_date.year * 12 + (reference_date.month - 1)
    window = []
    for offset in range(months_back - 1, -1, -1):
        year, month_index = divmod(anchor - offset, 12)
        window.append((year, month_index + 1))
    return window


def monthly_series(
    transactions: Iterable[Transaction],
    reference_date: date,
    months_back: int = DEFAULT_MONTHS_BACK,
) -> MonthlySeries:
    """
    Income and expense per calendar month, oldest first.

    The window ends at the month containing reference_date. When every
    bucket is zero the fixed sample series is substituted, aligned to
    the most recent months, and is_sample_data is set.
    """
    window = month_window(reference_date, months_back)
    income = {key: ZERO for key in window}
    expense = {key: ZERO for key in window}

    for transaction in transactions:
        key = (transaction.date.year, transaction.date.month)
        if key not in income:
            continue
        if transaction.kind == TransactionKind.INCOME:
            income[key] += transaction.amount
        elif transaction.kind == TransactionKind.EXPENSE:
            expense[key] += transaction.amount

    is_sample = all(income[key] == ZERO and expense[key] == ZERO for key in window)
    if is_sample:
        offset = len(window) - len(SAMPLE_MONTHLY_INCOME)
        for index, key in enumerate(window):
            sample_index = index - offset
            if 0 <= sample_index < len(SAMPLE_MONTHLY_INCOME):
                income[key] = SAMPLE_MONTHLY_INCOME[sample_index]
                expense[key] = SAMPLE_MONTHLY_EXPENSE[sample_index]

    points = tuple(
        MonthlyPoint(
            label=month_label(year, month),
            year=year,
            month=month,
            income=income[(year, month)],
            expense=expense[(year, month)],
        )
        for year, month in window
    )
    return MonthlySeries(points=points, is_sample_data=is_sample)


# =============================================================================
# DASHBOARD
# =============================================================================

class LedgerAggregator:
    """
    Builds the complete dashboard from one snapshot.

    Holds only its shape parameters; the snapshot and reference date
    arrive with every call.
    """

    def __init__(
        self,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        months_back: int = DEFAULT_MONTHS_BACK,
    ):
        if recent_limit < 0:
            raise ValueError(f"recent_limit must be non-negative, got {recent_limit}")
        if months_back < 1:
            raise ValueError(f"months_back must be at least 1, got {months_back}")
        self._recent_limit = recent_limit
        self._months_back = months_back

    @property
    def recent_limit(self) -> int:
        return self._recent_limit

    @property
    def months_back(self) -> int:
        return self._months_back

    def build_dashboard(
        self,
        snapshot: LedgerSnapshot,
        reference_date: date,
    ) -> DashboardView:
        transactions = snapshot.transactions
        history = ordered_transactions(transactions)
        return DashboardView(
            reference_date=reference_date,
            totals=compute_totals(transactions),
            recent_transactions=history[:self._recent_limit],
            transactions=history,
            budgets=tuple(budget_progress(b, transactions) for b in snapshot.budgets),
            goals=tuple(goal_progress(g) for g in snapshot.goals),
            category_breakdown=category_breakdown(transactions),
            monthly_series=monthly_series(transactions, reference_date, self._months_back),
        )

    def budget_for(
        self,
        snapshot: LedgerSnapshot,
        category: str,
    ) -> Optional[BudgetProgress]:
        """Progress of the budget for one category, or None if no budget is set."""
        budget = snapshot.find_budget(category)
        if budget is None:
            return None
        return budget_progress(budget, snapshot.transactions)
