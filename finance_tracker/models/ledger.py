"""
Core Data Models for Finance Tracker

These models define the strict schemas for everything the ledger stores
and everything it derives. They are designed to:
1. Enforce the entity invariants at runtime (positive amounts, non-empty text)
2. Be immutable, so a snapshot can be shared without defensive copies
3. Be serializable for storage and logging

DESIGN DECISION: Entities are frozen. A goal contribution produces a new
Goal instead of mutating the old one, and the caller persists it.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


TEXT_MAX_LENGTH = 200
CATEGORY_MAX_LENGTH = 100
MIN_BUDGET_YEAR = 1900


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# ENTITIES
# =============================================================================

class Transaction(BaseModel):
    """
    A single recorded income or expense event.

    Transactions are never edited after creation, only deleted.
    The identifier is assigned by the store that persisted it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Store-assigned identifier"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=TEXT_MAX_LENGTH,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount in currency units"
    )
    kind: TransactionKind
    category: str = Field(
        ...,
        min_length=1,
        max_length=CATEGORY_MAX_LENGTH,
        description="Category label; 'Income' for income entries"
    )
    date: date

    @property
    def is_income(self) -> bool:
        return self.kind == TransactionKind.INCOME

    @property
    def is_expense(self) -> bool:
        return self.kind == TransactionKind.EXPENSE


class Budget(BaseModel):
    """
    A monthly spending limit for one category.

    The category is the natural key: setting a budget for a category
    that already has one replaces it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    category: str = Field(
        ...,
        min_length=1,
        max_length=CATEGORY_MAX_LENGTH,
    )
    limit: Decimal = Field(
        ...,
        gt=0,
        description="Monthly limit in currency units"
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=MIN_BUDGET_YEAR)

    @property
    def id(self) -> str:
        return self.category


class Goal(BaseModel):
    """
    A savings target with accumulated progress.

    current_amount starts at zero and only ever grows through contributions.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=TEXT_MAX_LENGTH,
    )
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: date
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# =============================================================================
# DRAFTS - validated user input waiting for a store-assigned identifier
# =============================================================================

class TransactionDraft(BaseModel):
    """A validated transaction that has not been persisted yet."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    description: str = Field(..., min_length=1, max_length=TEXT_MAX_LENGTH)
    amount: Decimal = Field(..., gt=0)
    kind: TransactionKind
    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)
    date: date

    def with_id(self, transaction_id: str) -> Transaction:
        return Transaction(id=transaction_id, **self.model_dump())


class BudgetDraft(BaseModel):
    """A validated budget; budgets need no identifier beyond their category."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)
    limit: Decimal = Field(..., gt=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=MIN_BUDGET_YEAR)

    def to_budget(self) -> Budget:
        return Budget(**self.model_dump())


class GoalDraft(BaseModel):
    """A validated goal that has not been persisted yet."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(..., min_length=1, max_length=TEXT_MAX_LENGTH)
    target_amount: Decimal = Field(..., gt=0)
    deadline: date

    def with_id(self, goal_id: str) -> Goal:
        return Goal(id=goal_id, **self.model_dump())


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    The full in-memory copy of the ledger at a point in time.

    Stores hand this to the aggregator atomically. The order of
    transactions inside a snapshot carries no meaning.
    """
    model_config = ConfigDict(frozen=True)

    transactions: tuple[Transaction, ...] = ()
    budgets: tuple[Budget, ...] = ()
    goals: tuple[Goal, ...] = ()

    def find_goal(self, goal_id: str) -> Optional[Goal]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None

    def find_budget(self, category: str) -> Optional[Budget]:
        for budget in self.budgets:
            if budget.category == category:
                return budget
        return None


# =============================================================================
# DERIVED VIEWS - produced by the aggregator, consumed by renderers
# =============================================================================

class Totals(BaseModel):
    """Dashboard headline figures."""
    model_config = ConfigDict(frozen=True)

    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class BudgetProgress(BaseModel):
    """
    Spend against one budget.

    percentage is the raw value and may exceed 100; display_percentage
    is clamped for progress bars.
    """
    model_config = ConfigDict(frozen=True)

    category: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    display_percentage: float

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.limit


class GoalProgress(BaseModel):
    """Progress towards one savings goal."""
    model_config = ConfigDict(frozen=True)

    goal_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    remaining: Decimal
    percentage: float
    display_percentage: float
    deadline: date

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount


class CategoryBreakdown(BaseModel):
    """
    Expense totals per category.

    CRITICAL: when is_sample_data is True the amounts are placeholders,
    not the user's data.
    """
    model_config = ConfigDict(frozen=True)

    amounts: dict[str, Decimal] = Field(default_factory=dict)
    is_sample_data: bool = False


class MonthlyPoint(BaseModel):
    """One calendar-month bucket of the income/expense series."""
    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Human label, e.g. 'Jan 2024'")
    year: int
    month: int = Field(..., ge=1, le=12)
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class MonthlySeries(BaseModel):
    """Income/expense series, oldest month first."""
    model_config = ConfigDict(frozen=True)

    points: tuple[MonthlyPoint, ...] = ()
    is_sample_data: bool = False

    @property
    def labels(self) -> list[str]:
        return [point.label for point in self.points]

    @property
    def income(self) -> list[Decimal]:
        return [point.income for point in self.points]

    @property
    def expense(self) -> list[Decimal]:
        return [point.expense for point in self.points]


class DashboardView(BaseModel):
    """
    Everything a render collaborator needs for one refresh.

    Built from a single snapshot, so all parts are mutually consistent.
    """
    model_config = ConfigDict(frozen=True)

    reference_date: date
    totals: Totals
    recent_transactions: tuple[Transaction, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    budgets: tuple[BudgetProgress, ...] = ()
    goals: tuple[GoalProgress, ...] = ()
    category_breakdown: CategoryBreakdown
    monthly_series: MonthlySeries

    @property
    def has_transactions(self) -> bool:
        return len(self.transactions) > 0
