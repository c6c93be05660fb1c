"""
In-Memory Storage Implementation

Behaves like a remote document store with live listeners: identifiers
are random, and every write pushes a fresh snapshot to subscribers
immediately. Used by tests and as the default backend.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.ledger import (
    Budget,
    BudgetDraft,
    Goal,
    GoalDraft,
    LedgerSnapshot,
    Transaction,
    TransactionDraft,
)
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger store.

    Budgets are keyed by category, which makes upsert-by-category
    a plain assignment.
    """

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        super().__init__()
        snapshot = snapshot or LedgerSnapshot()
        self._transactions: dict[str, Transaction] = {t.id: t for t in snapshot.transactions}
        self._budgets: dict[str, Budget] = {b.category: b for b in snapshot.budgets}
        self._goals: dict[str, Goal] = {g.id: g for g in snapshot.goals}

    def _snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=tuple(self._transactions.values()),
            budgets=tuple(self._budgets.values()),
            goals=tuple(self._goals.values()),
        )

    def _changed(self) -> None:
        self._notify(self._snapshot())

    @staticmethod
    def _new_id() -> str:
        return uuid4().hex

    async def get_snapshot(self) -> LedgerSnapshot:
        return self._snapshot()

    async def add_transaction(self, draft: TransactionDraft) -> Transaction:
        transaction = draft.with_id(self._new_id())
        self._transactions[transaction.id] = transaction
        self._changed()
        return transaction

    async def delete_transaction(self, transaction_id: str) -> bool:
        if self._transactions.pop(transaction_id, None) is None:
            raise NotFoundError("transaction", transaction_id)
        self._changed()
        return True

    async def upsert_budget(self, draft: BudgetDraft) -> Budget:
        budget = draft.to_budget()
        self._budgets[budget.category] = budget
        self._changed()
        return budget

    async def delete_budget(self, category: str) -> bool:
        if self._budgets.pop(category, None) is None:
            raise NotFoundError("budget", category)
        self._changed()
        return True

    async def add_goal(self, draft: GoalDraft) -> Goal:
        goal = draft.with_id(self._new_id())
        self._goals[goal.id] = goal
        self._changed()
        return goal

    async def delete_goal(self, goal_id: str) -> bool:
        if self._goals.pop(goal_id, None) is None:
            raise NotFoundError("goal", goal_id)
        self._changed()
        return True

    async def update_goal_amount(self, goal_id: str, current_amount: Decimal) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        if current_amount < goal.current_amount:
            raise ValueError("A goal balance can only grow")
        updated = Goal.model_validate({**goal.model_dump(), "current_amount": current_amount})
        self._goals[goal_id] = updated
        self._changed()
        return updated


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
