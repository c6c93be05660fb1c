"""
Main Orchestrator for Finance Tracker

This module ties the components together and defines the session flow:
1. Start: pull a snapshot from the store, subscribe for changes
2. Every change notification: recompute the whole dashboard, hand it
   to the view listeners (render and chart collaborators)
3. User actions: validate → write to store → audit

DESIGN DECISION: All per-user state lives on an explicit LedgerSession
object, not in module globals. The aggregator stays stateless and gets
the snapshot and reference date on every call; only the session knows
what "today" is, through an injectable clock.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finance_tracker.aggregation import LedgerAggregator, contribute_to_goal
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import AppSettings, get_settings
from finance_tracker.models.ledger import (
    Budget,
    DashboardView,
    Goal,
    LedgerSnapshot,
    Transaction,
    TransactionKind,
)
from finance_tracker.models.validation import ValidationIssue
from finance_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from finance_tracker.validation import EntryValidator, ValidationError


T = TypeVar("T")
ViewListener = Callable[[DashboardView], None]

logger = structlog.get_logger(__name__)


class UserContext(BaseModel):
    """The signed-in user a session acts for."""

    user_id: str = Field(..., min_length=1)
    display_name: str = Field(default="User", min_length=1)


class LedgerSession:
    """
    One user's live view of their ledger.

    Flow:
    1. start() → snapshot pulled, store subscription opened
    2. store pushes snapshot → dashboard rebuilt → view listeners called
    3. add/delete/set/contribute → validated, written, audited
    4. stop() → subscription closed

    Validation and not-found conditions are always raised to the caller
    after being audited; nothing is retried here.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        user: UserContext,
        aggregator: Optional[LedgerAggregator] = None,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
        settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().app
        self._storage = storage
        self._user = user
        self._aggregator = aggregator or LedgerAggregator(
            recent_limit=self._settings.recent_transactions_limit,
            months_back=self._settings.chart_months_back,
        )
        self._validator = validator or EntryValidator(self._settings)
        self._audit_logger = audit_logger or AuditLogger(user_id=user.user_id)
        self._clock = clock

        self._snapshot = LedgerSnapshot()
        self._view: Optional[DashboardView] = None
        self._view_listeners: list[ViewListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._logger = logger.bind(user_id=user.user_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def user(self) -> UserContext:
        return self._user

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def view(self) -> Optional[DashboardView]:
        """The most recent dashboard, or None before start()."""
        return self._view

    @property
    def is_active(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> DashboardView:
        """Load the ledger and start listening for changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self._storage.subscribe(self._on_snapshot)
        return await self.refresh()

    def stop(self) -> None:
        """Stop listening for store changes. The last view stays readable."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self) -> DashboardView:
        """Pull a fresh snapshot on demand and rebuild the dashboard."""
        try:
            snapshot = await self._storage.get_snapshot()
        except StorageError as e:
            await self._audit_logger.log_storage_error("get_snapshot", str(e))
            raise
        view = self._apply(snapshot)
        await self._audit_logger.log_snapshot_refreshed(
            transaction_count=len(snapshot.transactions),
            budget_count=len(snapshot.budgets),
            goal_count=len(snapshot.goals),
        )
        return view

    def add_view_listener(self, listener: ViewListener) -> Callable[[], None]:
        """
        Register a render collaborator.

        It is called with every rebuilt dashboard, and immediately with the
        current one if the session has already started.
        """
        self._view_listeners.append(listener)
        if self._view is not None:
            listener(self._view)

        def remove() -> None:
            if listener in self._view_listeners:
                self._view_listeners.remove(listener)

        return remove

    def _on_snapshot(self, snapshot: LedgerSnapshot) -> None:
        self._apply(snapshot)

    def _apply(self, snapshot: LedgerSnapshot) -> DashboardView:
        self._snapshot = snapshot
        self._view = self._aggregator.build_dashboard(snapshot, self._clock())
        self._logger.debug(
            "dashboard_rebuilt",
            transactions=len(snapshot.transactions),
            budgets=len(snapshot.budgets),
            goals=len(snapshot.goals),
            sample_breakdown=self._view.category_breakdown.is_sample_data,
            sample_series=self._view.monthly_series.is_sample_data,
        )
        for listener in list(self._view_listeners):
            listener(self._view)
        return self._view

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _rejected(self, entity_type: str, error: ValidationError, correlation_id: UUID) -> None:
        await self._audit_logger.log_validation_failed(
            entity_type=entity_type,
            issues=[issue.model_dump() for issue in error.issues],
            correlation_id=correlation_id,
        )

    async def _store(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        correlation_id: UUID,
    ) -> T:
        """Run a store write, auditing not-found and storage failures before re-raising."""
        try:
            return await call()
        except NotFoundError as e:
            await self._audit_logger.log_not_found(e.entity_type, e.entity_id, correlation_id)
            raise
        except StorageError as e:
            await self._audit_logger.log_storage_error(operation, str(e), correlation_id)
            raise

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def add_transaction(
        self,
        description: Any,
        amount: Any,
        kind: Any,
        category: Any,
        on_date: Any = None,
    ) -> Transaction:
        """
        Record an income or expense. The date defaults to today.

        Raises:
            ValidationError: If any field is missing or out of range
        """
        correlation_id = create_correlation_id()
        today = self._clock()
        try:
            draft = self._validator.build_transaction(
                description, amount, kind, category, on_date or today, today=today
            )
        except ValidationError as e:
            await self._rejected("transaction", e, correlation_id)
            raise

        transaction = await self._store(
            "add_transaction",
            lambda: self._storage.add_transaction(draft),
            correlation_id,
        )
        await self._audit_logger.log_transaction_added(
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            amount=str(transaction.amount),
            category=transaction.category,
            correlation_id=correlation_id,
        )
        return transaction

    async def add_income(self, amount: Any, source: Any, on_date: Any = None) -> Transaction:
        """Record income from a named source under the income category."""
        return await self.add_transaction(
            description=source,
            amount=amount,
            kind=TransactionKind.INCOME.value,
            category=self._settings.income_category,
            on_date=on_date,
        )

    async def delete_transaction(self, transaction_id: str) -> None:
        correlation_id = create_correlation_id()
        await self._store(
            "delete_transaction",
            lambda: self._storage.delete_transaction(transaction_id),
            correlation_id,
        )
        await self._audit_logger.log_transaction_deleted(transaction_id, correlation_id)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    async def set_budget(
        self,
        category: Any,
        limit: Any,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Budget:
        """
        Set the monthly budget for a category, replacing any existing one.

        The period defaults to the current month.
        """
        correlation_id = create_correlation_id()
        today = self._clock()
        try:
            draft = self._validator.build_budget(
                category,
                limit,
                month if month is not None else today.month,
                year if year is not None else today.year,
            )
        except ValidationError as e:
            await self._rejected("budget", e, correlation_id)
            raise

        replaced = self._snapshot.find_budget(draft.category) is not None
        budget = await self._store(
            "upsert_budget",
            lambda: self._storage.upsert_budget(draft),
            correlation_id,
        )
        await self._audit_logger.log_budget_set(
            category=budget.category,
            limit=str(budget.limit),
            replaced=replaced,
            correlation_id=correlation_id,
        )
        return budget

    async def delete_budget(self, category: str) -> None:
        correlation_id = create_correlation_id()
        await self._store(
            "delete_budget",
            lambda: self._storage.delete_budget(category),
            correlation_id,
        )
        await self._audit_logger.log_budget_deleted(category, correlation_id)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def create_goal(self, name: Any, target_amount: Any, deadline: Any) -> Goal:
        correlation_id = create_correlation_id()
        try:
            draft = self._validator.build_goal(name, target_amount, deadline, today=self._clock())
        except ValidationError as e:
            await self._rejected("goal", e, correlation_id)
            raise

        goal = await self._store(
            "add_goal",
            lambda: self._storage.add_goal(draft),
            correlation_id,
        )
        await self._audit_logger.log_goal_created(
            goal_id=goal.id,
            name=goal.name,
            target=str(goal.target_amount),
            correlation_id=correlation_id,
        )
        return goal

    async def delete_goal(self, goal_id: str) -> None:
        correlation_id = create_correlation_id()
        await self._store(
            "delete_goal",
            lambda: self._storage.delete_goal(goal_id),
            correlation_id,
        )
        await self._audit_logger.log_goal_deleted(goal_id, correlation_id)

    async def contribute_to_goal(self, goal_id: str, amount: Any) -> Goal:
        """
        Add money to a savings goal.

        The goal is read fresh from the store, so this works whether or
        not the session is started, and the new total never builds on a
        stale balance.

        Raises:
            ValidationError: If amount is not a positive number
            NotFoundError: If the goal is not in the store
        """
        correlation_id = create_correlation_id()
        try:
            contribution = self._validator.build_contribution(amount)
        except ValidationError as e:
            await self._rejected("contribution", e, correlation_id)
            raise

        snapshot = await self._store("get_snapshot", self._storage.get_snapshot, correlation_id)
        goal = snapshot.find_goal(goal_id)
        if goal is None:
            await self._audit_logger.log_not_found("goal", goal_id, correlation_id)
            raise NotFoundError("goal", goal_id)

        updated = contribute_to_goal(goal, contribution)
        try:
            stored = await self._store(
                "update_goal_amount",
                lambda: self._storage.update_goal_amount(goal_id, updated.current_amount),
                correlation_id,
            )
        except ValueError as e:
            error = ValidationError(str(e), issues=[ValidationIssue(
                field="amount",
                issue_type="conflict",
                message=str(e),
                severity="error",
                suggested_fix="Reload the goal and try again",
            )])
            await self._rejected("contribution", error, correlation_id)
            raise error from e
        await self._audit_logger.log_goal_contribution(
            goal_id=goal_id,
            amount=str(contribution),
            new_total=str(stored.current_amount),
            correlation_id=correlation_id,
        )
        return stored

    # ------------------------------------------------------------------
    # Convenience reads
    # ------------------------------------------------------------------

    def balance(self) -> Decimal:
        """Current balance from the latest dashboard."""
        if self._view is None:
            return Decimal("0")
        return self._view.totals.balance


def create_storage(settings=None) -> LedgerStorageInterface:
    """Build the ledger store selected by LEDGER_STORAGE_BACKEND."""
    storage_settings = settings or get_settings().storage
    if storage_settings.backend == "json":
        return JsonFileLedgerStorage(storage_settings.json_path)
    return InMemoryLedgerStorage()


def create_app_components(
    user_id: str,
    display_name: Optional[str] = None,
    storage: Optional[LedgerStorageInterface] = None,
    clock: Callable[[], date] = date.today,
) -> tuple[LedgerSession, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        user_id: Identifier of the signed-in user
        display_name: Name shown in the UI; defaults to "User"
        storage: Ledger store to use. Built from settings if omitted.
        clock: Source of "today" for default dates and the chart window

    Returns:
        (session, audit_logger)
    """
    settings = get_settings()
    user = UserContext(user_id=user_id, display_name=display_name or "User")
    audit_logger = AuditLogger(InMemoryAuditStorage(), user_id=user_id)
    ledger_storage = storage or create_storage(settings.storage)
    session = LedgerSession(
        storage=ledger_storage,
        user=user,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.app,
    )
    logger.info(
        "app_components_created",
        user_id=user_id,
        storage=type(ledger_storage).__name__,
    )
    return session, audit_logger
