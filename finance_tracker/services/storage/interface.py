"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the same session against a remote document store or a local file
2. Use in-memory storage for testing
3. Keep the aggregator decoupled from how the ledger is persisted

Stores push changes: every successful write notifies subscribers with a
complete fresh snapshot. Subscribers recompute from that snapshot; they
never patch derived state incrementally.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog

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


SnapshotListener = Callable[[LedgerSnapshot], None]


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement the abstract methods.
    Subscription bookkeeping is shared and lives here.
    """

    def __init__(self):
        self._listeners: list[SnapshotListener] = []
        self._logger = structlog.get_logger(type(self).__name__)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a listener for snapshot changes.

        The listener is called synchronously with a fresh snapshot after
        every successful write. Returns a callable that unsubscribes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, snapshot: LedgerSnapshot) -> None:
        """Push a snapshot to every listener; one failing listener does not starve the rest."""
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self._logger.error(
                    "snapshot_listener_failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_snapshot(self) -> LedgerSnapshot:
        """
        Read the whole ledger atomically.

        Returns:
            Snapshot of transactions, budgets and goals. The order of
            transactions is unspecified.
        """
        pass

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_transaction(self, draft: TransactionDraft) -> Transaction:
        """
        Persist a new transaction and assign its identifier.

        Returns:
            The stored transaction

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction by ID.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_budget(self, draft: BudgetDraft) -> Budget:
        """
        Create the budget for a category, replacing any existing one.

        Returns:
            The stored budget
        """
        pass

    @abstractmethod
    async def delete_budget(self, category: str) -> bool:
        """
        Delete the budget of a category.

        Raises:
            NotFoundError: If the category has no budget
        """
        pass

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_goal(self, draft: GoalDraft) -> Goal:
        """Persist a new goal with a zero balance and assign its identifier."""
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: str) -> bool:
        """
        Delete a goal by ID.

        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass

    @abstractmethod
    async def update_goal_amount(self, goal_id: str, current_amount: Decimal) -> Goal:
        """
        Store a new current amount for a goal.

        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, entity_type: str, entity_id: str, message: Optional[str] = None):
        super().__init__(message or f"{entity_type.capitalize()} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageUnavailableError(StorageError):
    """The backend could not be read or written, even after retries."""
    pass
