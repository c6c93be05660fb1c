"""
Audit Logger

DESIGN DECISION: Every user action against the ledger is logged.
This provides:
1. Traceability of how each balance came to be
2. Debugging capability when a write is rejected
3. A history the user can inspect

The audit logger:
- Is async so it can share the event loop with the store
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finance_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            user_id: Stamped on every event this logger writes.
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger("audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if self._user_id and event.user_id is None:
            event = event.model_copy(update={"user_id": self._user_id})

        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_added(
        self,
        transaction_id: str,
        kind: str,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_set(
        self,
        category: str,
        limit: str,
        replaced: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.budget_set(
            category=category,
            limit=limit,
            replaced=replaced,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_deleted(
        self,
        category: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.budget_deleted(
            category=category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_goal_created(
        self,
        goal_id: str,
        name: str,
        target: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.goal_created(
            goal_id=goal_id,
            name=name,
            target=target,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_goal_contribution(
        self,
        goal_id: str,
        amount: str,
        new_total: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.goal_contribution(
            goal_id=goal_id,
            amount=amount,
            new_total=new_total,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_goal_deleted(
        self,
        goal_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.goal_deleted(
            goal_id=goal_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_not_found(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.not_found(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_snapshot_refreshed(
        self,
        transaction_count: int,
        budget_count: int,
        goal_count: int,
    ) -> None:
        event = AuditEventBuilder.snapshot_refreshed(
            transaction_count=transaction_count,
            budget_count=budget_count,
            goal_count=goal_count,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
