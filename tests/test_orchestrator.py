"""Tests for the session flow: store push → dashboard → listeners, plus audited writes."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings
from finance_tracker.models.audit import AuditEventBuilder, AuditEventType
from finance_tracker.models.ledger import TransactionKind
from finance_tracker.orchestrator import LedgerSession, UserContext, create_app_components
from finance_tracker.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageError,
)
from finance_tracker.validation import ValidationError


TODAY = date(2024, 1, 15)


class BrokenLedgerStorage(InMemoryLedgerStorage):
    async def add_transaction(self, draft):
        raise StorageError("disk full")


class BrokenAuditStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise RuntimeError("audit sink unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def session(storage, audit_storage):
    return LedgerSession(
        storage=storage,
        user=UserContext(user_id="user-1"),
        audit_logger=AuditLogger(audit_storage, user_id="user-1"),
        clock=lambda: TODAY,
        settings=AppSettings(),
    )


def event_types(audit_storage):
    events = asyncio.run(audit_storage.get_recent_events())
    return [e.event_type for e in events]


class TestSessionLifecycle:
    """Tests for start/stop and view delivery."""

    def test_view_is_none_before_start(self, session):
        assert session.view is None
        assert session.is_active is False
        assert session.balance() == Decimal("0")

    def test_start_builds_empty_dashboard(self, session):
        view = asyncio.run(session.start())
        assert session.is_active is True
        assert view.reference_date == TODAY
        assert view.has_transactions is False
        assert view.totals.balance == Decimal("0")
        assert view.category_breakdown.is_sample_data is True
        assert view.monthly_series.is_sample_data is True
        assert view.monthly_series.labels[-1] == "Jan 2024"

    def test_listener_receives_current_view_and_updates(self, session):
        asyncio.run(session.start())
        views = []
        session.add_view_listener(views.append)
        assert len(views) == 1

        asyncio.run(session.add_transaction("Groceries", "40", "expense", "Food"))
        assert len(views) == 2
        assert views[-1].totals.expenses == Decimal("40")
        assert views[-1].category_breakdown.is_sample_data is False

    def test_removed_listener_not_called(self, session):
        asyncio.run(session.start())
        views = []
        remove = session.add_view_listener(views.append)
        remove()
        asyncio.run(session.add_transaction("Groceries", "40", "expense", "Food"))
        assert len(views) == 1

    def test_stop_halts_updates(self, session, storage):
        asyncio.run(session.start())
        asyncio.run(session.add_transaction("Lunch", "12", "expense", "Food"))
        session.stop()
        assert session.is_active is False
        assert storage.listener_count == 0

        asyncio.run(session.add_transaction("Dinner", "30", "expense", "Food"))
        assert session.view.totals.expenses == Decimal("12")

        asyncio.run(session.refresh())
        assert session.view.totals.expenses == Decimal("42")

    def test_refresh_is_audited(self, session, audit_storage):
        asyncio.run(session.start())
        assert AuditEventType.SNAPSHOT_REFRESHED in event_types(audit_storage)


class TestTransactions:
    """Tests for recording and deleting transactions."""

    def test_add_transaction_updates_balance(self, session, audit_storage):
        asyncio.run(session.start())
        asyncio.run(session.add_income("2500", "Salary"))
        asyncio.run(session.add_transaction("Rent", "900", "expense", "Bills", date(2024, 1, 2)))

        assert session.balance() == Decimal("1600")
        assert session.view.recent_transactions[0].description == "Salary"
        assert event_types(audit_storage).count(AuditEventType.TRANSACTION_ADDED) == 2

    def test_add_income_uses_income_category(self, session):
        asyncio.run(session.start())
        transaction = asyncio.run(session.add_income("100", "Freelance"))
        assert transaction.kind == TransactionKind.INCOME
        assert transaction.category == "Income"
        assert transaction.description == "Freelance"
        assert transaction.date == TODAY

    def test_invalid_transaction_is_audited_and_raised(self, session, storage, audit_storage):
        asyncio.run(session.start())
        with pytest.raises(ValidationError):
            asyncio.run(session.add_transaction("Lunch", "-4", "expense", "Food"))

        assert asyncio.run(storage.get_snapshot()).transactions == ()
        assert event_types(audit_storage)[0] == AuditEventType.VALIDATION_FAILED

    def test_delete_transaction(self, session, audit_storage):
        asyncio.run(session.start())
        transaction = asyncio.run(session.add_transaction("Lunch", "12", "expense", "Food"))
        asyncio.run(session.delete_transaction(transaction.id))
        assert session.view.has_transactions is False
        assert event_types(audit_storage)[0] == AuditEventType.TRANSACTION_DELETED

    def test_delete_missing_transaction_is_audited(self, session, audit_storage):
        asyncio.run(session.start())
        with pytest.raises(NotFoundError):
            asyncio.run(session.delete_transaction("missing"))
        assert event_types(audit_storage)[0] == AuditEventType.NOT_FOUND

    def test_storage_failure_is_audited(self, audit_storage):
        session = LedgerSession(
            storage=BrokenLedgerStorage(),
            user=UserContext(user_id="user-1"),
            audit_logger=AuditLogger(audit_storage),
            clock=lambda: TODAY,
            settings=AppSettings(),
        )
        asyncio.run(session.start())
        with pytest.raises(StorageError):
            asyncio.run(session.add_transaction("Lunch", "12", "expense", "Food"))
        assert event_types(audit_storage)[0] == AuditEventType.STORAGE_ERROR


class TestBudgets:
    """Tests for setting budgets through the session."""

    def test_set_budget_defaults_to_current_month(self, session):
        asyncio.run(session.start())
        budget = asyncio.run(session.set_budget("Food", "300"))
        assert (budget.month, budget.year) == (1, 2024)

    def test_set_budget_records_replacement(self, session, audit_storage):
        asyncio.run(session.start())
        asyncio.run(session.set_budget("Food", "300"))
        asyncio.run(session.set_budget("Food", "450"))

        events = asyncio.run(audit_storage.get_recent_events())
        budget_events = [e for e in events if e.event_type == AuditEventType.BUDGET_SET]
        assert budget_events[0].details["replaced_existing"] is True
        assert budget_events[1].details["replaced_existing"] is False
        assert len(session.view.budgets) == 1
        assert session.view.budgets[0].limit == Decimal("450")

    def test_budget_progress_follows_spending(self, session):
        asyncio.run(session.start())
        asyncio.run(session.set_budget("Food", "100"))
        asyncio.run(session.add_transaction("Groceries", "130", "expense", "Food"))

        progress = session.view.budgets[0]
        assert progress.spent == Decimal("130")
        assert progress.remaining == Decimal("-30")
        assert progress.is_over_budget is True
        assert progress.display_percentage == 100.0

    def test_bad_period_rejected_and_audited(self, session, audit_storage):
        asyncio.run(session.start())
        with pytest.raises(ValidationError):
            asyncio.run(session.set_budget("Food", "100", month="3"))
        with pytest.raises(ValidationError):
            asyncio.run(session.set_budget("Food", "100", month=1, year=1800))
        assert event_types(audit_storage)[:2] == [AuditEventType.VALIDATION_FAILED] * 2

    def test_zero_limit_rejected(self, session):
        asyncio.run(session.start())
        with pytest.raises(ValidationError):
            asyncio.run(session.set_budget("Food", "0"))

    def test_delete_budget(self, session):
        asyncio.run(session.start())
        asyncio.run(session.set_budget("Food", "100"))
        asyncio.run(session.delete_budget("Food"))
        assert session.view.budgets == ()


class TestGoals:
    """Tests for savings goals through the session."""

    def test_contributions_accumulate(self, session, audit_storage):
        asyncio.run(session.start())
        goal = asyncio.run(session.create_goal("Holiday", "400", "2024-08-01"))

        asyncio.run(session.contribute_to_goal(goal.id, "100"))
        updated = asyncio.run(session.contribute_to_goal(goal.id, "50"))

        assert updated.current_amount == Decimal("150")
        progress = session.view.goals[0]
        assert progress.current_amount == Decimal("150")
        assert progress.remaining == Decimal("250")
        assert progress.percentage == pytest.approx(37.5)
        assert event_types(audit_storage).count(AuditEventType.GOAL_CONTRIBUTION) == 2

    def test_contribution_to_missing_goal(self, session, audit_storage):
        asyncio.run(session.start())
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(session.contribute_to_goal("missing", "10"))
        assert exc_info.value.entity_id == "missing"
        assert event_types(audit_storage)[0] == AuditEventType.NOT_FOUND

    def test_invalid_contribution_checked_first(self, session, audit_storage):
        asyncio.run(session.start())
        with pytest.raises(ValidationError):
            asyncio.run(session.contribute_to_goal("missing", "abc"))
        assert event_types(audit_storage)[0] == AuditEventType.VALIDATION_FAILED

    def test_delete_goal(self, session):
        asyncio.run(session.start())
        goal = asyncio.run(session.create_goal("Holiday", "400", "2024-08-01"))
        asyncio.run(session.delete_goal(goal.id))
        assert session.view.goals == ()


    def test_contribution_without_start(self, session, storage):
        goal = asyncio.run(session.create_goal("Car", "1000", "2025-01-01"))
        updated = asyncio.run(session.contribute_to_goal(goal.id, "50"))
        assert updated.current_amount == Decimal("50")
        assert asyncio.run(storage.get_snapshot()).find_goal(goal.id).current_amount == Decimal("50")

    def test_contribution_after_stop_uses_stored_balance(self, session, storage):
        asyncio.run(session.start())
        goal = asyncio.run(session.create_goal("Car", "1000", "2025-01-01"))
        session.stop()
        asyncio.run(storage.update_goal_amount(goal.id, Decimal("300")))

        updated = asyncio.run(session.contribute_to_goal(goal.id, "50"))
        assert updated.current_amount == Decimal("350")

    def test_store_refusing_lower_balance_is_validation_error(self, audit_storage):
        class RacingStorage(InMemoryLedgerStorage):
            async def update_goal_amount(self, goal_id, current_amount):
                await super().update_goal_amount(goal_id, current_amount + Decimal("100"))
                return await super().update_goal_amount(goal_id, current_amount)

        session = LedgerSession(
            storage=RacingStorage(),
            user=UserContext(user_id="user-1"),
            audit_logger=AuditLogger(audit_storage),
            clock=lambda: TODAY,
            settings=AppSettings(),
        )
        goal = asyncio.run(session.create_goal("Car", "1000", "2025-01-01"))
        with pytest.raises(ValidationError, match="can only grow"):
            asyncio.run(session.contribute_to_goal(goal.id, "50"))
        assert event_types(audit_storage)[0] == AuditEventType.VALIDATION_FAILED


class TestAuditLogger:
    """Tests for audit logger failure handling."""

    def test_storage_failure_does_not_raise(self):
        audit_logger = AuditLogger(BrokenAuditStorage(), user_id="user-1")
        event = AuditEventBuilder.goal_deleted("g1", uuid4())
        assert asyncio.run(audit_logger.log(event)) is False

    def test_user_id_stamped(self, audit_storage):
        audit_logger = AuditLogger(audit_storage, user_id="user-9")
        asyncio.run(audit_logger.log_goal_deleted("g1", correlation_id=uuid4()))
        events = asyncio.run(audit_storage.get_recent_events())
        assert events[0].user_id == "user-9"

    def test_without_storage(self):
        assert asyncio.run(AuditLogger().log(AuditEventBuilder.goal_deleted("g1", uuid4()))) is True


class TestFactory:
    """Tests for create_app_components."""

    def test_creates_wired_session(self, storage):
        session, audit_logger = create_app_components(
            "user-1", display_name="Sam", storage=storage, clock=lambda: TODAY
        )
        assert session.user.display_name == "Sam"
        assert isinstance(audit_logger.storage, InMemoryAuditStorage)

        asyncio.run(session.start())
        asyncio.run(session.add_transaction("Lunch", "12", "expense", "Food"))
        assert session.balance() == Decimal("-12")
        events = asyncio.run(audit_logger.storage.get_recent_events())
        assert events[0].user_id == "user-1"
