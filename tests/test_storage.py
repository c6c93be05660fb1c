"""Tests for the ledger and audit stores."""

import asyncio
import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.ledger import (
    BudgetDraft,
    GoalDraft,
    TransactionDraft,
    TransactionKind,
)
from finance_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    NotFoundError,
    StorageError,
    StorageUnavailableError,
)


def expense(amount: str = "40", category: str = "Food") -> TransactionDraft:
    return TransactionDraft(
        description="Groceries",
        amount=Decimal(amount),
        kind=TransactionKind.EXPENSE,
        category=category,
        date=date(2024, 1, 5),
    )


def food_budget(limit: str) -> BudgetDraft:
    return BudgetDraft(category="Food", limit=Decimal(limit), month=1, year=2024)


def holiday_goal() -> GoalDraft:
    return GoalDraft(name="Holiday", target_amount=Decimal("1000"), deadline=date(2024, 8, 1))


@pytest.fixture(params=["memory", "json"])
def storage(request, tmp_path):
    """Every backend must honour the same contract."""
    if request.param == "memory":
        return InMemoryLedgerStorage()
    return JsonFileLedgerStorage(tmp_path / "ledger.json")


class TestLedgerStorageContract:
    """Behaviour shared by all ledger stores."""

    def test_add_and_delete_transaction(self, storage):
        async def flow():
            t = await storage.add_transaction(expense())
            snapshot = await storage.get_snapshot()
            assert snapshot.transactions == (t,)
            assert await storage.delete_transaction(t.id) is True
            return await storage.get_snapshot()

        snapshot = asyncio.run(flow())
        assert snapshot.transactions == ()

    def test_ids_are_unique(self, storage):
        async def flow():
            return [await storage.add_transaction(expense()) for _ in range(5)]

        transactions = asyncio.run(flow())
        assert len({t.id for t in transactions}) == 5

    def test_delete_missing_transaction(self, storage):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(storage.delete_transaction("nope"))
        assert exc_info.value.entity_type == "transaction"
        assert exc_info.value.entity_id == "nope"

    def test_budget_upsert_by_category(self, storage):
        async def flow():
            await storage.upsert_budget(food_budget("100"))
            await storage.upsert_budget(food_budget("250"))
            return await storage.get_snapshot()

        snapshot = asyncio.run(flow())
        assert len(snapshot.budgets) == 1
        assert snapshot.budgets[0].limit == Decimal("250")

    def test_budget_delete(self, storage):
        async def flow():
            await storage.upsert_budget(food_budget("100"))
            await storage.delete_budget("Food")
            return await storage.get_snapshot()

        assert asyncio.run(flow()).budgets == ()
        with pytest.raises(NotFoundError):
            asyncio.run(storage.delete_budget("Food"))

    def test_budget_survives_deleting_its_transactions(self, storage):
        async def flow():
            await storage.upsert_budget(food_budget("100"))
            t = await storage.add_transaction(expense())
            await storage.delete_transaction(t.id)
            return await storage.get_snapshot()

        assert len(asyncio.run(flow()).budgets) == 1

    def test_goal_lifecycle(self, storage):
        async def flow():
            goal = await storage.add_goal(holiday_goal())
            assert goal.current_amount == Decimal("0")
            updated = await storage.update_goal_amount(goal.id, Decimal("150"))
            snapshot = await storage.get_snapshot()
            assert snapshot.find_goal(goal.id).current_amount == Decimal("150")
            await storage.delete_goal(goal.id)
            return updated, await storage.get_snapshot()

        updated, snapshot = asyncio.run(flow())
        assert updated.current_amount == Decimal("150")
        assert snapshot.goals == ()

    def test_goal_amount_never_decreases(self, storage):
        async def flow():
            goal = await storage.add_goal(holiday_goal())
            await storage.update_goal_amount(goal.id, Decimal("150"))
            await storage.update_goal_amount(goal.id, Decimal("100"))

        with pytest.raises(ValueError):
            asyncio.run(flow())

    def test_update_missing_goal(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_goal_amount("missing", Decimal("1")))

    def test_subscribers_notified_after_each_write(self, storage):
        received = []
        unsubscribe = storage.subscribe(received.append)

        async def flow():
            t = await storage.add_transaction(expense())
            await storage.upsert_budget(food_budget("100"))
            await storage.delete_transaction(t.id)

        asyncio.run(flow())
        assert len(received) == 3
        assert len(received[0].transactions) == 1
        assert len(received[1].budgets) == 1
        assert received[2].transactions == ()

        unsubscribe()
        asyncio.run(storage.add_transaction(expense()))
        assert len(received) == 3
        assert storage.listener_count == 0

    def test_failing_listener_does_not_block_others(self, storage):
        received = []

        def broken(snapshot):
            raise RuntimeError("render failed")

        storage.subscribe(broken)
        storage.subscribe(received.append)
        asyncio.run(storage.add_transaction(expense()))
        assert len(received) == 1

    def test_failed_delete_does_not_notify(self, storage):
        received = []
        storage.subscribe(received.append)
        with pytest.raises(NotFoundError):
            asyncio.run(storage.delete_goal("missing"))
        assert received == []


class TestJsonFileLedgerStorage:
    """File-specific behaviour of the local store."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "ledger.json"

        async def write():
            store = JsonFileLedgerStorage(path)
            await store.add_transaction(expense("12.34"))
            await store.upsert_budget(food_budget("100"))
            await store.add_goal(holiday_goal())

        asyncio.run(write())
        snapshot = asyncio.run(JsonFileLedgerStorage(path).get_snapshot())
        assert snapshot.transactions[0].amount == Decimal("12.34")
        assert snapshot.transactions[0].kind == TransactionKind.EXPENSE
        assert snapshot.budgets[0].category == "Food"
        assert snapshot.goals[0].name == "Holiday"

    def test_document_layout(self, tmp_path):
        path = tmp_path / "ledger.json"
        asyncio.run(JsonFileLedgerStorage(path).add_transaction(expense()))
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["version"] == 1
        assert set(document) >= {"transactions", "budgets", "goals", "last_id"}
        assert document["transactions"][0]["date"] == "2024-01-05"

    def test_ids_are_increasing_clock_values(self, tmp_path):
        store = JsonFileLedgerStorage(tmp_path / "ledger.json")

        async def flow():
            return [await store.add_transaction(expense()) for _ in range(3)]

        ids = [int(t.id) for t in asyncio.run(flow())]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3
        assert ids[0] > 1_600_000_000_000

    def test_ids_keep_increasing_after_reopen(self, tmp_path):
        path = tmp_path / "ledger.json"
        first = asyncio.run(JsonFileLedgerStorage(path).add_transaction(expense()))
        second = asyncio.run(JsonFileLedgerStorage(path).add_transaction(expense()))
        assert int(second.id) > int(first.id)

    def test_missing_file_is_empty_ledger(self, tmp_path):
        snapshot = asyncio.run(JsonFileLedgerStorage(tmp_path / "absent.json").get_snapshot())
        assert snapshot.transactions == ()
        assert not (tmp_path / "absent.json").exists()

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError, match="not valid JSON"):
            asyncio.run(JsonFileLedgerStorage(path).get_snapshot())

    def test_invalid_entries_raise_storage_error(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({
            "transactions": [{"id": "1", "description": "x", "amount": "-3",
                              "kind": "expense", "category": "Food", "date": "2024-01-01"}],
        }), encoding="utf-8")
        with pytest.raises(StorageError, match="invalid entries"):
            asyncio.run(JsonFileLedgerStorage(path).get_snapshot())

    def test_reload_picks_up_external_changes(self, tmp_path):
        path = tmp_path / "ledger.json"
        store = JsonFileLedgerStorage(path)
        assert asyncio.run(store.get_snapshot()).transactions == ()
        asyncio.run(JsonFileLedgerStorage(path).add_transaction(expense()))
        assert asyncio.run(store.get_snapshot()).transactions == ()
        store.reload()
        assert len(asyncio.run(store.get_snapshot()).transactions) == 1


class TestInMemoryAuditStorage:
    """Tests for the append-only audit store."""

    def test_queries(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        first = AuditEventBuilder.transaction_deleted("t1", correlation_id)
        second = AuditEventBuilder.goal_deleted("g1", uuid4())

        async def flow():
            await storage.append_event(first)
            await storage.append_event(second)
            return (
                await storage.get_events_by_correlation_id(correlation_id),
                await storage.get_events_by_entity("goal", "g1"),
                await storage.get_recent_events(limit=1),
            )

        by_correlation, by_entity, recent = asyncio.run(flow())
        assert by_correlation == [first]
        assert by_entity == [second]
        assert recent == [second]


class TestStorageFailures:
    """File errors that outlast the retries."""

    def test_unreadable_path_raises_unavailable(self, tmp_path):
        store = JsonFileLedgerStorage(tmp_path)
        with pytest.raises(StorageUnavailableError, match="Could not read"):
            asyncio.run(store.get_snapshot())

    def test_unavailable_is_a_storage_error(self):
        assert issubclass(StorageUnavailableError, StorageError)
