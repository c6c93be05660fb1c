"""
JSON File Storage Implementation

DESIGN DECISION: The local backend keeps the whole ledger in one JSON
document, the way a browser keeps it in local storage:
1. No server or database setup required
2. The file is human-readable and easy to back up
3. Identifiers are derived from the clock (milliseconds) and kept
   strictly increasing, so newer entries win the ordering tie-break

TRADEOFFS:
- Every write rewrites the whole file (fine for a personal ledger)
- Single process only; two processes writing the same file will race

File I/O is retried with backoff because transient OSErrors (antivirus
locks, network home directories) are common on desktop machines.
"""

import json
import os
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError as SchemaError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_tracker.config import get_settings
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
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    StorageUnavailableError,
)


DOCUMENT_VERSION = 1


class JsonFileLedgerStorage(LedgerStorageInterface):
    """
    Ledger store backed by a single JSON file.

    The document is loaded lazily on first access and written through
    on every change.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        super().__init__()
        self._path = Path(path or get_settings().storage.json_path).expanduser()
        self._snapshot_cache: Optional[LedgerSnapshot] = None
        self._last_id = 0

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def _read_document(self) -> Optional[dict[str, Any]]:
        if not self._path.exists():
            return None
        with self._path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def _write_document(self, document: dict[str, Any]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2)
        os.replace(tmp_path, self._path)

    def _load(self) -> LedgerSnapshot:
        if self._snapshot_cache is not None:
            return self._snapshot_cache

        try:
            document = self._read_document()
        except json.JSONDecodeError as e:
            raise StorageError(f"Ledger file {self._path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StorageUnavailableError(f"Could not read ledger file {self._path}: {e}") from e

        if document is None:
            snapshot = LedgerSnapshot()
            self._last_id = 0
        else:
            try:
                snapshot = LedgerSnapshot.model_validate({
                    "transactions": document.get("transactions", []),
                    "budgets": document.get("budgets", []),
                    "goals": document.get("goals", []),
                })
            except SchemaError as e:
                raise StorageError(f"Ledger file {self._path} has invalid entries: {e}") from e
            self._last_id = int(document.get("last_id", 0))

        self._snapshot_cache = snapshot
        return snapshot

    def _save(self, snapshot: LedgerSnapshot) -> None:
        document = {
            "version": DOCUMENT_VERSION,
            "last_id": self._last_id,
            **snapshot.model_dump(mode="json"),
        }
        try:
            self._write_document(document)
        except OSError as e:
            raise StorageUnavailableError(f"Could not write ledger file {self._path}: {e}") from e
        self._snapshot_cache = snapshot
        self._notify(snapshot)

    def _new_id(self) -> str:
        """Millisecond clock value, bumped when two entries land in the same millisecond."""
        now_ms = time.time_ns() // 1_000_000
        self._last_id = max(now_ms, self._last_id + 1)
        return str(self._last_id)

    def reload(self) -> None:
        """Drop the cached document so the next access re-reads the file."""
        self._snapshot_cache = None

    # ------------------------------------------------------------------
    # LedgerStorageInterface
    # ------------------------------------------------------------------

    async def get_snapshot(self) -> LedgerSnapshot:
        return self._load()

    async def add_transaction(self, draft: TransactionDraft) -> Transaction:
        snapshot = self._load()
        transaction = draft.with_id(self._new_id())
        self._save(snapshot.model_copy(
            update={"transactions": snapshot.transactions + (transaction,)}
        ))
        return transaction

    async def delete_transaction(self, transaction_id: str) -> bool:
        snapshot = self._load()
        remaining = tuple(t for t in snapshot.transactions if t.id != transaction_id)
        if len(remaining) == len(snapshot.transactions):
            raise NotFoundError("transaction", transaction_id)
        self._save(snapshot.model_copy(update={"transactions": remaining}))
        return True

    async def upsert_budget(self, draft: BudgetDraft) -> Budget:
        snapshot = self._load()
        budget = draft.to_budget()
        budgets = tuple(b for b in snapshot.budgets if b.category != budget.category)
        self._save(snapshot.model_copy(update={"budgets": budgets + (budget,)}))
        return budget

    async def delete_budget(self, category: str) -> bool:
        snapshot = self._load()
        budgets = tuple(b for b in snapshot.budgets if b.category != category)
        if len(budgets) == len(snapshot.budgets):
            raise NotFoundError("budget", category)
        self._save(snapshot.model_copy(update={"budgets": budgets}))
        return True

    async def add_goal(self, draft: GoalDraft) -> Goal:
        snapshot = self._load()
        goal = draft.with_id(self._new_id())
        self._save(snapshot.model_copy(update={"goals": snapshot.goals + (goal,)}))
        return goal

    async def delete_goal(self, goal_id: str) -> bool:
        snapshot = self._load()
        goals = tuple(g for g in snapshot.goals if g.id != goal_id)
        if len(goals) == len(snapshot.goals):
            raise NotFoundError("goal", goal_id)
        self._save(snapshot.model_copy(update={"goals": goals}))
        return True

    async def update_goal_amount(self, goal_id: str, current_amount: Decimal) -> Goal:
        snapshot = self._load()
        goal = snapshot.find_goal(goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        if current_amount < goal.current_amount:
            raise ValueError("A goal balance can only grow")

        updated = Goal.model_validate({**goal.model_dump(), "current_amount": current_amount})
        goals = tuple(updated if g.id == goal_id else g for g in snapshot.goals)
        self._save(snapshot.model_copy(update={"goals": goals}))
        return updated
