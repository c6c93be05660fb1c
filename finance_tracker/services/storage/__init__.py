"""
Storage Services Package

Provides the abstract ledger and audit storage interfaces plus two
ledger backends: an in-memory push store and a local JSON file store.
"""

from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    StorageUnavailableError,
    LedgerStorageInterface,
    NotFoundError,
    SnapshotListener,
    StorageError,
)
from finance_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from finance_tracker.services.storage.json_file import JsonFileLedgerStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "SnapshotListener",
    # Exceptions
    "StorageUnavailableError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "JsonFileLedgerStorage",
]
