"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLite is the persistent backend; the in-memory backend serves tests and
embedding. Both honour the same bucket payment uniqueness contract.
"""

from period_ledger.services.storage.interface import (
    UNSET,
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ReferencedEntityError,
    StorageConnectionError,
    StorageError,
)
from period_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from period_ledger.services.storage.sqlite import (
    SqliteAuditStorage,
    SqliteDatabase,
    SqliteLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UNSET",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "ReferencedEntityError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLite implementation
    "SqliteAuditStorage",
    "SqliteDatabase",
    "SqliteLedgerStorage",
]
