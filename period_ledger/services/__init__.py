"""Services package."""

from period_ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    ReferencedEntityError,
    SqliteAuditStorage,
    SqliteDatabase,
    SqliteLedgerStorage,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "ReferencedEntityError",
    "SqliteAuditStorage",
    "SqliteDatabase",
    "SqliteLedgerStorage",
    "StorageConnectionError",
    "StorageError",
]
