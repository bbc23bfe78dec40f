"""Services package."""

from finance_manager.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemorySummaryStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
    NotFoundError,
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)

# Import auth from finance_manager.services.auth (it depends on finance_manager.audit)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemorySummaryStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserStorage",
    "NotFoundError",
    "StorageError",
    "SummaryStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
]
