"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend (development, tests) and a Google Sheets
backend; business logic only ever sees the interfaces.
"""

from finance_manager.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)
from finance_manager.services.storage.in_memory import (
    InMemoryAuditStorage,
    InMemorySummaryStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "SummaryStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemorySummaryStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserStorage",
]
