"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the summary engine decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Find-by-id, find-by-owner (sorted), insert, save in place and
delete-by-filter are all the lifecycle controller needs.

Calls are issued one at a time. Nothing here wraps several calls in one
atomic unit, so a transaction write can succeed while the following
summary write fails.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from finance_manager.models.transaction import AccountSummary, Transaction, User
from finance_manager.models.audit import AuditEvent


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Insert a new transaction.

        Raises:
            DuplicateError: If a transaction with this id already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: The transaction's unique identifier
            user_id: If given, only match a transaction owned by this user

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Overwrite an existing transaction in place.

        Raises:
            NotFoundError: If transaction doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: UUID,
    ) -> Optional[Transaction]:
        """
        Delete the transaction matching both id and owner.

        Returns:
            The deleted transaction, or None if nothing matched
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: UUID,
        newest_first: Optional[bool] = True,
    ) -> list[Transaction]:
        """
        List all transactions owned by a user.

        Args:
            user_id: Owner to filter on
            newest_first: Sort by date descending (ascending if False,
                insertion order if None)

        Returns:
            The user's transactions
        """
        pass


class SummaryStorageInterface(ABC):
    """Abstract interface for per-user account summary storage."""

    @abstractmethod
    async def get_summary(self, user_id: UUID) -> Optional[AccountSummary]:
        """Return the user's summary, or None if none was created yet."""
        pass

    @abstractmethod
    async def save_summary(self, summary: AccountSummary) -> bool:
        """
        Create the summary if absent, otherwise overwrite it.

        Raises:
            StorageError: If save fails
        """
        pass


class UserStorageInterface(ABC):
    """Abstract interface for registered users."""

    @abstractmethod
    async def save_user(self, user: User) -> bool:
        """
        Insert a new user.

        Raises:
            DuplicateError: If the email is already registered
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
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
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
