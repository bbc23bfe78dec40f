"""
In-Memory Storage Implementation

Dictionary-backed implementations of the storage interfaces. Used for
local development (STORAGE_BACKEND=memory) and throughout the test suite.

Records are copied on the way in and on the way out, so callers mutating a
returned model never change what is stored until they save it again,
the same as with a real document store.
"""

from typing import Optional
from uuid import UUID

from finance_manager.models.audit import AuditEvent
from finance_manager.models.transaction import AccountSummary, Transaction, User
from finance_manager.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions keyed by id, in insertion order."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            return None
        if user_id is not None and transaction.user_id != user_id:
            return None
        return transaction.model_copy(deep=True)

    async def update_transaction(self, transaction: Transaction) -> bool:
        stored = self._transactions.get(transaction.id)
        if stored is None:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        if stored.user_id != transaction.user_id:
            raise StorageError(f"Transaction owner cannot change: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: UUID,
    ) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            return None
        return self._transactions.pop(transaction_id)

    async def list_transactions(
        self,
        user_id: UUID,
        newest_first: Optional[bool] = True,
    ) -> list[Transaction]:
        owned = [
            t.model_copy(deep=True)
            for t in self._transactions.values()
            if t.user_id == user_id
        ]
        if newest_first is None:
            return owned
        # sorted() is stable, so equal dates keep insertion order
        return sorted(owned, key=lambda t: t.date, reverse=newest_first)


class InMemorySummaryStorage(SummaryStorageInterface):
    """One AccountSummary per user id."""

    def __init__(self):
        self._summaries: dict[UUID, AccountSummary] = {}

    async def get_summary(self, user_id: UUID) -> Optional[AccountSummary]:
        summary = self._summaries.get(user_id)
        return summary.model_copy(deep=True) if summary else None

    async def save_summary(self, summary: AccountSummary) -> bool:
        self._summaries[summary.user_id] = summary.model_copy(deep=True)
        return True


class InMemoryUserStorage(UserStorageInterface):
    """Users keyed by id, with an email index."""

    def __init__(self):
        self._users: dict[UUID, User] = {}
        self._by_email: dict[str, UUID] = {}

    async def save_user(self, user: User) -> bool:
        if user.email in self._by_email:
            raise DuplicateError(f"Email already registered: {user.email}")
        self._users[user.id] = user.model_copy(deep=True)
        self._by_email[user.email] = user.id
        return True

    async def get_user_by_email(self, email: str) -> Optional[User]:
        user_id = self._by_email.get(email.strip().lower())
        return await self.get_user_by_id(user_id) if user_id else None

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
