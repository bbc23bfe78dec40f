"""
Main Orchestrator for Finance Manager

This module ties together all the components and defines the
transaction lifecycle:
1. Create (validate → insert → recompute summary)
2. Update (validate → locate → overwrite → adjust summary by delta)
3. Delete (delete scoped to owner → recompute summary)

DESIGN DECISION: Each mutating operation for a user runs under that
user's lock, so the transaction write and the summary write it triggers
are never interleaved with another operation for the same user in this
process. The two writes are still separate store calls: if the summary
write fails, the transaction write stands, and the failure is logged,
audited and raised to the caller.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from finance_manager.advisor import BudgetAdvisor
from finance_manager.audit import AuditLogger, create_correlation_id, get_logger
from finance_manager.config import Settings, get_settings
from finance_manager.models.transaction import (
    AccountSummary,
    Transaction,
    TransactionInput,
    TransactionType,
    ValidationIssue,
)
from finance_manager.services.auth import AuthService
from finance_manager.services.storage import (
    AuditStorageInterface,
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
from finance_manager.summary import SummaryAggregator
from finance_manager.validation import TransactionValidationError, TransactionValidator


logger = get_logger(__name__)


class TransactionNotFoundError(NotFoundError):
    """No transaction with this id belongs to the requesting user."""

    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__("Transaction not found")


def _issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "transaction",
            issue_type="invalid_value",
            message=err["msg"],
        )
        for err in error.errors()
    ]


class TransactionLifecycle:
    """
    Orchestrates create/update/delete of transactions.

    Flow for every mutation:
    1. Validate the payload (nothing is written for a rejected payload)
    2. Acquire the owner's lock
    3. Write the transaction
    4. Bring the owner's summary up to date
    5. Release the lock (on every exit path)
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        aggregator: SummaryAggregator,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._aggregator = aggregator
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: UUID):
        """
        Hold the user's lock for the duration of the block.

        A lock is dropped once no operation holds or waits for it, so
        the table only contains users with operations in flight.
        """
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                del self._locks[user_id]

    async def _validate(
        self,
        user_id: UUID,
        payload: TransactionInput,
        correlation_id: UUID,
    ) -> None:
        try:
            self._validator.validate_or_raise(payload)
        except TransactionValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    user_id=user_id,
                    issues=e.issues_as_dicts(),
                    correlation_id=correlation_id,
                )
            raise

    async def list_transactions(self, user_id: UUID) -> list[Transaction]:
        """The user's transactions, most recent date first."""
        return await self._transactions.list_transactions(user_id, newest_first=True)

    async def get_summary(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountSummary:
        """The user's summary, created with zero totals on first read."""
        async with self._user_lock(user_id):
            return await self._aggregator.get_or_create(user_id, correlation_id)

    async def create(
        self,
        user_id: UUID,
        payload: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a new transaction and recompute the owner's summary.

        Raises:
            TransactionValidationError: Missing or invalid fields
            StorageError: Store unavailable (transaction may already be saved)
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._validate(user_id, payload, correlation_id)

        try:
            transaction = Transaction(
                user_id=user_id,
                amount=payload.amount,
                description=payload.description,
                category=payload.category,
                date=payload.date,
                type=TransactionType(payload.type),
            )
        except ValidationError as e:
            raise TransactionValidationError(_issues_from_pydantic(e), message="Invalid transaction.")

        async with self._user_lock(user_id):
            await self._transactions.save_transaction(transaction)
            if self._audit_logger:
                await self._audit_logger.log_transaction_created(transaction, correlation_id)

            await self._aggregator.recompute(user_id, correlation_id)

        logger.info(
            "transaction_created",
            transaction_id=str(transaction.id),
            user_id=str(user_id),
        )
        return transaction

    async def update(
        self,
        user_id: UUID,
        transaction_id: UUID,
        payload: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, AccountSummary]:
        """
        Overwrite a transaction and adjust the owner's summary by the delta.

        The lookup is scoped to the requesting user, the same as delete.

        Returns:
            (updated_transaction, updated_summary)

        Raises:
            TransactionValidationError: Missing or invalid fields
            TransactionNotFoundError: No such transaction for this user
            StorageError: Store unavailable
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._validate(user_id, payload, correlation_id)

        async with self._user_lock(user_id):
            existing = await self._transactions.get_transaction(transaction_id, user_id=user_id)
            if existing is None:
                if self._audit_logger:
                    await self._audit_logger.log_transaction_not_found(
                        transaction_id, user_id, "update", correlation_id
                    )
                raise TransactionNotFoundError(transaction_id)

            before = existing.model_copy(deep=True)
            try:
                existing.apply_input(payload)
                updated = Transaction.model_validate(existing.model_dump())
            except ValidationError as e:
                raise TransactionValidationError(_issues_from_pydantic(e), message="Invalid transaction.")

            await self._transactions.update_transaction(updated)
            if self._audit_logger:
                await self._audit_logger.log_transaction_updated(before, updated, correlation_id)

            summary = await self._aggregator.apply_delta(user_id, before, updated, correlation_id)

        logger.info(
            "transaction_updated",
            transaction_id=str(transaction_id),
            user_id=str(user_id),
        )
        return updated, summary

    async def delete(
        self,
        user_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Delete a transaction owned by the user and recompute their summary.

        Deleting another user's transaction is reported as not found and
        leaves the store untouched.

        Raises:
            TransactionNotFoundError: No such transaction for this user
            StorageError: Store unavailable
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._user_lock(user_id):
            deleted = await self._transactions.delete_transaction(transaction_id, user_id)
            if deleted is None:
                if self._audit_logger:
                    await self._audit_logger.log_transaction_not_found(
                        transaction_id, user_id, "delete", correlation_id
                    )
                raise TransactionNotFoundError(transaction_id)

            if self._audit_logger:
                await self._audit_logger.log_transaction_deleted(
                    transaction_id, user_id, correlation_id
                )

            await self._aggregator.recompute(user_id, correlation_id)

        logger.info(
            "transaction_deleted",
            transaction_id=str(transaction_id),
            user_id=str(user_id),
        )
        return deleted


@dataclass
class AppComponents:
    """Everything the HTTP layer needs, wired to one storage backend."""
    lifecycle: TransactionLifecycle
    advisor: BudgetAdvisor
    auth: AuthService
    audit_logger: AuditLogger


def _create_storage(
    settings: Settings,
) -> tuple[
    TransactionStorageInterface,
    SummaryStorageInterface,
    UserStorageInterface,
    AuditStorageInterface,
]:
    if settings.app.storage_backend == "google_sheets":
        from finance_manager.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsSummaryStorage,
            GoogleSheetsTransactionStorage,
            GoogleSheetsUserStorage,
        )

        client = GoogleSheetsClient()
        return (
            GoogleSheetsTransactionStorage(client),
            GoogleSheetsSummaryStorage(client),
            GoogleSheetsUserStorage(client),
            GoogleSheetsAuditStorage(client),
        )

    return (
        InMemoryTransactionStorage(),
        InMemorySummaryStorage(),
        InMemoryUserStorage(),
        InMemoryAuditStorage(),
    )


def create_app_components(
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from. Defaults to get_settings().

    Raises:
        StorageError: If the configured storage backend cannot be set up
    """
    settings = settings or get_settings()

    try:
        transactions, summaries, users, audit_storage = _create_storage(settings)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(f"Storage not configured: {e}")

    audit_logger = AuditLogger(audit_storage)
    aggregator = SummaryAggregator(transactions, summaries, audit_logger)

    return AppComponents(
        lifecycle=TransactionLifecycle(
            transaction_storage=transactions,
            aggregator=aggregator,
            audit_logger=audit_logger,
        ),
        advisor=BudgetAdvisor(transactions, summaries, audit_logger),
        auth=AuthService(users, settings=settings.auth, audit_logger=audit_logger),
        audit_logger=audit_logger,
    )
