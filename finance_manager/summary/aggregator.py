"""
Account Summary Aggregator

Keeps each user's AccountSummary equal to the totals of that user's
transactions. Two strategies are available:

1. recompute(): re-derive the totals from every transaction the user owns.
   Linear in the user's transaction count, and immune to drift. Used after
   create and delete.
2. apply_delta(): subtract one transaction's old contribution and add its
   new one. Only valid while the stored summary already reflects the
   pre-update state. Used by update.

Store failures are logged, audited and re-raised. They never roll back
the transaction write that triggered them.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_manager.audit import AuditLogger, get_logger
from finance_manager.models.transaction import (
    ZERO,
    AccountSummary,
    Transaction,
    TransactionType,
)
from finance_manager.services.storage import (
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
)


logger = get_logger(__name__)


def sum_by_type(transactions: list[Transaction]) -> tuple[Decimal, Decimal]:
    """Return (total_income, total_expenses) for a list of transactions."""
    total_income = sum(
        (t.amount for t in transactions if t.type == TransactionType.INCOME),
        ZERO,
    )
    total_expenses = sum(
        (t.amount for t in transactions if t.type == TransactionType.EXPENSE),
        ZERO,
    )
    return total_income, total_expenses


def contribution(transaction: Transaction) -> tuple[Decimal, Decimal]:
    """(income, expense) amounts a single transaction adds to a summary."""
    if transaction.type == TransactionType.INCOME:
        return transaction.amount, ZERO
    return ZERO, transaction.amount


class SummaryAggregator:
    """Maintains the per-user income/expense/balance aggregate."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        summary_storage: SummaryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._summaries = summary_storage
        self._audit_logger = audit_logger

    async def get_summary(self, user_id: UUID) -> Optional[AccountSummary]:
        """Current summary, or None if it was never created."""
        return await self._summaries.get_summary(user_id)

    async def get_or_create(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountSummary:
        """
        Load the user's summary, lazily creating a zero summary if absent.

        A freshly created summary is persisted before it is returned.
        """
        summary = await self._summaries.get_summary(user_id)
        if summary is not None:
            return summary

        summary = AccountSummary.empty(user_id)
        await self._save(summary, "create_summary", correlation_id)
        if self._audit_logger:
            await self._audit_logger.log_summary_created(user_id, correlation_id)
        return summary

    async def recompute(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountSummary:
        """
        Re-derive the user's summary from all of their transactions.

        Upserts the result: creates the summary if absent, else overwrites it.
        """
        try:
            transactions = await self._transactions.list_transactions(user_id)
        except StorageError as e:
            await self._report_failure("recompute_summary", e, user_id, correlation_id)
            raise

        total_income, total_expenses = sum_by_type(transactions)
        summary = AccountSummary(
            user_id=user_id,
            total_income=total_income,
            total_expenses=total_expenses,
            balance=total_income - total_expenses,
        )
        await self._save(summary, "recompute_summary", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_summary_recomputed(
                summary, len(transactions), correlation_id
            )
        return summary

    async def apply_delta(
        self,
        user_id: UUID,
        before: Transaction,
        after: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AccountSummary:
        """
        Move one transaction's contribution from its old to its new values.

        Handles a type change: income -> expense takes the old amount out of
        total_income and puts the new amount into total_expenses.
        """
        try:
            summary = await self._summaries.get_summary(user_id)
        except StorageError as e:
            await self._report_failure("adjust_summary", e, user_id, correlation_id)
            raise
        if summary is None:
            summary = AccountSummary.empty(user_id)

        old_income, old_expense = contribution(before)
        new_income, new_expense = contribution(after)
        income_delta = new_income - old_income
        expense_delta = new_expense - old_expense

        summary.total_income += income_delta
        summary.total_expenses += expense_delta
        summary.recalculate_balance()

        await self._save(summary, "adjust_summary", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_summary_adjusted(
                summary, income_delta, expense_delta, correlation_id
            )
        return summary

    async def _save(
        self,
        summary: AccountSummary,
        operation: str,
        correlation_id: Optional[UUID],
    ) -> None:
        try:
            await self._summaries.save_summary(summary)
        except StorageError as e:
            await self._report_failure(operation, e, summary.user_id, correlation_id)
            raise

    async def _report_failure(
        self,
        operation: str,
        error: Exception,
        user_id: UUID,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.error(
            "summary_update_failed",
            operation=operation,
            user_id=str(user_id),
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                user_id=user_id,
                correlation_id=correlation_id,
            )
