"""
Integration tests for the transaction lifecycle.

Every flow runs against in-memory storage and checks that the stored
summary always matches the user's transactions.
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from finance_manager.models.audit import AuditEventType
from finance_manager.models.transaction import AccountSummary, TransactionType
from finance_manager.orchestrator import (
    TransactionLifecycle,
    TransactionNotFoundError,
    create_app_components,
)
from finance_manager.services.storage import InMemorySummaryStorage, StorageError
from finance_manager.summary import SummaryAggregator
from finance_manager.validation import TransactionValidationError
from tests.helpers import make_input, run


class FailingSummaryStorage(InMemorySummaryStorage):
    async def save_summary(self, summary: AccountSummary) -> bool:
        raise StorageError("summary store unavailable")


class SwitchableSummaryStorage(InMemorySummaryStorage):
    """Writes succeed until fail_writes is set."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def save_summary(self, summary: AccountSummary) -> bool:
        if self.fail_writes:
            raise StorageError("summary store unavailable")
        return await super().save_summary(summary)


def assert_summary_matches(transaction_storage, summary_storage, user_id):
    """The stored summary equals the totals of the stored transactions."""
    transactions = run(transaction_storage.list_transactions(user_id))
    summary = run(summary_storage.get_summary(user_id))
    income = sum((t.amount for t in transactions if t.type == TransactionType.INCOME), Decimal("0"))
    expenses = sum((t.amount for t in transactions if t.type == TransactionType.EXPENSE), Decimal("0"))
    assert summary.total_income == income
    assert summary.total_expenses == expenses
    assert summary.balance == income - expenses


class TestCreate:
    """Tests for creating transactions."""

    def test_create_saves_and_recomputes(self, lifecycle, summary_storage, user_id):
        transaction = run(lifecycle.create(
            user_id, make_input(amount="1000.00", category="salary", type="income")
        ))

        assert transaction.user_id == user_id
        assert transaction.type == TransactionType.INCOME

        summary = run(summary_storage.get_summary(user_id))
        assert summary.total_income == Decimal("1000.00")
        assert summary.balance == Decimal("1000.00")

    def test_create_first_transaction_creates_summary(self, lifecycle, summary_storage, user_id):
        assert run(summary_storage.get_summary(user_id)) is None
        run(lifecycle.create(user_id, make_input(amount="12.00")))
        assert run(summary_storage.get_summary(user_id)) is not None

    def test_zero_amount_is_rejected(self, lifecycle, transaction_storage, summary_storage, user_id):
        """Test nothing is written for an invalid payload."""
        with pytest.raises(TransactionValidationError):
            run(lifecycle.create(user_id, make_input(amount="0")))

        assert run(transaction_storage.list_transactions(user_id)) == []
        assert run(summary_storage.get_summary(user_id)) is None

    def test_missing_field_message(self, lifecycle, user_id):
        with pytest.raises(TransactionValidationError, match="All fields are required."):
            run(lifecycle.create(user_id, make_input(description=None)))

    def test_empty_category_is_missing(self, lifecycle, user_id):
        with pytest.raises(TransactionValidationError) as exc_info:
            run(lifecycle.create(user_id, make_input(category="   ")))
        assert exc_info.value.issues[0].field == "category"

    def test_invalid_type_is_rejected(self, lifecycle, user_id):
        with pytest.raises(TransactionValidationError, match="Type must be one of"):
            run(lifecycle.create(user_id, make_input(type="transfer")))

    def test_validation_failure_is_audited(self, lifecycle, audit_storage, user_id):
        with pytest.raises(TransactionValidationError):
            run(lifecycle.create(user_id, make_input(amount="-5.00")))

        events = run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.VALIDATION_FAILED

    def test_amount_keeps_full_precision(self, lifecycle, summary_storage, user_id):
        """Test amounts with more than two decimal places are summed exactly."""
        transaction = run(lifecycle.create(user_id, make_input(amount="10.555")))
        run(lifecycle.create(user_id, make_input(amount="0.001", type="income")))

        assert transaction.amount == Decimal("10.555")

        summary = run(summary_storage.get_summary(user_id))
        assert summary.total_expenses == Decimal("10.555")
        assert summary.total_income == Decimal("0.001")
        assert summary.balance == Decimal("-10.554")

    def test_list_is_newest_first(self, lifecycle, user_id):
        run(lifecycle.create(user_id, make_input(description="old", date=datetime(2024, 1, 1))))
        run(lifecycle.create(user_id, make_input(description="new", date=datetime(2024, 6, 1))))

        transactions = run(lifecycle.list_transactions(user_id))
        assert [t.description for t in transactions] == ["new", "old"]


class TestUpdate:
    """Tests for updating transactions."""

    def test_update_amount(self, lifecycle, transaction_storage, summary_storage, user_id):
        created = run(lifecycle.create(user_id, make_input(amount="100.00")))

        updated, summary = run(lifecycle.update(
            user_id, created.id, make_input(amount="40.00", description="Cheaper")
        ))

        assert updated.id == created.id
        assert updated.amount == Decimal("40.00")
        assert summary.total_expenses == Decimal("40.00")
        assert summary.balance == Decimal("-40.00")
        assert_summary_matches(transaction_storage, summary_storage, user_id)

    def test_expense_to_income_moves_amount(self, lifecycle, transaction_storage, summary_storage, user_id):
        """Test a type change moves the amount between totals exactly."""
        run(lifecycle.create(user_id, make_input(amount="500.00", category="salary", type="income")))
        refund = run(lifecycle.create(user_id, make_input(amount="75.50", category="shopping")))

        _, summary = run(lifecycle.update(
            user_id, refund.id, make_input(amount="75.50", category="refund", type="income")
        ))

        assert summary.total_income == Decimal("575.50")
        assert summary.total_expenses == Decimal("0.00")
        assert summary.balance == Decimal("575.50")
        assert_summary_matches(transaction_storage, summary_storage, user_id)

    def test_update_unknown_id(self, lifecycle, user_id):
        with pytest.raises(TransactionNotFoundError):
            run(lifecycle.update(user_id, uuid4(), make_input()))

    def test_update_other_users_transaction(
        self, lifecycle, transaction_storage, user_id, other_user_id
    ):
        """Test a user cannot overwrite someone else's transaction."""
        theirs = run(lifecycle.create(other_user_id, make_input(amount="10.00")))

        with pytest.raises(TransactionNotFoundError):
            run(lifecycle.update(user_id, theirs.id, make_input(amount="99.00")))

        stored = run(transaction_storage.get_transaction(theirs.id))
        assert stored.amount == Decimal("10.00")
        assert stored.user_id == other_user_id

    def test_invalid_update_changes_nothing(self, lifecycle, transaction_storage, user_id):
        created = run(lifecycle.create(user_id, make_input(amount="10.00")))

        with pytest.raises(TransactionValidationError):
            run(lifecycle.update(user_id, created.id, make_input(amount="0")))

        stored = run(transaction_storage.get_transaction(created.id))
        assert stored.amount == Decimal("10.00")

    def test_update_is_audited_with_before_and_after(self, lifecycle, audit_storage, user_id):
        created = run(lifecycle.create(user_id, make_input(amount="10.00")))
        run(lifecycle.update(user_id, created.id, make_input(amount="20.00")))

        events = run(audit_storage.get_events_by_entity("transaction", created.id))
        updated = [e for e in events if e.event_type == AuditEventType.TRANSACTION_UPDATED]
        assert len(updated) == 1
        assert updated[0].details["before"]["amount"] == 10.0
        assert updated[0].details["after"]["amount"] == 20.0


class TestDelete:
    """Tests for deleting transactions."""

    def test_delete_recomputes(self, lifecycle, transaction_storage, summary_storage, user_id):
        run(lifecycle.create(user_id, make_input(amount="1000.00", type="income")))
        rent = run(lifecycle.create(user_id, make_input(amount="400.00", category="rent")))

        run(lifecycle.delete(user_id, rent.id))

        summary = run(summary_storage.get_summary(user_id))
        assert summary.total_expenses == Decimal("0")
        assert summary.balance == Decimal("1000.00")
        assert_summary_matches(transaction_storage, summary_storage, user_id)

    def test_delete_other_users_transaction(
        self, lifecycle, transaction_storage, summary_storage, user_id, other_user_id
    ):
        """Test deleting someone else's transaction is not found and changes nothing."""
        theirs = run(lifecycle.create(other_user_id, make_input(amount="60.00")))
        before = run(summary_storage.get_summary(other_user_id))

        with pytest.raises(TransactionNotFoundError):
            run(lifecycle.delete(user_id, theirs.id))

        assert run(transaction_storage.get_transaction(theirs.id)) is not None
        assert run(summary_storage.get_summary(other_user_id)) == before

    def test_delete_twice(self, lifecycle, user_id):
        created = run(lifecycle.create(user_id, make_input()))
        run(lifecycle.delete(user_id, created.id))

        with pytest.raises(TransactionNotFoundError):
            run(lifecycle.delete(user_id, created.id))

    def test_delete_last_transaction_zeroes_summary(self, lifecycle, summary_storage, user_id):
        created = run(lifecycle.create(user_id, make_input(amount="33.33")))
        run(lifecycle.delete(user_id, created.id))

        summary = run(summary_storage.get_summary(user_id))
        assert summary.total_expenses == 0
        assert summary.balance == 0


class TestSummaryInvariants:
    """The summary tracks the transactions through any sequence of operations."""

    def test_mixed_sequence(self, lifecycle, transaction_storage, summary_storage, user_id):
        salary = run(lifecycle.create(user_id, make_input(amount="2500.00", type="income")))
        rent = run(lifecycle.create(user_id, make_input(amount="900.00", category="rent")))
        food = run(lifecycle.create(user_id, make_input(amount="120.45", category="food")))
        assert_summary_matches(transaction_storage, summary_storage, user_id)

        run(lifecycle.update(user_id, rent.id, make_input(amount="950.00", category="rent")))
        assert_summary_matches(transaction_storage, summary_storage, user_id)

        run(lifecycle.update(user_id, salary.id, make_input(amount="2500.00", type="expense")))
        assert_summary_matches(transaction_storage, summary_storage, user_id)

        run(lifecycle.delete(user_id, food.id))
        assert_summary_matches(transaction_storage, summary_storage, user_id)

    def test_users_are_isolated(self, lifecycle, summary_storage, user_id, other_user_id):
        run(lifecycle.create(user_id, make_input(amount="10.00", type="income")))
        run(lifecycle.create(other_user_id, make_input(amount="99.00", type="income")))

        assert run(summary_storage.get_summary(user_id)).total_income == Decimal("10.00")
        assert run(summary_storage.get_summary(other_user_id)).total_income == Decimal("99.00")

    def test_concurrent_creates(self, lifecycle, transaction_storage, summary_storage, user_id):
        """Test concurrent creates for one user all land in the summary."""
        async def create_many():
            await asyncio.gather(*[
                lifecycle.create(user_id, make_input(amount="10.00", type="income"))
                for _ in range(20)
            ])

        run(create_many())

        summary = run(summary_storage.get_summary(user_id))
        assert summary.total_income == Decimal("200.00")
        assert_summary_matches(transaction_storage, summary_storage, user_id)

    def test_locks_are_dropped_when_idle(self, lifecycle, user_id, other_user_id):
        """Test the lock table does not grow with every user seen."""
        async def busy():
            await asyncio.gather(
                *[lifecycle.create(user_id, make_input()) for _ in range(5)],
                *[lifecycle.create(other_user_id, make_input()) for _ in range(5)],
            )
            await lifecycle.get_summary(user_id)

        run(busy())

        with pytest.raises(TransactionNotFoundError):
            run(lifecycle.delete(user_id, uuid4()))

        assert lifecycle._locks == {}
        assert lifecycle._lock_users == {}

    def test_get_summary_creates_zero_summary(self, lifecycle, summary_storage, user_id):
        summary = run(lifecycle.get_summary(user_id))
        assert summary.balance == 0
        assert run(summary_storage.get_summary(user_id)) is not None


class TestPartialFailure:
    """The transaction write stands when the summary write fails."""

    def test_create_keeps_transaction_and_raises(self, transaction_storage, audit_logger, audit_storage, user_id):
        aggregator = SummaryAggregator(transaction_storage, FailingSummaryStorage(), audit_logger)
        lifecycle = TransactionLifecycle(transaction_storage, aggregator, audit_logger=audit_logger)

        with pytest.raises(StorageError):
            run(lifecycle.create(user_id, make_input(amount="10.00")))

        assert len(run(transaction_storage.list_transactions(user_id))) == 1

        event_types = {e.event_type for e in run(audit_storage.get_recent_events())}
        assert AuditEventType.TRANSACTION_CREATED in event_types
        assert AuditEventType.STORAGE_ERROR in event_types

    def test_update_keeps_transaction_when_summary_write_fails(
        self, transaction_storage, audit_logger, audit_storage, user_id
    ):
        """Test a failed delta adjustment is raised and audited, and the update stands."""
        summaries = SwitchableSummaryStorage()
        aggregator = SummaryAggregator(transaction_storage, summaries, audit_logger)
        lifecycle = TransactionLifecycle(transaction_storage, aggregator, audit_logger=audit_logger)

        created = run(lifecycle.create(user_id, make_input(amount="100.00")))
        summaries.fail_writes = True

        with pytest.raises(StorageError):
            run(lifecycle.update(user_id, created.id, make_input(amount="40.00", type="income")))

        stored = run(transaction_storage.get_transaction(created.id))
        assert stored.amount == Decimal("40.00")
        assert stored.type == TransactionType.INCOME

        # The summary still reflects the pre-update state
        summary = run(summaries.get_summary(user_id))
        assert summary.total_expenses == Decimal("100.00")
        assert summary.total_income == 0

        errors = [
            e for e in run(audit_storage.get_recent_events())
            if e.event_type == AuditEventType.STORAGE_ERROR
        ]
        assert len(errors) == 1
        assert errors[0].details["operation"] == "adjust_summary"
        assert errors[0].user_id == user_id

    def test_lock_is_released_after_failure(self, transaction_storage, user_id):
        """Test a failed operation does not block the next one for the same user."""
        failing = TransactionLifecycle(
            transaction_storage,
            SummaryAggregator(transaction_storage, FailingSummaryStorage()),
        )

        async def fail_then_delete():
            with pytest.raises(StorageError):
                await failing.create(user_id, make_input())
            # delete takes the same lock
            with pytest.raises(TransactionNotFoundError):
                await asyncio.wait_for(failing.delete(user_id, uuid4()), timeout=1)

        run(fail_then_delete())
        assert len(run(transaction_storage.list_transactions(user_id))) == 1


class TestAppComponents:

    def test_memory_backend(self, monkeypatch):
        """Test the factory wires in-memory storage by default."""
        from finance_manager.config import Settings

        monkeypatch.setenv("AUTH_SECRET_KEY", "factory-secret-key-0123")
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        components = create_app_components(Settings())

        user_id = uuid4()
        run(components.lifecycle.create(user_id, make_input(amount="5.00", type="income")))
        summary = run(components.lifecycle.get_summary(user_id))
        assert summary.total_income == Decimal("5.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
