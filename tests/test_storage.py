"""
Tests for the storage backends.

The Google Sheets storages run against an in-process fake worksheet, so
no network access or credentials are needed.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from finance_manager.models.audit import AuditEventBuilder, AuditEventType
from finance_manager.models.transaction import AccountSummary, Transaction, User
from finance_manager.services.storage import (
    DuplicateError,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
    NotFoundError,
    StorageError,
)
from finance_manager.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    SUMMARY_COLUMNS,
    TRANSACTION_COLUMNS,
    USER_COLUMNS,
    GoogleSheetsAuditStorage,
    GoogleSheetsSummaryStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
)
from tests.helpers import run


def make_transaction(user_id, amount="10.00", type="expense", date=datetime(2024, 12, 1)):
    return Transaction(
        user_id=user_id,
        amount=Decimal(amount),
        description="Test",
        category="general",
        date=date,
        type=type,
    )


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storages."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name, values, value_input_option=None):
        idx = int(range_name[1:])
        self.rows[idx - 1] = [str(v) for v in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:

    def __init__(self):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.summaries = FakeWorksheet(SUMMARY_COLUMNS)
        self.users = FakeWorksheet(USER_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_summaries_sheet(self):
        return self.summaries

    def get_users_sheet(self):
        return self.users

    def get_audit_sheet(self):
        return self.audit


class BrokenSheetsClient:
    """Every worksheet lookup fails, like a dropped connection."""

    def get_transactions_sheet(self):
        raise RuntimeError("connection reset")

    get_summaries_sheet = get_transactions_sheet
    get_users_sheet = get_transactions_sheet
    get_audit_sheet = get_transactions_sheet


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


class TestInMemoryTransactionStorage:
    """Tests for the in-memory transaction store."""

    def test_returned_copies_are_isolated(self, user_id):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))

        fetched = run(storage.get_transaction(transaction.id))
        fetched.amount = Decimal("999")

        assert run(storage.get_transaction(transaction.id)).amount == Decimal("10.00")

    def test_duplicate_save(self, user_id):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))
        with pytest.raises(DuplicateError):
            run(storage.save_transaction(transaction))

    def test_get_scoped_to_owner(self, user_id, other_user_id):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))

        assert run(storage.get_transaction(transaction.id, user_id=other_user_id)) is None
        assert run(storage.get_transaction(transaction.id, user_id=user_id)) is not None

    def test_update_unknown(self, user_id):
        storage = InMemoryTransactionStorage()
        with pytest.raises(NotFoundError):
            run(storage.update_transaction(make_transaction(user_id)))

    def test_update_cannot_change_owner(self, user_id, other_user_id):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))

        with pytest.raises(StorageError):
            run(storage.update_transaction(transaction.model_copy(update={"user_id": other_user_id})))

    def test_list_orders(self, user_id):
        storage = InMemoryTransactionStorage()
        later = make_transaction(user_id, "1.00", date=datetime(2024, 6, 1))
        earlier = make_transaction(user_id, "2.00", date=datetime(2024, 1, 1))
        run(storage.save_transaction(later))
        run(storage.save_transaction(earlier))

        assert [t.id for t in run(storage.list_transactions(user_id))] == [later.id, earlier.id]
        assert [t.id for t in run(storage.list_transactions(user_id, newest_first=False))] == [earlier.id, later.id]
        assert [t.id for t in run(storage.list_transactions(user_id, newest_first=None))] == [later.id, earlier.id]


class TestInMemoryUserStorage:

    def test_email_lookup_is_case_insensitive(self):
        storage = InMemoryUserStorage()
        user = User(email="Erin@Example.com", password_hash="hash")
        run(storage.save_user(user))

        assert run(storage.get_user_by_email("ERIN@example.com")).id == user.id

    def test_duplicate_email(self):
        storage = InMemoryUserStorage()
        run(storage.save_user(User(email="frank@example.com", password_hash="a")))
        with pytest.raises(DuplicateError):
            run(storage.save_user(User(email="frank@example.com", password_hash="b")))


class TestGoogleSheetsTransactionStorage:
    """Tests for the sheet-backed transaction store."""

    def test_save_and_get(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        transaction = make_transaction(user_id, "42.50")

        run(storage.save_transaction(transaction))
        fetched = run(storage.get_transaction(transaction.id))

        assert fetched.id == transaction.id
        assert fetched.amount == Decimal("42.50")
        assert fetched.date == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert len(sheets_client.transactions.rows) == 2  # header + 1

    def test_three_decimal_amount_reads_back(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        transaction = make_transaction(user_id, "10.555")
        run(storage.save_transaction(transaction))

        assert run(storage.list_transactions(user_id))[0].amount == Decimal("10.555")

    def test_duplicate(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))
        with pytest.raises(DuplicateError):
            run(storage.save_transaction(transaction))

    def test_update_in_place(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        first = make_transaction(user_id, "1.00")
        second = make_transaction(user_id, "2.00")
        run(storage.save_transaction(first))
        run(storage.save_transaction(second))

        run(storage.update_transaction(first.model_copy(update={"amount": Decimal("5.00")})))

        assert sheets_client.transactions.rows[1][2] == "5.00"
        assert sheets_client.transactions.rows[2][2] == "2.00"

    def test_update_unknown(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        with pytest.raises(NotFoundError):
            run(storage.update_transaction(make_transaction(user_id)))

    def test_delete_scoped_to_owner(self, sheets_client, user_id, other_user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        transaction = make_transaction(user_id)
        run(storage.save_transaction(transaction))

        assert run(storage.delete_transaction(transaction.id, other_user_id)) is None
        assert len(sheets_client.transactions.rows) == 2

        deleted = run(storage.delete_transaction(transaction.id, user_id))
        assert deleted.id == transaction.id
        assert len(sheets_client.transactions.rows) == 1

    def test_list_filters_by_user(self, sheets_client, user_id, other_user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        run(storage.save_transaction(make_transaction(user_id)))
        run(storage.save_transaction(make_transaction(other_user_id)))

        assert len(run(storage.list_transactions(user_id))) == 1

    def test_malformed_row_fails_loudly(self, sheets_client, user_id):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        sheets_client.transactions.rows.append(
            [str(uuid4()), str(user_id), "abc", "x", "y", "2024-12-01T00:00:00", "expense"]
        )
        with pytest.raises(StorageError, match="Malformed transaction row"):
            run(storage.list_transactions(user_id))

    def test_connection_failure_is_storage_error(self, user_id):
        storage = GoogleSheetsTransactionStorage(BrokenSheetsClient())
        with pytest.raises(StorageError):
            run(storage.list_transactions(user_id))


class TestGoogleSheetsSummaryStorage:

    def test_upsert(self, sheets_client, user_id):
        """Test the first save appends and later saves overwrite the row."""
        storage = GoogleSheetsSummaryStorage(sheets_client)
        run(storage.save_summary(AccountSummary.empty(user_id)))

        summary = AccountSummary(
            user_id=user_id,
            total_income=Decimal("1000.00"),
            total_expenses=Decimal("120.00"),
            balance=Decimal("880.00"),
        )
        run(storage.save_summary(summary))

        assert len(sheets_client.summaries.rows) == 2
        fetched = run(storage.get_summary(user_id))
        assert fetched.balance == Decimal("880.00")

    def test_missing(self, sheets_client, user_id):
        storage = GoogleSheetsSummaryStorage(sheets_client)
        assert run(storage.get_summary(user_id)) is None

    def test_failure_is_storage_error(self, user_id):
        storage = GoogleSheetsSummaryStorage(BrokenSheetsClient())
        with pytest.raises(StorageError):
            run(storage.save_summary(AccountSummary.empty(user_id)))


class TestGoogleSheetsUserStorage:

    def test_save_and_lookup(self, sheets_client):
        storage = GoogleSheetsUserStorage(sheets_client)
        user = User(email="gina@example.com", password_hash="hash")
        run(storage.save_user(user))

        assert run(storage.get_user_by_email("Gina@Example.com")).id == user.id
        assert run(storage.get_user_by_id(user.id)).email == "gina@example.com"

    def test_duplicate_email(self, sheets_client):
        storage = GoogleSheetsUserStorage(sheets_client)
        run(storage.save_user(User(email="hal@example.com", password_hash="a")))
        with pytest.raises(DuplicateError):
            run(storage.save_user(User(email="hal@example.com", password_hash="b")))


class TestGoogleSheetsAuditStorage:

    def test_append_and_read_back(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        transaction_id = uuid4()
        event = AuditEventBuilder.transaction_deleted(transaction_id, uuid4())

        run(storage.append_event(event))

        events = run(storage.get_events_by_entity("transaction", transaction_id))
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.TRANSACTION_DELETED
        assert events[0].is_user_action is True

    def test_malformed_rows_are_skipped(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        sheets_client.audit.rows.append(["not-a-uuid", "yesterday"])
        run(storage.append_event(AuditEventBuilder.storage_error("save_summary", "boom")))

        events = run(storage.get_recent_events())
        assert len(events) == 1
        assert events[0].error_message == "boom"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
