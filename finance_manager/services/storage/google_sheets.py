"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the persistent storage backend because:
1. Users can view their transactions and totals directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No multi-row transactions (a transaction write and the following
  summary write are separate calls)
- Limited query capabilities (we filter in Python)

Only establishing the connection is retried. Individual reads and writes
fail straight through as StorageError so the caller can log and report them.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_manager.config import get_settings
from finance_manager.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_manager.models.transaction import (
    AccountSummary,
    Transaction,
    TransactionType,
    User,
)
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


TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "amount",
    "description",
    "category",
    "date",
    "type",
]

SUMMARY_COLUMNS = [
    "user_id",
    "total_income",
    "total_expenses",
    "balance",
    "updated_at",
]

USER_COLUMNS = [
    "id",
    "email",
    "password_hash",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates the worksheets it needs.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_summaries_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.summaries_sheet_name, SUMMARY_COLUMNS)

    def get_users_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.users_sheet_name, USER_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _find_row_index(all_rows: list[list], key: str, column: int = 0) -> Optional[int]:
    """1-based sheet row index of the first data row whose column matches key."""
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
        if row and len(row) > column and row[column] == key:
            return idx
    return None


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            str(transaction.id),
            str(transaction.user_id),
            str(transaction.amount),
            transaction.description,
            transaction.category,
            transaction.date.isoformat(),
            transaction.type.value,
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=UUID(_safe_get(row, 0)),
            user_id=UUID(_safe_get(row, 1)),
            amount=Decimal(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            category=_safe_get(row, 4),
            date=datetime.fromisoformat(_safe_get(row, 5)),
            type=TransactionType(_safe_get(row, 6)),
        )

    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            if _find_row_index(sheet.get_all_values(), str(transaction.id)):
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            for row in sheet.get_all_values()[1:]:
                if not row or row[0] != str(transaction_id):
                    continue
                if user_id is not None and _safe_get(row, 1) != str(user_id):
                    return None
                return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = _find_row_index(all_rows, str(transaction.id))
            if idx is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            if _safe_get(all_rows[idx - 1], 1) != str(transaction.user_id):
                raise StorageError(f"Transaction owner cannot change: {transaction.id}")

            new_row = self._transaction_to_row(transaction)
            sheet.update(
                range_name=f"A{idx}",
                values=[new_row],
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: UUID,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(transaction_id) and _safe_get(row, 1) == str(user_id):
                    transaction = self._row_to_transaction(row)
                    sheet.delete_rows(idx)
                    return transaction
            return None
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        user_id: UUID,
        newest_first: Optional[bool] = True,
    ) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or _safe_get(row, 1) != str(user_id):
                continue
            # A malformed row would silently skew the summary, so fail loudly
            try:
                transactions.append(self._row_to_transaction(row))
            except Exception as e:
                raise StorageError(f"Malformed transaction row {row[0]}: {e}")

        if newest_first is None:
            return transactions
        return sorted(transactions, key=lambda t: t.date, reverse=newest_first)


class GoogleSheetsSummaryStorage(SummaryStorageInterface):
    """One row per user in the summaries sheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _summary_to_row(self, summary: AccountSummary) -> list:
        return [
            str(summary.user_id),
            str(summary.total_income),
            str(summary.total_expenses),
            str(summary.balance),
            summary.updated_at.isoformat(),
        ]

    def _row_to_summary(self, row: list) -> AccountSummary:
        return AccountSummary(
            user_id=UUID(_safe_get(row, 0)),
            total_income=Decimal(_safe_get(row, 1, "0")),
            total_expenses=Decimal(_safe_get(row, 2, "0")),
            balance=Decimal(_safe_get(row, 3, "0")),
            updated_at=datetime.fromisoformat(_safe_get(row, 4)),
        )

    async def get_summary(self, user_id: UUID) -> Optional[AccountSummary]:
        try:
            sheet = self._client.get_summaries_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(user_id):
                    return self._row_to_summary(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get account summary: {e}")

    async def save_summary(self, summary: AccountSummary) -> bool:
        try:
            sheet = self._client.get_summaries_sheet()
            row = self._summary_to_row(summary)
            idx = _find_row_index(sheet.get_all_values(), str(summary.user_id))
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save account summary: {e}")


class GoogleSheetsUserStorage(UserStorageInterface):
    """Registered users, one per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_user(self, row: list) -> User:
        return User(
            id=UUID(_safe_get(row, 0)),
            email=_safe_get(row, 1),
            password_hash=_safe_get(row, 2),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
        )

    async def save_user(self, user: User) -> bool:
        try:
            sheet = self._client.get_users_sheet()
            if _find_row_index(sheet.get_all_values(), user.email, column=1):
                raise DuplicateError(f"Email already registered: {user.email}")
            sheet.append_row(
                [str(user.id), user.email, user.password_hash, user.created_at.isoformat()],
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save user: {e}")

    async def _find(self, column: int, key: str) -> Optional[User]:
        try:
            sheet = self._client.get_users_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and len(row) > column and row[column] == key:
                    return self._row_to_user(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}")

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await self._find(1, email.strip().lower())

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        return await self._find(0, str(user_id))


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            user_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue  # Skip malformed rows
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
