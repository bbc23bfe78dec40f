"""
Audit Logger

DESIGN DECISION: Every lifecycle operation and every failure is logged.
This provides:
1. Complete traceability of how each summary changed
2. Visibility of partial failures (transaction saved, summary not)
3. A history of account activity

The audit logger:
- Always writes a structured local log line
- Gracefully handles storage failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_manager.models.audit import AuditEvent, AuditEventBuilder
from finance_manager.models.transaction import AccountSummary, Transaction
from finance_manager.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Structured logger for modules that log outside the audit trail."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_manager.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction.id,
            user_id=transaction.user_id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        before: Transaction,
        after: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            transaction_id=after.id,
            user_id=after.user_id,
            before=before.model_dump(mode="json", exclude={"id", "user_id"}),
            after=after.model_dump(mode="json", exclude={"id", "user_id"}),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_not_found(
        self,
        transaction_id: UUID,
        user_id: UUID,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_not_found(
            transaction_id=transaction_id,
            user_id=user_id,
            operation=operation,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        user_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.validation_failed(
            user_id=user_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_summary_created(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.summary_created(user_id, correlation_id))

    async def log_summary_recomputed(
        self,
        summary: AccountSummary,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.summary_recomputed(
            user_id=summary.user_id,
            total_income=str(summary.total_income),
            total_expenses=str(summary.total_expenses),
            balance=str(summary.balance),
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_summary_adjusted(
        self,
        summary: AccountSummary,
        income_delta: Decimal,
        expense_delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.summary_adjusted(
            user_id=summary.user_id,
            income_delta=str(income_delta),
            expense_delta=str(expense_delta),
            balance=str(summary.balance),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_suggestion_generated(
        self,
        user_id: UUID,
        highest_spending_category: Optional[str],
        suggested_savings: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.suggestion_generated(
            user_id=user_id,
            highest_spending_category=highest_spending_category,
            suggested_savings=suggested_savings,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_user_signed_up(self, user_id: UUID, email: str) -> None:
        await self.log(AuditEventBuilder.user_signed_up(user_id, email))

    async def log_user_logged_in(self, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.user_logged_in(user_id))

    async def log_login_failed(self, email: str) -> None:
        await self.log(AuditEventBuilder.login_failed(email))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an unexpected error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new request and pass it through
    all subsequent operations.
    """
    return uuid4()
