"""
Data Models Package

This package contains all Pydantic models used in the Finance Manager system.
All data flowing through the system must conform to these schemas.
"""

from finance_manager.models.transaction import (
    AccountSummary,
    BudgetSuggestion,
    Money,
    Transaction,
    TransactionInput,
    TransactionType,
    User,
    ValidationIssue,
    ValidationResult,
    utc_now,
)
from finance_manager.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "AccountSummary",
    "BudgetSuggestion",
    "Money",
    "Transaction",
    "TransactionInput",
    "TransactionType",
    "User",
    "ValidationIssue",
    "ValidationResult",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
