"""
Core Data Models for Finance Manager

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is held as Decimal everywhere in Python code and only
turned into a float at the JSON boundary. Summing floats drifts; summing
Decimals does not.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


ZERO = Decimal("0")

# Decimal in Python, number in JSON responses
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so mixed inputs stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Which side of the summary a transaction counts towards."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense record owned by one user.

    CRITICAL: user_id is set once at creation and never replaced.
    Updates go through apply_input(), which leaves id and user_id alone.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: UUID = Field(
        ...,
        description="Owner of this transaction"
    )

    amount: Annotated[
        Money,
        Field(gt=0, description="Transaction amount (positive)")
    ]
    description: str = Field(
        ...,
        min_length=1,
        description="What the money was for"
    )
    category: str = Field(
        ...,
        min_length=1,
        description="Free-text category label"
    )
    date: datetime = Field(
        ...,
        description="When the transaction happened"
    )
    type: TransactionType = Field(
        ...,
        description="income or expense"
    )

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    def apply_input(self, data: "TransactionInput") -> None:
        """Overwrite every mutable field from a validated input."""
        self.amount = data.amount
        self.description = data.description.strip()
        self.category = data.category.strip()
        self.date = _as_utc(data.date)
        self.type = TransactionType(data.type)


class TransactionInput(BaseModel):
    """
    Request payload for creating or updating a transaction.

    All fields are optional at the schema level. Missing or empty values
    are reported by TransactionValidator as validation issues, so the caller
    gets one consistent "All fields are required." style error.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = None
    description: Optional[str] = None
    category: Optional[str] = None
    date: Optional[datetime] = None
    type: Optional[str] = None

    @field_validator('type')
    @classmethod
    def lowercase_type(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


# =============================================================================
# ACCOUNT SUMMARY
# =============================================================================

class AccountSummary(BaseModel):
    """
    Per-user materialized view over that user's transactions.

    balance is persisted alongside the totals, but it is always
    total_income - total_expenses. Only the aggregator mutates it.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    user_id: UUID = Field(
        ...,
        description="Owner (one summary per user)"
    )
    total_income: Money = Field(default=ZERO)
    total_expenses: Money = Field(default=ZERO)
    balance: Money = Field(default=ZERO)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_balance(self) -> 'AccountSummary':
        """A stored balance must match the stored totals."""
        if self.balance != self.total_income - self.total_expenses:
            raise ValueError("Balance must equal total income minus total expenses")
        return self

    @classmethod
    def empty(cls, user_id: UUID) -> 'AccountSummary':
        return cls(user_id=user_id)

    def recalculate_balance(self) -> None:
        self.balance = self.total_income - self.total_expenses
        self.updated_at = utc_now()


# =============================================================================
# BUDGET SUGGESTION
# =============================================================================

class BudgetSuggestion(BaseModel):
    """
    Output of the budget advisor.

    When the user has no transactions only `suggestion` is filled in.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    total_income: Optional[Money] = None
    total_expenses: Optional[Money] = None
    remaining_balance: Optional[str] = Field(
        default=None,
        description="Balance formatted to two decimal places"
    )
    suggested_savings: Optional[str] = Field(
        default=None,
        description="Suggested savings formatted to two decimal places"
    )
    highest_spending_category: Optional[str] = None
    suggestion: str
    investment_advice: Optional[str] = None


# =============================================================================
# USERS
# =============================================================================

class User(BaseModel):
    """A registered account. Only the password hash is ever stored."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(
        ...,
        min_length=3,
        max_length=254,
        pattern=r"^[^@\s]+@[^@\s]+$",
    )
    password_hash: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Result of validating a transaction payload."""

    validated_at: datetime = Field(default_factory=utc_now)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
