"""
Transaction Payload Validation

DESIGN DECISION: Validation happens before anything touches storage.
A payload that fails here never reaches the transaction store, so the
summary is never recomputed for a rejected request.

Checks:
- Every field is present and non-empty: amount, description, category,
  date, type
- Amount is a finite number greater than zero (any precision)
- Type is income or expense

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can correct the request.
"""

from finance_manager.models.transaction import (
    TransactionInput,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


REQUIRED_FIELDS = ("amount", "description", "category", "date", "type")
VALID_TYPES = {t.value for t in TransactionType}


class TransactionValidationError(ValueError):
    """Raised when a transaction payload is missing fields or has bad values."""

    def __init__(self, issues: list[ValidationIssue], message: str = "All fields are required."):
        self.issues = issues
        super().__init__(message)

    def issues_as_dicts(self) -> list[dict]:
        return [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in self.issues
        ]


class TransactionValidator:
    """Validates create/update payloads for transactions."""

    def _check_required(self, payload: TransactionInput) -> list[ValidationIssue]:
        issues = []
        for field in REQUIRED_FIELDS:
            value = getattr(payload, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field} is required",
                ))
        return issues

    def _check_values(self, payload: TransactionInput) -> list[ValidationIssue]:
        issues = []

        if payload.amount is not None:
            if not payload.amount.is_finite() or payload.amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                ))

        if payload.type and payload.type not in VALID_TYPES:
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Type must be one of: {', '.join(sorted(VALID_TYPES))}",
            ))

        return issues

    def validate(self, payload: TransactionInput) -> ValidationResult:
        """
        Validate a transaction payload.

        Value checks only run on fields that are present, so a missing
        amount is reported once as missing rather than also as invalid.
        """
        issues = self._check_required(payload) + self._check_values(payload)
        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def validate_or_raise(self, payload: TransactionInput) -> None:
        result = self.validate(payload)
        if result.is_valid:
            return

        if any(issue.issue_type == "missing" for issue in result.issues):
            raise TransactionValidationError(result.issues)
        raise TransactionValidationError(result.issues, message=result.issues[0].message)
