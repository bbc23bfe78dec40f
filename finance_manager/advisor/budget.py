"""
Budget Advisor

DESIGN DECISION: Advice is DETERMINISTIC.
It is derived only from the stored AccountSummary and the user's
transactions. Nothing is written back to storage.

Steps:
1. Find the expense category with the largest total
2. Suggest saving 20% of the current balance
3. Pick an investment tier from the suggested savings
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from finance_manager.audit import AuditLogger
from finance_manager.models.transaction import (
    ZERO,
    BudgetSuggestion,
    Transaction,
    TransactionType,
)
from finance_manager.services.storage import (
    NotFoundError,
    SummaryStorageInterface,
    TransactionStorageInterface,
)


SAVINGS_RATE = Decimal("0.20")
SAVINGS_REMINDER_THRESHOLD = Decimal("50")

NO_TRANSACTIONS_MESSAGE = "No transactions found to generate suggestions."
BALANCED_SPENDING_MESSAGE = "Your spending is well-balanced. Keep it up!"
OVERSPENDING_WARNING = " Your expenses exceed your income. Reduce unnecessary spending."
NO_CATEGORY = "None"

# (minimum suggested savings, advice), highest first
INVESTMENT_TIERS: list[tuple[Decimal, str]] = [
    (Decimal("500"), "Consider diversified investments: stocks, ETFs, and long-term mutual funds."),
    (Decimal("200"), "Try mutual funds or low-risk bonds for steady growth."),
    (Decimal("100"), "Consider a high-yield savings account or small recurring deposits."),
]
EMERGENCY_FUND_ADVICE = "Start by building an emergency fund before investing."


class SummaryNotFoundError(NotFoundError):
    """The user has no account summary yet."""
    pass


def format_money(value: Decimal) -> str:
    """Two decimal places, halves rounded away from zero."""
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def category_totals(transactions: list[Transaction]) -> dict[str, Decimal]:
    """
    Sum expense amounts per category.

    The dict keeps categories in the order they were first seen.
    """
    totals: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.type != TransactionType.EXPENSE:
            continue
        totals[transaction.category] = totals.get(transaction.category, ZERO) + transaction.amount
    return totals


def highest_spending_category(
    totals: dict[str, Decimal],
) -> Optional[tuple[str, Decimal]]:
    """
    The category with the strictly largest total.

    Ties go to the category seen first.
    """
    best: Optional[tuple[str, Decimal]] = None
    for category, total in totals.items():
        if best is None or total > best[1]:
            best = (category, total)
    return best


def investment_advice(suggested_savings: Decimal) -> str:
    for minimum, advice in INVESTMENT_TIERS:
        if suggested_savings >= minimum:
            return advice
    return EMERGENCY_FUND_ADVICE


def build_suggestion(
    total_income: Decimal,
    total_expenses: Decimal,
    balance: Decimal,
    transactions: list[Transaction],
) -> BudgetSuggestion:
    """Pure derivation of a BudgetSuggestion from totals and transactions."""
    if not transactions:
        return BudgetSuggestion(suggestion=NO_TRANSACTIONS_MESSAGE)

    top = highest_spending_category(category_totals(transactions))
    if top:
        category, total = top
        suggestion = (
            f"You are spending the most on {category} (${format_money(total)}). "
            "Consider reducing expenses in this category."
        )
    else:
        suggestion = BALANCED_SPENDING_MESSAGE

    suggested_savings = balance * SAVINGS_RATE

    if balance < 0:
        suggestion += OVERSPENDING_WARNING
    elif suggested_savings > SAVINGS_REMINDER_THRESHOLD:
        suggestion += f" Try saving at least ${format_money(suggested_savings)} this month."

    return BudgetSuggestion(
        total_income=total_income,
        total_expenses=total_expenses,
        remaining_balance=format_money(balance),
        suggested_savings=format_money(suggested_savings),
        highest_spending_category=top[0] if top else NO_CATEGORY,
        suggestion=suggestion,
        investment_advice=investment_advice(suggested_savings),
    )


class BudgetAdvisor:
    """
    Reads a user's summary and transactions and derives spending advice.

    GUARANTEES:
    - Never creates a summary; a missing one is reported as not found
    - Never writes to storage
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        summary_storage: SummaryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._summaries = summary_storage
        self._audit_logger = audit_logger

    async def suggest(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetSuggestion:
        summary = await self._summaries.get_summary(user_id)
        if summary is None:
            raise SummaryNotFoundError("No account summary found.")

        transactions = await self._transactions.list_transactions(
            user_id, newest_first=None
        )

        result = build_suggestion(
            total_income=summary.total_income,
            total_expenses=summary.total_expenses,
            balance=summary.balance,
            transactions=transactions,
        )

        if self._audit_logger:
            await self._audit_logger.log_suggestion_generated(
                user_id=user_id,
                highest_spending_category=result.highest_spending_category,
                suggested_savings=result.suggested_savings,
                correlation_id=correlation_id,
            )
        return result
