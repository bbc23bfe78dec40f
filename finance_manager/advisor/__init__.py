"""Budget advice package."""

from finance_manager.advisor.budget import (
    BudgetAdvisor,
    SummaryNotFoundError,
    build_suggestion,
    format_money,
)

__all__ = ["BudgetAdvisor", "SummaryNotFoundError", "build_suggestion", "format_money"]
