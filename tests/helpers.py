"""Helpers shared by the test modules."""

import asyncio
from datetime import datetime
from decimal import Decimal

from finance_manager.models.transaction import TransactionInput


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_input(
    amount="100.00",
    description="Test transaction",
    category="general",
    date=datetime(2024, 12, 1, 12, 0),
    type="expense",
) -> TransactionInput:
    return TransactionInput(
        amount=Decimal(amount) if amount is not None else None,
        description=description,
        category=category,
        date=date,
        type=type,
    )
