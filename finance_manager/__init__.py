"""
Finance Manager - Source Package

Backend for a personal finance tracker: users record income and expense
transactions, the system keeps a per-user account summary in step with
them, and a rule-based advisor turns the totals into budgeting advice.

DESIGN PRINCIPLES:
1. The summary always equals the sum of the user's transactions
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Manager Team"
