"""
Shared fixtures.

Every test runs against in-memory storage. No external services are
contacted.
"""

from uuid import uuid4

import pytest

from finance_manager.advisor import BudgetAdvisor
from finance_manager.audit import AuditLogger
from finance_manager.config import AuthSettings
from finance_manager.orchestrator import AppComponents, TransactionLifecycle
from finance_manager.services.auth import AuthService
from finance_manager.services.storage import (
    InMemoryAuditStorage,
    InMemorySummaryStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
)
from finance_manager.summary import SummaryAggregator


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def summary_storage():
    return InMemorySummaryStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def aggregator(transaction_storage, summary_storage, audit_logger):
    return SummaryAggregator(transaction_storage, summary_storage, audit_logger)


@pytest.fixture
def lifecycle(transaction_storage, aggregator, audit_logger):
    return TransactionLifecycle(
        transaction_storage=transaction_storage,
        aggregator=aggregator,
        audit_logger=audit_logger,
    )


@pytest.fixture
def advisor(transaction_storage, summary_storage, audit_logger):
    return BudgetAdvisor(transaction_storage, summary_storage, audit_logger)


@pytest.fixture
def auth_settings():
    return AuthSettings(
        secret_key="test-secret-key-0123456789",
        token_expire_minutes=60,
    )


@pytest.fixture
def auth_service(auth_settings, audit_logger):
    return AuthService(InMemoryUserStorage(), settings=auth_settings, audit_logger=audit_logger)


@pytest.fixture
def components(lifecycle, advisor, auth_service, audit_logger):
    return AppComponents(
        lifecycle=lifecycle,
        advisor=advisor,
        auth=auth_service,
        audit_logger=audit_logger,
    )
