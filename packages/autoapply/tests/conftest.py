"""Pytest configuration and fixtures."""

import os
from datetime import UTC, date, datetime
from decimal import Decimal
from itertools import count
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("AUTO_APPLY_MAX_BATCH_SIZE", "50")
os.environ.setdefault("STARTUP_DELAY_MS", "0")
os.environ.setdefault("STARTUP_RETRY_DELAY_MS", "0")

from recurring_autoapply.engine import AutoApplyEngine  # noqa: E402
from recurring_autoapply.models import (  # noqa: E402
    Account,
    Recurring,
    RecurringType,
    Transaction,
    TransactionType,
)
from recurring_autoapply.results import AutoApplySettings  # noqa: E402
from recurring_autoapply.stores import (  # noqa: E402
    InMemoryAccountStore,
    InMemoryRecurringStore,
    InMemoryTransactionStore,
)

TENANT_ID = "tenant-1"
USER_ID = "user-1"
FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


@pytest.fixture
def fixed_clock():
    """Clock pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_recurring():
    """Factory for due recurring definitions with sensible defaults."""
    ids = count(1)

    def _make(**overrides) -> Recurring:
        values = dict(
            id=f"rec-{next(ids)}",
            name="Rent",
            source_account_id="acc-checking",
            next_occurrence_date=date(2024, 3, 1),
            recurring_type=RecurringType.STANDARD,
            type=TransactionType.INCOME,
            amount=Decimal("100"),
            auto_apply_enabled=True,
            tenant_id=TENANT_ID,
        )
        values.update(overrides)
        return Recurring(**values)

    return _make


@pytest.fixture
def mock_recurring_store():
    """AsyncMock recurring store with every contract method."""
    store = AsyncMock()
    store.find_due = AsyncMock(return_value=[])
    store.advance_schedule = AsyncMock(return_value=None)
    store.increment_failed_attempts = AsyncMock(return_value=None)
    store.reset_failed_attempts = AsyncMock(return_value=None)
    store.set_auto_apply_enabled = AsyncMock(return_value=None)
    store.update = AsyncMock(return_value=None)
    store.find_by_id = AsyncMock(return_value=None)
    return store


@pytest.fixture
def mock_transaction_store():
    """AsyncMock transaction store echoing back what it is given."""
    store = AsyncMock()

    async def _create(data: Transaction, tenant_id: str) -> Transaction:
        return data

    async def _create_many(data: list[Transaction]) -> list[Transaction]:
        return list(data)

    store.create = AsyncMock(side_effect=_create)
    store.create_many = AsyncMock(side_effect=_create_many)
    return store


@pytest.fixture
def mock_account_store():
    store = AsyncMock()
    store.adjust_balance = AsyncMock(return_value=Decimal("0"))
    store.find_by_id = AsyncMock(return_value=None)
    return store


@pytest.fixture
def engine(mock_recurring_store, mock_transaction_store, mock_account_store, fixed_clock):
    """Engine over mock stores with small, explicit settings."""
    return AutoApplyEngine(
        mock_recurring_store,
        mock_transaction_store,
        mock_account_store,
        settings=AutoApplySettings(max_batch_size=10, timeout_ms=1000),
        clock=fixed_clock,
    )


@pytest.fixture
def memory_accounts():
    return InMemoryAccountStore(
        [
            Account(id="acc-checking", name="Checking", balance=Decimal("5000"), tenant_id=TENANT_ID),
            Account(id="acc-savings", name="Savings", balance=Decimal("1000"), tenant_id=TENANT_ID),
            Account(id="acc-card", name="Visa", balance=Decimal("-250.75"), tenant_id=TENANT_ID),
        ]
    )


@pytest.fixture
def memory_transactions():
    return InMemoryTransactionStore()


@pytest.fixture
def memory_recurrings():
    return InMemoryRecurringStore()


@pytest.fixture
def memory_engine(memory_recurrings, memory_transactions, memory_accounts, fixed_clock):
    """Engine over the in-memory stores."""
    return AutoApplyEngine(
        memory_recurrings,
        memory_transactions,
        memory_accounts,
        settings=AutoApplySettings(max_batch_size=2, timeout_ms=1000),
        clock=fixed_clock,
    )
