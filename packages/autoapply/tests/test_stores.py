"""Tests for the in-memory stores."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from recurring_autoapply.errors import StoreError
from recurring_autoapply.models import Account, Recurring, Transaction, TransactionType
from recurring_autoapply.stores import (
    InMemoryAccountStore,
    InMemoryRecurringStore,
    InMemoryTransactionStore,
    ScheduleUpdate,
)

TENANT = "tenant-1"
AS_OF = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _recurring(id: str, **overrides) -> Recurring:
    values = dict(
        id=id,
        name="Gym",
        source_account_id="acc-checking",
        next_occurrence_date=date(2024, 3, 1),
        amount=Decimal("40"),
        tenant_id=TENANT,
    )
    values.update(overrides)
    return Recurring(**values)


class TestInMemoryRecurringStore:
    """Tests for due lookup and scheduling writes."""

    @pytest.mark.asyncio
    async def test_find_due_filters(self):
        store = InMemoryRecurringStore(
            [
                _recurring("rec-due"),
                _recurring("rec-today", next_occurrence_date=date(2024, 3, 15)),
                _recurring("rec-future", next_occurrence_date=date(2024, 3, 16)),
                _recurring("rec-inactive", is_active=False),
                _recurring("rec-deleted", is_deleted=True),
                _recurring("rec-other", tenant_id="tenant-2"),
            ]
        )

        due = await store.find_due(TENANT, AS_OF)

        assert [r.id for r in due] == ["rec-due", "rec-today"]

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self):
        store = InMemoryRecurringStore([_recurring("rec-1")])

        (row,) = await store.find_due(TENANT, AS_OF)
        row.failed_attempts = 99

        assert store.get("rec-1").failed_attempts == 0

    @pytest.mark.asyncio
    async def test_scheduling_writes(self):
        store = InMemoryRecurringStore([_recurring("rec-1")])

        await store.advance_schedule([ScheduleUpdate(id="rec-1", next_date=date(2024, 4, 1))])
        await store.increment_failed_attempts(["rec-1"])
        await store.increment_failed_attempts(["rec-1"])

        row = store.get("rec-1")
        assert row.next_occurrence_date == date(2024, 4, 1)
        assert row.failed_attempts == 2

        await store.reset_failed_attempts(["rec-1"])
        assert store.get("rec-1").failed_attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_id_raises(self):
        store = InMemoryRecurringStore()

        with pytest.raises(StoreError):
            await store.increment_failed_attempts(["rec-missing"])

    @pytest.mark.asyncio
    async def test_toggle_checks_tenant(self):
        store = InMemoryRecurringStore([_recurring("rec-1")])

        with pytest.raises(StoreError):
            await store.set_auto_apply_enabled("rec-1", True, "tenant-2")

        await store.set_auto_apply_enabled("rec-1", True, TENANT)
        assert store.get("rec-1").auto_apply_enabled is True

    @pytest.mark.asyncio
    async def test_update_refuses_engine_owned_fields(self):
        store = InMemoryRecurringStore([_recurring("rec-1")])

        with pytest.raises(StoreError):
            await store.update("rec-1", {"failed_attempts": 0}, TENANT)

        updated = await store.update("rec-1", {"notes": "moved gyms"}, TENANT)
        assert updated.notes == "moved gyms"
        assert await store.update("rec-1", {"notes": "x"}, "tenant-2") is None

    @pytest.mark.asyncio
    async def test_find_by_id_is_tenant_scoped(self):
        store = InMemoryRecurringStore([_recurring("rec-1")])

        assert (await store.find_by_id("rec-1", TENANT)).id == "rec-1"
        assert await store.find_by_id("rec-1", "tenant-2") is None


class TestInMemoryTransactionStore:
    """Tests for transaction rows."""

    def _transaction(self, id: str, tenant_id: str = TENANT) -> Transaction:
        return Transaction(
            id=id,
            name="Gym",
            amount=Decimal("40"),
            date=AS_OF,
            account_id="acc-checking",
            type=TransactionType.EXPENSE,
            tenant_id=tenant_id,
        )

    @pytest.mark.asyncio
    async def test_create_stamps_tenant(self):
        store = InMemoryTransactionStore()

        created = await store.create(self._transaction("txn-1", tenant_id="ignored"), TENANT)

        assert created.tenant_id == TENANT
        assert created.created_at is not None
        assert [t.id for t in store.for_tenant(TENANT)] == ["txn-1"]

    @pytest.mark.asyncio
    async def test_create_many(self):
        store = InMemoryTransactionStore()

        created = await store.create_many([self._transaction("txn-1"), self._transaction("txn-2")])

        assert [t.id for t in created] == ["txn-1", "txn-2"]
        assert len(store.transactions) == 2


class TestInMemoryAccountStore:
    """Tests for balances."""

    @pytest.mark.asyncio
    async def test_adjust_balance(self):
        store = InMemoryAccountStore(
            [Account(id="acc-1", name="Checking", balance=Decimal("10"), tenant_id=TENANT)]
        )

        balance = await store.adjust_balance("acc-1", Decimal("-2.50"), TENANT)

        assert balance == Decimal("7.50")
        assert store.balance_of("acc-1") == Decimal("7.50")

    @pytest.mark.asyncio
    async def test_adjust_unknown_or_foreign_account(self):
        store = InMemoryAccountStore(
            [Account(id="acc-1", name="Checking", tenant_id=TENANT)]
        )

        with pytest.raises(StoreError):
            await store.adjust_balance("acc-missing", Decimal("1"), TENANT)
        with pytest.raises(StoreError):
            await store.adjust_balance("acc-1", Decimal("1"), "tenant-2")

    @pytest.mark.asyncio
    async def test_find_by_id(self):
        store = InMemoryAccountStore()
        store.add(Account(id="acc-card", name="Visa", balance=Decimal("-20"), tenant_id=TENANT))

        found = await store.find_by_id("acc-card", TENANT)

        assert found.balance == Decimal("-20")
        assert await store.find_by_id("acc-card", "tenant-2") is None

