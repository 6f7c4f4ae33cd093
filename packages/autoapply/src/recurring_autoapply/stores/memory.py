"""In-memory, tenant-isolated store implementations.

Used by tests and by hosts that keep the ledger in process. Rows are
copied on the way in and out so callers never share mutable state with
the store.
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog

from recurring_autoapply.errors import StoreError
from recurring_autoapply.models import Account, Recurring, Transaction
from recurring_autoapply.schedule import is_due
from recurring_autoapply.stores.base import ScheduleUpdate

logger = structlog.get_logger(__name__)

_ENGINE_OWNED_FIELDS = frozenset({"failed_attempts", "next_occurrence_date"})


class InMemoryRecurringStore:
    """Recurring definitions keyed by id."""

    def __init__(self, recurrings: list[Recurring] | None = None):
        self._rows: dict[str, Recurring] = {}
        self._lock = asyncio.Lock()
        for recurring in recurrings or []:
            self.add(recurring)

    def add(self, recurring: Recurring) -> None:
        self._rows[recurring.id] = replace(recurring)

    def get(self, id: str) -> Recurring | None:
        """Synchronous snapshot lookup, ignoring tenant."""
        row = self._rows.get(id)
        return replace(row) if row else None

    def _require(self, id: str) -> Recurring:
        row = self._rows.get(id)
        if row is None:
            raise StoreError("recurring_lookup", f"unknown recurring {id}")
        return row

    async def find_due(self, tenant_id: str, as_of: datetime) -> list[Recurring]:
        async with self._lock:
            due = [
                replace(row)
                for row in self._rows.values()
                if row.tenant_id == tenant_id
                and row.is_active
                and not row.is_deleted
                and is_due(row.next_occurrence_date, as_of)
            ]
        due.sort(key=lambda r: (r.next_occurrence_date, r.id))
        return due

    async def advance_schedule(self, updates: list[ScheduleUpdate]) -> None:
        async with self._lock:
            for update in updates:
                self._require(update.id).next_occurrence_date = update.next_date

    async def increment_failed_attempts(self, ids: list[str]) -> None:
        async with self._lock:
            for id in ids:
                self._require(id).failed_attempts += 1

    async def reset_failed_attempts(self, ids: list[str]) -> None:
        async with self._lock:
            for id in ids:
                self._require(id).failed_attempts = 0

    async def set_auto_apply_enabled(
        self, id: str, enabled: bool, tenant_id: str | None = None
    ) -> None:
        async with self._lock:
            row = self._require(id)
            if tenant_id is not None and row.tenant_id != tenant_id:
                raise StoreError("set_auto_apply_enabled", f"unknown recurring {id}")
            row.auto_apply_enabled = enabled

    async def update(
        self, id: str, changes: dict[str, Any], tenant_id: str
    ) -> Recurring | None:
        blocked = _ENGINE_OWNED_FIELDS & set(changes)
        if blocked:
            raise StoreError("recurring_update", f"use dedicated calls for {sorted(blocked)}")
        async with self._lock:
            row = self._rows.get(id)
            if row is None or row.tenant_id != tenant_id or row.is_deleted:
                return None
            updated = replace(row, **changes)
            self._rows[id] = updated
            return replace(updated)

    async def find_by_id(self, id: str, tenant_id: str) -> Recurring | None:
        row = self._rows.get(id)
        if row is None or row.tenant_id != tenant_id or row.is_deleted:
            return None
        return replace(row)


class InMemoryTransactionStore:
    """Append-only transaction rows."""

    def __init__(self) -> None:
        self._rows: list[Transaction] = []
        self._lock = asyncio.Lock()

    @property
    def transactions(self) -> list[Transaction]:
        return [replace(t) for t in self._rows]

    def for_tenant(self, tenant_id: str) -> list[Transaction]:
        return [replace(t) for t in self._rows if t.tenant_id == tenant_id]

    async def create(self, data: Transaction, tenant_id: str) -> Transaction:
        row = replace(data, tenant_id=tenant_id, created_at=data.created_at or datetime.now(UTC))
        async with self._lock:
            self._rows.append(row)
        logger.debug("transaction_stored", transaction_id=row.id, account_id=row.account_id)
        return replace(row)

    async def create_many(self, data: list[Transaction]) -> list[Transaction]:
        rows = [replace(t, created_at=t.created_at or datetime.now(UTC)) for t in data]
        async with self._lock:
            self._rows.extend(rows)
        return [replace(r) for r in rows]


class InMemoryAccountStore:
    """Account balances keyed by id."""

    def __init__(self, accounts: list[Account] | None = None):
        self._rows: dict[str, Account] = {a.id: replace(a) for a in accounts or []}
        self._lock = asyncio.Lock()

    def add(self, account: Account) -> None:
        self._rows[account.id] = replace(account)

    def balance_of(self, account_id: str) -> Decimal:
        return self._rows[account_id].balance

    async def adjust_balance(self, account_id: str, delta: Decimal, tenant_id: str) -> Decimal:
        async with self._lock:
            account = self._rows.get(account_id)
            if account is None or account.tenant_id != tenant_id or account.is_deleted:
                raise StoreError("adjust_balance", f"unknown account {account_id}")
            account.balance += delta
            return account.balance

    async def find_by_id(self, id: str, tenant_id: str) -> Account | None:
        account = self._rows.get(id)
        if account is None or account.tenant_id != tenant_id or account.is_deleted:
            return None
        return replace(account)
