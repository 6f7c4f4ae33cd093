"""Store contracts the engine depends on.

Only the narrow operations the engine calls are listed here. Backends
(SQL, sync services, in-memory) implement them structurally.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from recurring_autoapply.models import Account, Recurring, Transaction


@dataclass(frozen=True)
class ScheduleUpdate:
    id: str
    next_date: date


class RecurringStore(Protocol):
    async def find_due(self, tenant_id: str, as_of: datetime) -> list[Recurring]:
        """Active, not deleted rows with ``next_occurrence_date <= as_of``."""
        ...

    async def advance_schedule(self, updates: list[ScheduleUpdate]) -> None: ...

    async def increment_failed_attempts(self, ids: list[str]) -> None: ...

    async def reset_failed_attempts(self, ids: list[str]) -> None: ...

    async def set_auto_apply_enabled(
        self, id: str, enabled: bool, tenant_id: str | None = None
    ) -> None: ...

    async def update(
        self, id: str, changes: dict[str, Any], tenant_id: str
    ) -> Recurring | None: ...

    async def find_by_id(self, id: str, tenant_id: str) -> Recurring | None: ...


class TransactionStore(Protocol):
    async def create(self, data: Transaction, tenant_id: str) -> Transaction | None: ...

    async def create_many(self, data: list[Transaction]) -> list[Transaction]: ...


class AccountStore(Protocol):
    async def adjust_balance(self, account_id: str, delta: Decimal, tenant_id: str) -> Decimal:
        """Add ``delta`` to the balance and return the new balance."""
        ...

    async def find_by_id(self, id: str, tenant_id: str) -> Account | None: ...
