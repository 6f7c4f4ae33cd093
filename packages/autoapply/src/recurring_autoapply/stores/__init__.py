"""Store contracts and in-memory implementations."""

from recurring_autoapply.stores.base import (
    AccountStore,
    RecurringStore,
    ScheduleUpdate,
    TransactionStore,
)
from recurring_autoapply.stores.memory import (
    InMemoryAccountStore,
    InMemoryRecurringStore,
    InMemoryTransactionStore,
)

__all__ = [
    "AccountStore",
    "RecurringStore",
    "TransactionStore",
    "ScheduleUpdate",
    "InMemoryAccountStore",
    "InMemoryRecurringStore",
    "InMemoryTransactionStore",
]
