"""Ledger entities used by the auto-apply engine.

Recurring definitions, accounts and transactions as the engine sees them.
Persistence and the user-facing CRUD that owns most recurring fields live
outside this package; only scheduling fields are written by the engine.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

DEFAULT_MAX_FAILED_ATTEMPTS = 3


class RecurringType(str, Enum):
    """Shapes a recurring definition can materialize into."""

    STANDARD = "Standard"
    TRANSFER = "Transfer"
    CREDIT_CARD_PAYMENT = "CreditCardPayment"


class TransactionType(str, Enum):
    """Ledger transaction types."""

    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


@dataclass
class Recurring:
    """A template for a transaction that repeats every ``interval_months``."""

    id: str
    name: str
    source_account_id: str
    next_occurrence_date: date
    recurring_type: RecurringType = RecurringType.STANDARD
    type: TransactionType = TransactionType.EXPENSE
    amount: Decimal | None = None
    transfer_account_id: str | None = None
    # Liability account reference for credit card payments
    category_id: str | None = None
    interval_months: int = 1
    is_active: bool = True
    is_deleted: bool = False
    auto_apply_enabled: bool = False
    is_amount_flexible: bool = False
    failed_attempts: int = 0
    max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS
    last_auto_applied_at: datetime | None = None
    description: str | None = None
    payee_name: str | None = None
    notes: str | None = None
    tenant_id: str | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None

    @property
    def is_disabled_by_failures(self) -> bool:
        return self.failed_attempts >= self.max_failed_attempts


@dataclass
class Account:
    """A ledger account. Liability accounts carry debt as a negative balance."""

    id: str
    name: str
    balance: Decimal = Decimal("0")
    tenant_id: str | None = None
    is_deleted: bool = False


@dataclass
class Transaction:
    """A concrete ledger row produced by materializing a recurring."""

    id: str
    name: str
    amount: Decimal
    date: datetime
    account_id: str
    type: TransactionType
    tenant_id: str
    category_id: str | None = None
    description: str | None = None
    payee: str | None = None
    notes: str | None = None
    transfer_id: str | None = None
    transfer_account_id: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
