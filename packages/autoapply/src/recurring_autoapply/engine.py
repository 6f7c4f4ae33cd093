"""Auto-apply engine for due recurring transactions.

The engine finds recurring definitions whose next occurrence is due,
materializes them into ledger transactions and balance adjustments,
advances their schedule, and tracks failures so a definition that keeps
failing disables itself.

Timeouts cancel the awaited work at its next suspension point. Writes
already issued before the deadline are not retracted, so a timed-out
item is "unknown, verify before retrying", never "rolled back".
"""

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

import structlog

from recurring_autoapply.errors import (
    AutoApplyError,
    AutoApplyTimeoutError,
    FieldError,
    InsufficientFundsError,
    RecurringValidationError,
    StoreError,
)
from recurring_autoapply.models import Recurring, RecurringType, Transaction, TransactionType
from recurring_autoapply.results import (
    ApplyResult,
    AutoApplyAction,
    AutoApplyResult,
    AutoApplySettings,
    BatchApplyResult,
)
from recurring_autoapply.schedule import next_occurrence, validate_interval
from recurring_autoapply.stores.base import (
    AccountStore,
    RecurringStore,
    ScheduleUpdate,
    TransactionStore,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[Recurring, str, str], Awaitable[list[Transaction]]]

_INSUFFICIENT_FUNDS = re.compile(r"insufficient funds|no balance to pay", re.IGNORECASE)


def idempotency_key(recurring: Recurring) -> str:
    """Key identifying one scheduled occurrence of a recurring."""
    return f"{recurring.id}:{recurring.next_occurrence_date.isoformat()}"


class AutoApplyEngine:
    """Materializes due recurring transactions against the stores."""

    def __init__(
        self,
        recurring_store: RecurringStore,
        transaction_store: TransactionStore,
        account_store: AccountStore,
        settings: AutoApplySettings | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._recurrings = recurring_store
        self._transactions = transaction_store
        self._accounts = account_store
        self._settings = settings or AutoApplySettings.from_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._new_id = id_factory or (lambda: str(uuid4()))

        self._handlers: dict[RecurringType, Handler] = {
            RecurringType.STANDARD: self._apply_standard,
            RecurringType.TRANSFER: self._apply_transfer,
            RecurringType.CREDIT_CARD_PAYMENT: self._apply_credit_card_payment,
        }

        self._logger = logger.bind(component="auto_apply_engine")

    # === Due checks ===

    async def check_and_apply_due_transactions(
        self, tenant_id: str, user_id: str
    ) -> AutoApplyResult:
        """Apply every due, auto-apply-enabled recurring for the tenant.

        Due rows without auto-apply are reported as pending and left alone.
        The split is computed once, before any write.
        """
        if not self._settings.global_enabled:
            self._logger.info("auto_apply_globally_disabled", tenant_id=tenant_id)
            return AutoApplyResult()

        try:
            due = await self.get_due_recurring_transactions(tenant_id)
        except Exception as e:
            self._logger.error("due_lookup_failed", tenant_id=tenant_id, error=str(e))
            raise AutoApplyError(f"Auto-apply failed: {e}") from e

        enabled = [r for r in due if r.auto_apply_enabled]
        pending = [r for r in due if not r.auto_apply_enabled]

        if enabled:
            summary = (await self.batch_apply_transactions(enabled, tenant_id, user_id)).summary
        else:
            summary = AutoApplyResult()

        summary.pending_count = len(pending)
        summary.pending_transactions = pending

        self._logger.info(
            "due_check_completed",
            tenant_id=tenant_id,
            due=len(due),
            applied=summary.applied_count,
            failed=summary.failed_count,
            pending=summary.pending_count,
        )
        return summary

    async def get_due_recurring_transactions(
        self, tenant_id: str, as_of: datetime | None = None
    ) -> list[Recurring]:
        """Return due recurring rows without changing anything."""
        return await self._recurrings.find_due(tenant_id, as_of or self._clock())

    # === Single application ===

    async def apply_recurring_transaction(
        self, recurring: Recurring, tenant_id: str, user_id: str
    ) -> ApplyResult:
        """Materialize one recurring and advance its schedule.

        Never raises: every failure comes back as ``success=False``.
        Validation failures write nothing, including the failure count.
        """
        log = self._logger.bind(recurring_id=recurring.id, recurring_type=recurring.recurring_type)

        try:
            self._validate(recurring)
        except RecurringValidationError as e:
            log.warning("recurring_invalid", errors=e.details)
            return ApplyResult(success=False, recurring=recurring, error=str(e))

        try:
            transactions = await self._handlers[recurring.recurring_type](
                recurring, tenant_id, user_id
            )
            await self._record_success(recurring, tenant_id, user_id)
        except Exception as e:
            action = await self._record_failure(recurring, tenant_id, e)
            log.warning("recurring_apply_failed", error=str(e), action=action.value)
            return ApplyResult(success=False, recurring=recurring, error=str(e), action=action)

        log.info("recurring_applied", transactions=[t.id for t in transactions])
        return ApplyResult(
            success=True,
            recurring=recurring,
            transaction_id=transactions[0].id if transactions else None,
            transactions=transactions,
        )

    # === Batch processing ===

    async def batch_apply_transactions(
        self, recurrings: list[Recurring], tenant_id: str, user_id: str
    ) -> BatchApplyResult:
        """Apply ``recurrings`` in sequential chunks of ``max_batch_size``.

        Items within a chunk run concurrently, each under ``timeout_ms``.
        Results keep submission order.
        """
        settings = self._settings
        size = settings.max_batch_size
        results: list[ApplyResult] = []

        for start in range(0, len(recurrings), size):
            chunk = recurrings[start : start + size]
            outcomes = await asyncio.gather(
                *(
                    self._apply_with_timeout(r, tenant_id, user_id, settings.timeout_ms)
                    for r in chunk
                ),
                return_exceptions=True,
            )
            for recurring, outcome in zip(chunk, outcomes):
                if isinstance(outcome, ApplyResult):
                    results.append(outcome)
                else:
                    results.append(
                        ApplyResult(
                            success=False,
                            recurring=recurring,
                            error=str(outcome) or "Batch processing failed",
                        )
                    )

        return BatchApplyResult(results=results, summary=AutoApplyResult.from_results(results))

    async def _apply_with_timeout(
        self, recurring: Recurring, tenant_id: str, user_id: str, timeout_ms: int
    ) -> ApplyResult:
        try:
            async with asyncio.timeout(timeout_ms / 1000) as deadline:
                return await self.apply_recurring_transaction(recurring, tenant_id, user_id)
        except TimeoutError:
            if not deadline.expired():
                raise
            error = AutoApplyTimeoutError(f"Applying recurring {recurring.id}", timeout_ms)
            self._logger.warning(
                "recurring_apply_timed_out", recurring_id=recurring.id, timeout_ms=timeout_ms
            )
            return ApplyResult(
                success=False,
                recurring=recurring,
                error=str(error),
                action=AutoApplyAction.RETRY_LATER,
            )

    # === Configuration ===

    async def set_auto_apply_enabled(
        self, recurring_id: str, enabled: bool, tenant_id: str
    ) -> None:
        """Toggle auto-apply. Re-enabling also clears the failure count."""
        await self._call(
            "set_auto_apply_enabled",
            self._recurrings.set_auto_apply_enabled(recurring_id, enabled, tenant_id),
        )
        if enabled:
            await self._call(
                "reset_failed_attempts", self._recurrings.reset_failed_attempts([recurring_id])
            )
        self._logger.info("auto_apply_toggled", recurring_id=recurring_id, enabled=enabled)

    def get_auto_apply_settings(self) -> AutoApplySettings:
        return replace(self._settings)

    def update_auto_apply_settings(self, **changes: Any) -> AutoApplySettings:
        self._settings = self._settings.updated(**changes)
        self._logger.info("auto_apply_settings_updated", **changes)
        return replace(self._settings)

    # === Validation ===

    def _validate(self, recurring: Recurring) -> None:
        errors: list[FieldError] = []

        if not recurring.is_active:
            errors.append(
                FieldError("is_active", "required", recurring.is_active,
                           "Recurring transaction is not active")
            )

        if not recurring.is_amount_flexible and (
            recurring.amount is None or recurring.amount <= 0
        ):
            errors.append(
                FieldError("amount", "required", recurring.amount,
                           "Amount is required for non-flexible recurring transactions")
            )

        if not recurring.source_account_id:
            errors.append(
                FieldError("source_account_id", "required", recurring.source_account_id,
                           "Source account is required")
            )

        if recurring.recurring_type == RecurringType.TRANSFER:
            if not recurring.transfer_account_id:
                errors.append(
                    FieldError("transfer_account_id", "required", recurring.transfer_account_id,
                               "Transfer account is required for transfer transactions")
                )
            elif recurring.transfer_account_id == recurring.source_account_id:
                errors.append(
                    FieldError("transfer_account_id", "mustBeDifferent",
                               recurring.transfer_account_id,
                               "Transfer account must be different from source account")
                )

        if recurring.recurring_type not in self._handlers:
            errors.append(
                FieldError("recurring_type", "enum", recurring.recurring_type,
                           f"Unsupported recurring type: {recurring.recurring_type}")
            )

        interval_ok, interval_message = validate_interval(recurring.interval_months)
        if not interval_ok:
            errors.append(
                FieldError("interval_months", "range", recurring.interval_months,
                           interval_message or "Invalid interval")
            )

        if errors:
            raise RecurringValidationError(errors)

    # === Per-type materialization ===

    def _base_transaction(
        self, recurring: Recurring, tenant_id: str, user_id: str, **overrides: Any
    ) -> Transaction:
        now = self._clock()
        values: dict[str, Any] = dict(
            id=self._new_id(),
            name=recurring.name,
            amount=recurring.amount or Decimal("0"),
            date=now,
            account_id=recurring.source_account_id,
            type=recurring.type,
            tenant_id=tenant_id,
            category_id=recurring.category_id,
            description=recurring.description,
            payee=recurring.payee_name,
            notes=recurring.notes,
            created_by=user_id,
            created_at=now,
            idempotency_key=idempotency_key(recurring),
        )
        values.update(overrides)
        return Transaction(**values)

    async def _apply_standard(
        self, recurring: Recurring, tenant_id: str, user_id: str
    ) -> list[Transaction]:
        amount = recurring.amount or Decimal("0")
        data = self._base_transaction(recurring, tenant_id, user_id)

        transaction = await self._call("create_transaction", self._transactions.create(data, tenant_id))
        if transaction is None:
            raise StoreError("create_transaction", "Failed to create transaction")

        await self._call(
            "adjust_balance",
            self._accounts.adjust_balance(recurring.source_account_id, amount, tenant_id),
        )
        return [transaction]

    async def _apply_transfer(
        self, recurring: Recurring, tenant_id: str, user_id: str
    ) -> list[Transaction]:
        destination = recurring.transfer_account_id
        if not destination:
            raise RecurringValidationError(
                [FieldError("transfer_account_id", "required", destination,
                            "Transfer account is required for transfer transactions")]
            )

        amount = recurring.amount or Decimal("0")
        primary = self._base_transaction(
            recurring, tenant_id, user_id,
            amount=amount,
            type=TransactionType.TRANSFER,
            transfer_account_id=destination,
        )
        # Mirror sorts after the primary by date
        mirror = self._base_transaction(
            recurring, tenant_id, user_id,
            amount=-amount,
            type=TransactionType.TRANSFER,
            date=primary.date + timedelta(seconds=1),
            account_id=destination,
            transfer_account_id=recurring.source_account_id,
            transfer_id=primary.id,
        )
        primary.transfer_id = mirror.id

        created = await self._call(
            "create_transactions", self._transactions.create_many([primary, mirror])
        )
        if not created or len(created) != 2:
            raise StoreError("create_transactions", "Failed to create transfer transactions")

        await self._adjust_all(
            [(recurring.source_account_id, amount), (destination, -amount)], tenant_id
        )
        return list(created)

    async def _apply_credit_card_payment(
        self, recurring: Recurring, tenant_id: str, user_id: str
    ) -> list[Transaction]:
        liability = await self._call(
            "find_account", self._accounts.find_by_id(recurring.category_id or "", tenant_id)
        )
        if liability is None:
            raise AutoApplyError(
                "Liability account not found for credit card payment",
                details={"category_id": recurring.category_id},
            )

        if liability.balance >= 0:
            raise InsufficientFundsError(
                f"Credit card {liability.name} has no balance to pay",
                details={"balance": str(liability.balance)},
            )

        payment = abs(liability.balance)
        data = self._base_transaction(
            recurring, tenant_id, user_id,
            name=f"{recurring.name} - Statement Payment",
            description="Automatic payment of credit card statement balance",
            amount=payment,
            type=TransactionType.EXPENSE,
            payee=recurring.payee_name or "Credit Card Payment",
            notes=f"Auto-payment of {payment} to {liability.name}",
        )

        transaction = await self._call("create_transaction", self._transactions.create(data, tenant_id))
        if transaction is None:
            raise StoreError("create_transaction", "Failed to create credit card payment transaction")

        await self._adjust_all(
            [(liability.id, payment), (recurring.source_account_id, payment)], tenant_id
        )
        return [transaction]

    async def _adjust_all(self, deltas: list[tuple[str, Decimal]], tenant_id: str) -> None:
        """Issue independent balance adjustments; raise the first failure once all settle."""
        outcomes = await asyncio.gather(
            *(
                self._call("adjust_balance", self._accounts.adjust_balance(account_id, delta, tenant_id))
                for account_id, delta in deltas
            ),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    # === Schedule bookkeeping ===

    async def _record_success(self, recurring: Recurring, tenant_id: str, user_id: str) -> None:
        next_date = next_occurrence(recurring.next_occurrence_date, recurring.interval_months)
        await self._call(
            "advance_schedule",
            self._recurrings.advance_schedule([ScheduleUpdate(id=recurring.id, next_date=next_date)]),
        )

        if recurring.failed_attempts > 0:
            await self._call(
                "reset_failed_attempts", self._recurrings.reset_failed_attempts([recurring.id])
            )

        now = self._clock()
        await self._call(
            "update_recurring",
            self._recurrings.update(
                recurring.id,
                {"last_auto_applied_at": now, "updated_by": user_id, "updated_at": now},
                tenant_id,
            ),
        )

    async def _record_failure(
        self, recurring: Recurring, tenant_id: str, error: Exception
    ) -> AutoApplyAction:
        """Count the failure and classify what happens next."""
        attempts = recurring.failed_attempts
        try:
            if attempts < recurring.max_failed_attempts:
                await self._call(
                    "increment_failed_attempts",
                    self._recurrings.increment_failed_attempts([recurring.id]),
                )
                attempts += 1

            if attempts >= recurring.max_failed_attempts:
                await self._call(
                    "set_auto_apply_enabled",
                    self._recurrings.set_auto_apply_enabled(recurring.id, False, tenant_id),
                )
                self._logger.warning(
                    "auto_apply_disabled",
                    recurring_id=recurring.id,
                    failed_attempts=attempts,
                    max_failed_attempts=recurring.max_failed_attempts,
                    error=str(error),
                )
                return AutoApplyAction.DISABLED_AUTO_APPLY
        except StoreError as e:
            self._logger.error(
                "failure_bookkeeping_failed", recurring_id=recurring.id, error=str(e)
            )
            return AutoApplyAction.RETRY_LATER

        if isinstance(error, InsufficientFundsError) or _INSUFFICIENT_FUNDS.search(str(error)):
            return AutoApplyAction.SKIP_AND_RESCHEDULE
        return AutoApplyAction.RETRY_LATER

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call, wrapping foreign exceptions in StoreError."""
        try:
            return await awaitable
        except AutoApplyError:
            raise
        except Exception as e:
            raise StoreError(operation, str(e)) from e
