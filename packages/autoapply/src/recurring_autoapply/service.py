"""Auto-apply service bound to one tenant and user session.

Wraps the engine with id lookups and invalidates derived views (query
caches, list screens) after every call that can change ledger state.
"""

import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog

from recurring_autoapply.engine import AutoApplyEngine
from recurring_autoapply.errors import RecurringNotFoundError
from recurring_autoapply.models import Recurring
from recurring_autoapply.results import (
    ApplyResult,
    AutoApplyResult,
    AutoApplySettings,
    BatchApplyResult,
)
from recurring_autoapply.stores.base import RecurringStore

logger = structlog.get_logger(__name__)

DUE_TRANSACTIONS_KEY = "auto-apply-due-transactions"

# Views derived from recurring, transaction and account rows
INVALIDATED_KEYS: tuple[str, ...] = (
    "recurrings",
    "transactions",
    "transactions_view",
    "accounts",
    DUE_TRANSACTIONS_KEY,
)

Invalidator = Callable[[list[str]], Awaitable[None] | None]


class AutoApplyService:
    """Session-scoped facade over ``AutoApplyEngine``."""

    def __init__(
        self,
        engine: AutoApplyEngine,
        recurring_store: RecurringStore,
        tenant_id: str,
        user_id: str,
        invalidator: Invalidator | None = None,
    ):
        if not tenant_id:
            raise ValueError("Tenant ID not found in session")
        if not user_id:
            raise ValueError("User ID not found in session")

        self.engine = engine
        self._recurrings = recurring_store
        self.tenant_id = tenant_id
        self.user_id = user_id
        self._invalidator = invalidator
        self._logger = logger.bind(component="auto_apply_service", tenant_id=tenant_id)

    async def check_and_apply_due_transactions(self) -> AutoApplyResult:
        result = await self.engine.check_and_apply_due_transactions(self.tenant_id, self.user_id)
        await self._invalidate()
        self._logger.info(
            "auto_apply_completed",
            applied=result.applied_count,
            failed=result.failed_count,
            pending=result.pending_count,
        )
        return result

    async def get_due_recurring_transactions(
        self, as_of: datetime | None = None
    ) -> list[Recurring]:
        return await self.engine.get_due_recurring_transactions(self.tenant_id, as_of)

    async def apply_recurring_transaction(self, recurring_id: str) -> ApplyResult:
        recurring = await self._recurrings.find_by_id(recurring_id, self.tenant_id)
        if recurring is None:
            raise RecurringNotFoundError(recurring_id)

        result = await self.engine.apply_recurring_transaction(
            recurring, self.tenant_id, self.user_id
        )
        await self._invalidate()

        if result.success:
            self._logger.info("recurring_applied_manually", recurring_id=recurring_id)
        else:
            self._logger.warning(
                "manual_apply_failed", recurring_id=recurring_id, error=result.error
            )
        return result

    async def batch_apply_transactions(self, recurring_ids: list[str]) -> BatchApplyResult:
        recurrings: list[Recurring] = []
        for recurring_id in recurring_ids:
            recurring = await self._recurrings.find_by_id(recurring_id, self.tenant_id)
            if recurring is None:
                self._logger.warning("recurring_not_found", recurring_id=recurring_id)
                continue
            recurrings.append(recurring)

        result = await self.engine.batch_apply_transactions(
            recurrings, self.tenant_id, self.user_id
        )
        await self._invalidate()
        return result

    async def set_auto_apply_enabled(self, recurring_id: str, enabled: bool) -> None:
        await self.engine.set_auto_apply_enabled(recurring_id, enabled, self.tenant_id)
        await self._invalidate(["recurrings", DUE_TRANSACTIONS_KEY])

    def get_auto_apply_settings(self) -> AutoApplySettings:
        return self.engine.get_auto_apply_settings()

    def update_auto_apply_settings(self, **changes: Any) -> AutoApplySettings:
        return self.engine.update_auto_apply_settings(**changes)

    async def _invalidate(self, keys: list[str] | None = None) -> None:
        if self._invalidator is None:
            return
        try:
            outcome = self._invalidator(list(keys or INVALIDATED_KEYS))
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self._logger.warning("invalidation_failed", error=str(e))
