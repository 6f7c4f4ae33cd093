"""Result and settings types shared by the engine, service and supervisor."""

from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from recurring_autoapply.config import get_settings
from recurring_autoapply.models import Recurring, Transaction


class AutoApplyAction(str, Enum):
    """How the engine classified a failed application."""

    RETRY_LATER = "RETRY_LATER"
    SKIP_AND_RESCHEDULE = "SKIP_AND_RESCHEDULE"
    DISABLED_AUTO_APPLY = "DISABLED_AUTO_APPLY"


@dataclass
class ApplyResult:
    """Outcome of materializing one recurring."""

    success: bool
    recurring: Recurring
    transaction_id: str | None = None
    error: str | None = None
    action: AutoApplyAction | None = None
    transactions: list[Transaction] = field(default_factory=list)


@dataclass
class FailedTransaction:
    recurring: Recurring
    error: str


@dataclass
class AutoApplyResult:
    """Aggregate outcome of one due-check."""

    applied_count: int = 0
    failed_count: int = 0
    pending_count: int = 0
    applied_transactions: list[Transaction] = field(default_factory=list)
    failed_transactions: list[FailedTransaction] = field(default_factory=list)
    pending_transactions: list[Recurring] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.applied_count + self.failed_count + self.pending_count

    @classmethod
    def from_results(cls, results: list[ApplyResult]) -> "AutoApplyResult":
        """Tally per-item results. Pending fields are left empty."""
        applied = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        return cls(
            applied_count=len(applied),
            failed_count=len(failed),
            applied_transactions=[t for r in applied for t in r.transactions],
            failed_transactions=[
                FailedTransaction(recurring=r.recurring, error=r.error or "Unknown error")
                for r in failed
            ],
        )


@dataclass
class BatchApplyResult:
    results: list[ApplyResult]
    summary: AutoApplyResult


@dataclass
class AutoApplySettings:
    """Engine settings. Each engine owns one; defaults come from the environment."""

    global_enabled: bool = True
    max_batch_size: int = 50
    timeout_ms: int = 30000
    retry_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if self.timeout_ms < 1:
            raise ValueError("timeout_ms must be at least 1")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts cannot be negative")

    @classmethod
    def from_settings(cls) -> "AutoApplySettings":
        settings = get_settings()
        return cls(
            global_enabled=settings.auto_apply_enabled,
            max_batch_size=settings.auto_apply_max_batch_size,
            timeout_ms=settings.auto_apply_timeout_ms,
            retry_attempts=settings.auto_apply_retry_attempts,
        )

    def updated(self, **changes: Any) -> "AutoApplySettings":
        """Return a validated copy with ``changes`` applied."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown auto-apply settings: {', '.join(sorted(unknown))}")
        return replace(self, **changes)


@dataclass
class StartupResult:
    """Outcome of one supervised run, kept as the supervisor's last result."""

    success: bool
    retry_count: int
    execution_time_ms: int
    result: AutoApplyResult | None = None
    error: BaseException | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_processed(self) -> int:
        return self.result.total_processed if self.result else 0

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "retry_count": self.retry_count,
            "execution_time_ms": self.execution_time_ms,
            "applied_count": self.result.applied_count if self.result else 0,
            "failed_count": self.result.failed_count if self.result else 0,
            "pending_count": self.result.pending_count if self.result else 0,
            "error": str(self.error) if self.error else None,
            "timestamp": self.timestamp.isoformat(),
        }
